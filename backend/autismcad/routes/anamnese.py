"""
AutismCad Backend — Anamnese Route Handlers
============================================

Every save appends a new numbered version; GET answers the requested or
latest version and falls back to the base record.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_permission
from autismcad.database import get_db_session
from autismcad.exceptions import NotFoundError, ValidationError
from autismcad.schemas.anamnese import AnamneseSave
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse
from autismcad.services.anamnese_service import anamnese_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/anamnese", tags=["Anamnese"], responses=AUTH_ERRORS)

NOT_FOUND = {404: {"description": "Patient or anamnese not found", "model": ErrorResponse}}


def parse_version(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        raise ValidationError("Versao invalida", code="INVALID_VERSION")


@router.post("", status_code=201, responses=NOT_FOUND, summary="Save an anamnese (patient id in the body)")
async def create_anamnese(
    body: AnamneseSave,
    auth: AuthContext = Depends(require_permission("pacientes:edit")),
    db: AsyncSession = Depends(get_db_session),
):
    return await anamnese_service.save(db, body.pacienteId, body.model_dump(), body.status)


@router.get("/{paciente_id}", responses=NOT_FOUND, summary="Requested or latest anamnese version")
async def get_anamnese(
    paciente_id: int = Path(gt=0),
    version: Optional[str] = Query(default=None, max_length=10),
    auth: AuthContext = Depends(require_permission("pacientes:view")),
    db: AsyncSession = Depends(get_db_session),
):
    found = await anamnese_service.get_version(db, paciente_id, parse_version(version))
    if found is None:
        found = await anamnese_service.get_base(db, paciente_id)
    if found is None:
        raise NotFoundError("Anamnese nao encontrada", resource="anamnese", resource_id=paciente_id)
    return found


@router.put("/{paciente_id}", responses=NOT_FOUND, summary="Save an anamnese")
async def update_anamnese(
    paciente_id: int = Path(gt=0),
    body: Dict[str, Any] = Body(...),
    auth: AuthContext = Depends(require_permission("pacientes:edit")),
    db: AsyncSession = Depends(get_db_session),
):
    return await anamnese_service.save(db, paciente_id, body, body.get("status"))


@router.get("/{paciente_id}/versions", responses=NOT_FOUND, summary="Version history, newest first")
async def list_versions(
    paciente_id: int = Path(gt=0),
    limit: int = Query(default=50, ge=1, le=200),
    auth: AuthContext = Depends(require_permission("pacientes:view")),
    db: AsyncSession = Depends(get_db_session),
):
    await anamnese_service.assert_paciente_exists(db, paciente_id)
    return await anamnese_service.list_versions(db, paciente_id, limit)
