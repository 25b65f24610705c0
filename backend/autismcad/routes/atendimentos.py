"""
AutismCad Backend — Session (Atendimento) Route Handlers
=========================================================

Endpoints:
    GET    /api/atendimentos               → List (pacienteId, terapeutaId, dataIni, dataFim)
    POST   /api/atendimentos               → Create one session
    PUT    /api/atendimentos/{id}          → Update / register presence
    DELETE /api/atendimentos/{id}          → Soft delete
    POST   /api/atendimentos/recorrente    → Weekly batch over a period
    POST   /api/atendimentos/excluir-dia   → Remove pending sessions of a weekday
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_permission
from autismcad.database import get_db_session
from autismcad.schemas.atendimento import AtendimentoRecorrente, AtendimentoSave, ExcluirDiaRequest
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse, IdResponse
from autismcad.services.atendimento_service import atendimento_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/atendimentos", tags=["Atendimentos"], responses=AUTH_ERRORS)

CONFLICT = {409: {"description": "Schedule conflict", "model": ErrorResponse}}


@router.get("", summary="List sessions, newest first")
async def list_atendimentos(
    pacienteId: Optional[int] = Query(default=None, gt=0),
    terapeutaId: Optional[int] = Query(default=None, gt=0),
    dataIni: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    dataFim: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    auth: AuthContext = Depends(require_permission("consultas:view")),
    db: AsyncSession = Depends(get_db_session),
):
    return await atendimento_service.list_atendimentos(
        db, paciente_id=pacienteId, terapeuta_id=terapeutaId, data_ini=dataIni, data_fim=dataFim
    )


@router.post("", status_code=201, response_model=IdResponse, responses=CONFLICT, summary="Schedule a session")
async def create_atendimento(
    body: AtendimentoSave,
    auth: AuthContext = Depends(require_permission("consultas:create")),
    db: AsyncSession = Depends(get_db_session),
):
    return {"id": await atendimento_service.save(db, body)}


@router.post(
    "/recorrente",
    status_code=201,
    responses=CONFLICT,
    summary="Schedule one session per selected weekday in a period",
)
async def create_recorrentes(
    body: AtendimentoRecorrente,
    auth: AuthContext = Depends(require_permission("consultas:create")),
    db: AsyncSession = Depends(get_db_session),
):
    """
    All or nothing: a conflict on any date rejects the batch and nothing
    from it is kept.
    """
    return await atendimento_service.create_recorrentes(db, body)


@router.post("/excluir-dia", summary="Remove pending sessions on a weekday")
async def excluir_dia(
    body: ExcluirDiaRequest,
    auth: AuthContext = Depends(require_permission("consultas:cancel")),
    db: AsyncSession = Depends(get_db_session),
):
    return await atendimento_service.excluir_dia(db, body)


@router.put(
    "/{atendimento_id}",
    response_model=IdResponse,
    responses={**CONFLICT, 404: {"description": "Session not found", "model": ErrorResponse}},
    summary="Update a session",
)
async def update_atendimento(
    body: AtendimentoSave,
    atendimento_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("consultas:edit", "consultas:presence")),
    db: AsyncSession = Depends(get_db_session),
):
    return {"id": await atendimento_service.save(db, body, atendimento_id)}


@router.delete(
    "/{atendimento_id}",
    response_model=IdResponse,
    responses={404: {"description": "Session not found", "model": ErrorResponse}},
    summary="Cancel (soft delete) a session",
)
async def delete_atendimento(
    atendimento_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("consultas:cancel")),
    db: AsyncSession = Depends(get_db_session),
):
    return {"id": await atendimento_service.soft_delete(db, atendimento_id, auth.user.id)}
