"""
AutismCad Backend — Patient Route Handlers
===========================================

Endpoints:
    GET    /api/pacientes                              → List (filters: id, nome, cpf)
    POST   /api/pacientes                              → Create, or update by CPF
    PUT    /api/pacientes/{id}                         → Update
    PATCH  /api/pacientes/{id}/ativo                   → Archive / unarchive
    DELETE /api/pacientes/{id}                         → Soft delete (archived only)
    POST   /api/pacientes/{id}/arquivos/presign        → Signed upload URL
    POST   /api/pacientes/{id}/arquivos/commit         → Attach uploaded key
    GET    /api/pacientes/{id}/arquivos/read-url       → Signed download URL

Routes only translate HTTP to service calls; the rules live in PacienteService.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_permission
from autismcad.auth.paciente_access import assert_paciente_access
from autismcad.database import get_db_session
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse, IdResponse
from autismcad.schemas.paciente import (
    ArquivoKind,
    CommitRequest,
    PacienteAtivoUpdate,
    PacienteSave,
    PresignRequest,
)
from autismcad.services.paciente_service import paciente_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pacientes", tags=["Pacientes"], responses=AUTH_ERRORS)

NOT_FOUND = {404: {"description": "Paciente not found", "model": ErrorResponse}}


@router.get("", summary="List live patients")
async def list_pacientes(
    id: Optional[int] = Query(default=None, gt=0),
    nome: Optional[str] = Query(default=None, max_length=120),
    cpf: Optional[str] = Query(default=None, max_length=20),
    auth: AuthContext = Depends(require_permission("pacientes:view")),
    db: AsyncSession = Depends(get_db_session),
):
    return await paciente_service.list_pacientes(db, id=id, nome=nome, cpf=cpf)


@router.post(
    "",
    status_code=201,
    responses={
        200: {"description": "Existing patient with the same CPF was updated"},
        409: {"description": "CPF conflict", "model": ErrorResponse},
    },
    summary="Register a patient",
)
async def create_paciente(
    body: PacienteSave,
    auth: AuthContext = Depends(require_permission("pacientes:create")),
    db: AsyncSession = Depends(get_db_session),
):
    """
    A live patient already holding the CPF is updated in place instead, and the
    answer is 200 with `reaproveitado: true`.
    """
    paciente_id, reaproveitado = await paciente_service.create(db, body)
    if reaproveitado:
        return JSONResponse(status_code=200, content={"id": paciente_id, "reaproveitado": True})
    return {"id": paciente_id}


@router.put("/{paciente_id}", response_model=IdResponse, responses=NOT_FOUND, summary="Update a patient")
async def update_paciente(
    body: PacienteSave,
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("pacientes:edit")),
    db: AsyncSession = Depends(get_db_session),
):
    return {"id": await paciente_service.save(db, body, paciente_id)}


@router.patch("/{paciente_id}/ativo", responses=NOT_FOUND, summary="Archive or unarchive a patient")
async def set_ativo(
    body: PacienteAtivoUpdate,
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("pacientes:edit")),
    db: AsyncSession = Depends(get_db_session),
):
    return await paciente_service.set_ativo(db, paciente_id, body.ativo)


@router.delete(
    "/{paciente_id}",
    response_model=IdResponse,
    responses={
        **NOT_FOUND,
        409: {"description": "Patient must be archived first", "model": ErrorResponse},
    },
    summary="Soft delete an archived patient",
)
async def delete_paciente(
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("pacientes:delete")),
    db: AsyncSession = Depends(get_db_session),
):
    return {"id": await paciente_service.soft_delete(db, paciente_id, auth.user.id)}


# ── Attachments ───────────────────────────────────────────────────────────


@router.post("/{paciente_id}/arquivos/presign", responses=NOT_FOUND, summary="Signed upload URL")
async def presign_arquivo(
    body: PresignRequest,
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("pacientes:edit")),
    db: AsyncSession = Depends(get_db_session),
):
    await assert_paciente_access(db, auth.user, paciente_id)
    return await paciente_service.presign_upload(
        db, paciente_id, body.kind, body.filename, body.contentType
    )


@router.post("/{paciente_id}/arquivos/commit", responses=NOT_FOUND, summary="Attach an uploaded file")
async def commit_arquivo(
    body: CommitRequest,
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("pacientes:edit")),
    db: AsyncSession = Depends(get_db_session),
):
    await assert_paciente_access(db, auth.user, paciente_id)
    return await paciente_service.commit_attachment(db, paciente_id, body.kind, body.key)


@router.get("/{paciente_id}/arquivos/read-url", responses=NOT_FOUND, summary="Signed download URL")
async def read_url(
    kind: ArquivoKind,
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("pacientes:view")),
    db: AsyncSession = Depends(get_db_session),
):
    await assert_paciente_access(db, auth.user, paciente_id)
    return await paciente_service.read_url(db, paciente_id, kind)
