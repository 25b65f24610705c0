"""
AutismCad Backend — Clinical Record (Prontuario) Route Handlers
================================================================

Endpoints:
    GET    /api/prontuario/{pacienteId}                  → Timeline
    GET    /api/prontuario/documentos/{pacienteId}       → Documents (?tipo=)
    POST   /api/prontuario/documento/{pacienteId}        → New document version
    GET    /api/prontuario/documento/{id}                → One document
    PUT    /api/prontuario/documento/{id}/finalizar      → Finalize
    DELETE /api/prontuario/documento/{id}                → Soft delete (drafts only)
    GET    /api/prontuario/evolucoes/{pacienteId}        → Progress notes of a patient
    POST   /api/prontuario/evolucao/{pacienteId}         → New progress note
    GET    /api/prontuario/evolucao/{id}                 → One progress note
    PUT    /api/prontuario/evolucao/{id}                 → Update (merge)
    DELETE /api/prontuario/evolucao/{id}                 → Soft delete

The POST routes share their path shape with the by-id routes, so the path
segment is a patient id on POST and a record id everywhere else.

Every route checks patient access after loading the record. Therapists
additionally only reach the evolucoes they authored.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_permission
from autismcad.auth.paciente_access import assert_paciente_access
from autismcad.database import get_db_session
from autismcad.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse
from autismcad.schemas.prontuario import DOC_TYPES, DocumentoSave, EvolucaoCreate, EvolucaoUpdate
from autismcad.services.prontuario_service import prontuario_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/prontuario", tags=["Prontuario"], responses=AUTH_ERRORS)

NOT_FOUND = {404: {"description": "Record not found", "model": ErrorResponse}}
CONFLICT = {409: {"description": "State conflict", "model": ErrorResponse}}


async def _load_documento(db: AsyncSession, auth: AuthContext, documento_id: int) -> Dict[str, Any]:
    doc = await prontuario_service.get_documento(db, documento_id)
    if doc is None:
        raise NotFoundError("Documento nao encontrado", resource="documento", resource_id=documento_id)
    await assert_paciente_access(db, auth.user, doc["paciente_id"])
    return doc


async def _load_evolucao(db: AsyncSession, auth: AuthContext, evolucao_id: int) -> Dict[str, Any]:
    evolucao = await prontuario_service.get_evolucao(db, evolucao_id)
    if evolucao is None:
        raise NotFoundError("Evolucao nao encontrada", resource="evolucao", resource_id=evolucao_id)
    access = await assert_paciente_access(db, auth.user, evolucao["paciente_id"])
    if auth.role_canon == "TERAPEUTA" and access.terapeuta_id != evolucao.get("terapeuta_id"):
        raise ForbiddenError()
    return evolucao


# ── Documents ─────────────────────────────────────────────────────────────


@router.get("/documentos/{paciente_id}", summary="Documents of a patient, newest version first")
async def list_documentos(
    paciente_id: int = Path(gt=0),
    tipo: Optional[str] = Query(default=None, max_length=40),
    auth: AuthContext = Depends(require_permission("prontuario:view")),
    db: AsyncSession = Depends(get_db_session),
):
    tipo_filtro = (tipo or "").upper().strip() or None
    if tipo_filtro and tipo_filtro not in DOC_TYPES:
        raise ValidationError("Tipo invalido", code="INVALID_TIPO")
    await assert_paciente_access(db, auth.user, paciente_id)
    return await prontuario_service.list_documentos(db, paciente_id, tipo_filtro)


@router.post("/documento/{paciente_id}", status_code=201, summary="Save a new document version")
async def create_documento(
    body: DocumentoSave,
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("prontuario:create")),
    db: AsyncSession = Depends(get_db_session),
):
    await assert_paciente_access(db, auth.user, paciente_id)
    return await prontuario_service.save_documento(db, paciente_id, body, auth.user)


@router.get("/documento/{documento_id}", responses=NOT_FOUND, summary="One document")
async def get_documento(
    documento_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("prontuario:view")),
    db: AsyncSession = Depends(get_db_session),
):
    return await _load_documento(db, auth, documento_id)


@router.put(
    "/documento/{documento_id}/finalizar",
    responses={**NOT_FOUND, **CONFLICT},
    summary="Finalize a document",
)
async def finalize_documento(
    documento_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("prontuario:finalize")),
    db: AsyncSession = Depends(get_db_session),
):
    doc = await _load_documento(db, auth, documento_id)
    if doc["status"] == "Finalizado":
        raise ConflictError("Documento ja finalizado", code="ALREADY_FINALIZED")

    updated = await prontuario_service.finalize_documento(db, documento_id)
    if updated is None:
        raise NotFoundError("Documento nao encontrado", resource="documento", resource_id=documento_id)
    return updated


@router.delete("/documento/{documento_id}", responses={**NOT_FOUND, **CONFLICT}, summary="Remove a draft")
async def delete_documento(
    documento_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("prontuario:version")),
    db: AsyncSession = Depends(get_db_session),
):
    doc = await _load_documento(db, auth, documento_id)
    if doc["status"] == "Finalizado":
        raise ConflictError("Documento finalizado nao pode ser removido", code="DOCUMENT_FINALIZED")

    if not await prontuario_service.delete_documento(db, documento_id, auth.user.id):
        raise NotFoundError("Documento nao encontrado", resource="documento", resource_id=documento_id)
    return {"id": documento_id, "deleted": True}


# ── Evolucoes ─────────────────────────────────────────────────────────────


@router.get("/evolucoes/{paciente_id}", summary="Progress notes of a patient")
async def list_evolucoes(
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("evolucoes:view")),
    db: AsyncSession = Depends(get_db_session),
):
    await assert_paciente_access(db, auth.user, paciente_id)
    return await prontuario_service.list_evolucoes(db, paciente_id)


@router.post("/evolucao/{paciente_id}", status_code=201, responses=CONFLICT, summary="Record a progress note")
async def create_evolucao(
    body: EvolucaoCreate,
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("evolucoes:create")),
    db: AsyncSession = Depends(get_db_session),
):
    await assert_paciente_access(db, auth.user, paciente_id)
    return await prontuario_service.create_evolucao(db, paciente_id, body, auth.user)


@router.get("/evolucao/{evolucao_id}", responses=NOT_FOUND, summary="One progress note")
async def get_evolucao(
    evolucao_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("evolucoes:view")),
    db: AsyncSession = Depends(get_db_session),
):
    evolucao = await _load_evolucao(db, auth, evolucao_id)
    return {**evolucao, "payload": evolucao.get("payload") or {}}


@router.put("/evolucao/{evolucao_id}", responses={**NOT_FOUND, **CONFLICT}, summary="Update a progress note")
async def update_evolucao(
    body: EvolucaoUpdate,
    evolucao_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("evolucoes:edit")),
    db: AsyncSession = Depends(get_db_session),
):
    current = await _load_evolucao(db, auth, evolucao_id)
    return await prontuario_service.update_evolucao(db, current, body, auth.user)


@router.delete("/evolucao/{evolucao_id}", responses=NOT_FOUND, summary="Remove a progress note")
async def delete_evolucao(
    evolucao_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("evolucoes:delete")),
    db: AsyncSession = Depends(get_db_session),
):
    await _load_evolucao(db, auth, evolucao_id)
    if not await prontuario_service.delete_evolucao(db, evolucao_id, auth.user.id):
        raise NotFoundError("Evolucao nao encontrada", resource="evolucao", resource_id=evolucao_id)
    return {"id": evolucao_id, "deleted": True}


# ── Timeline ──────────────────────────────────────────────────────────────


@router.get("/{paciente_id}", summary="Documents and progress notes merged, newest first")
async def timeline(
    paciente_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("prontuario:view")),
    db: AsyncSession = Depends(get_db_session),
):
    await assert_paciente_access(db, auth.user, paciente_id)
    return await prontuario_service.timeline(db, paciente_id)
