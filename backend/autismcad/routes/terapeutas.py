"""
AutismCad Backend — Therapist Route Handlers
=============================================

Endpoints:
    GET    /api/terapeutas        → List (filters: id, nome, cpf, especialidade)
    POST   /api/terapeutas        → Create
    PUT    /api/terapeutas/{id}   → Update (edit, or edit_self on the caller's own row)
    DELETE /api/terapeutas/{id}   → Delete (refused while evolucoes reference it)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_access, require_permission
from autismcad.database import get_db_session
from autismcad.exceptions import ForbiddenError
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse, IdResponse
from autismcad.schemas.terapeuta import TerapeutaSave
from autismcad.services.terapeuta_service import terapeuta_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/terapeutas", tags=["Terapeutas"], responses=AUTH_ERRORS)


@router.get("", summary="List therapists")
async def list_terapeutas(
    id: Optional[int] = Query(default=None, gt=0),
    nome: Optional[str] = Query(default=None, max_length=120),
    cpf: Optional[str] = Query(default=None, max_length=20),
    especialidade: Optional[str] = Query(default=None, max_length=80),
    auth: AuthContext = Depends(require_permission("terapeutas:view")),
    db: AsyncSession = Depends(get_db_session),
):
    return await terapeuta_service.list_terapeutas(
        db, id=id, nome=nome, cpf=cpf, especialidade=especialidade
    )


@router.post(
    "",
    status_code=201,
    response_model=IdResponse,
    responses={409: {"description": "CPF conflict", "model": ErrorResponse}},
    summary="Register a therapist",
)
async def create_terapeuta(
    body: TerapeutaSave,
    auth: AuthContext = Depends(require_permission("terapeutas:create")),
    db: AsyncSession = Depends(get_db_session),
):
    return {"id": await terapeuta_service.save(db, body)}


@router.put(
    "/{terapeuta_id}",
    response_model=IdResponse,
    responses={404: {"description": "Therapist not found", "model": ErrorResponse}},
    summary="Update a therapist",
)
async def update_terapeuta(
    body: TerapeutaSave,
    terapeuta_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_access),
    db: AsyncSession = Depends(get_db_session),
):
    """
    terapeutas:edit (or any admin role) may update every therapist. A caller
    holding only terapeutas:edit_self may update the row linked to their own
    login and nothing else.
    """
    if not auth.access.has("terapeutas:edit"):
        if not auth.access.has("terapeutas:edit_self"):
            raise ForbiddenError()
        own = await terapeuta_service.get_by_usuario(db, auth.user.id)
        if own is None or own["id"] != terapeuta_id:
            raise ForbiddenError()

    return {"id": await terapeuta_service.save(db, body, terapeuta_id)}


@router.delete(
    "/{terapeuta_id}",
    response_model=IdResponse,
    responses={
        404: {"description": "Therapist not found", "model": ErrorResponse},
        409: {"description": "Therapist has evolucoes", "model": ErrorResponse},
    },
    summary="Delete a therapist",
)
async def delete_terapeuta(
    terapeuta_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_permission("terapeutas:delete")),
    db: AsyncSession = Depends(get_db_session),
):
    return {"id": await terapeuta_service.delete(db, terapeuta_id)}
