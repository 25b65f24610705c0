"""
AutismCad Backend — User & Role Administration Routes
======================================================

Every endpoint here requires the admin-geral role.
"""

import logging

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_admin_geral
from autismcad.database import get_db_session
from autismcad.exceptions import ValidationError
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse
from autismcad.schemas.users import RolePermissionsUpdate, UserCreate, UserUpdate
from autismcad.services.users_service import users_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Users"], responses=AUTH_ERRORS)


def _role_param(role: str) -> str:
    name = role.strip()
    if not name:
        raise ValidationError("Role invalida", code="INVALID_ROLE")
    return name


@router.get("/users", summary="List login accounts")
async def list_users(
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await users_service.list_users(db)


@router.post(
    "/users",
    status_code=201,
    responses={400: {"description": "Unknown role", "model": ErrorResponse}},
    summary="Create a user (or overwrite the one owning the email)",
)
async def create_user(
    body: UserCreate,
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await users_service.create_user(db, body)


@router.put(
    "/users/{user_id}",
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="Update a user; the password only changes when senha is sent",
)
async def update_user(
    body: UserUpdate,
    user_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await users_service.update_user(db, user_id, body)


@router.delete(
    "/users/{user_id}",
    responses={400: {"description": "Self delete", "model": ErrorResponse}},
    summary="Delete a user",
)
async def delete_user(
    user_id: int = Path(gt=0),
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await users_service.delete_user(db, user_id, auth.user.id)


@router.get("/permissions", summary="Permission catalogue")
async def list_permissions(
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await users_service.list_permissions(db)


@router.get("/roles", summary="Known roles (catalogue plus roles in use)")
async def list_roles(
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await users_service.list_roles(db)


@router.get("/roles/{role}/permissions", summary="Permissions granted to a role")
async def get_role_permissions(
    role: str,
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await users_service.get_role_permissions(db, _role_param(role))


@router.post(
    "/roles/{role}/permissions",
    summary="Replace the permissions granted to a role",
)
async def update_role_permissions(
    role: str,
    body: RolePermissionsUpdate,
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    """admin-geral always ends up with the full catalogue, whatever is sent."""
    return await users_service.update_role_permissions(db, _role_param(role), body)
