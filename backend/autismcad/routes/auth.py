"""
AutismCad Backend — Auth Route Handlers
========================================

What:  Login/logout, the caller's resolved permissions and the login audit log.
How:   Login answers a Bearer token; every other route in the API expects it
       in the Authorization header.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_admin_geral, require_user
from autismcad.auth.session import SessionUser
from autismcad.database import get_db_session
from autismcad.middleware.request_id import client_ip
from autismcad.schemas.auth import LoginRequest, LoginResponse, MePermissionsResponse
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse, OkResponse
from autismcad.services.auth_service import MAX_ACCESS_LOGS, auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    responses={
        400: {"description": "Malformed body", "model": ErrorResponse},
        401: {"description": "Invalid credentials", "model": ErrorResponse},
    },
    summary="Exchange email and password for a session token",
)
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    """
    Both outcomes are written to access_logs. The failure answer is the same
    for unknown email, inactive account and wrong password.
    """
    return await auth_service.login(
        db,
        email=str(body.email),
        password=body.password,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/auth/logout", response_model=OkResponse, summary="End the session (client drops the token)")
async def logout() -> OkResponse:
    return OkResponse()


@router.get(
    "/me/permissions",
    response_model=MePermissionsResponse,
    responses={401: AUTH_ERRORS[401]},
    summary="Roles and permission keys of the caller",
)
async def me_permissions(
    user: SessionUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await auth_service.me_permissions(db, user.id)


@router.get(
    "/access-logs",
    responses=AUTH_ERRORS,
    summary="Latest login attempts (admin-geral)",
)
async def list_access_logs(
    limit: int = Query(default=MAX_ACCESS_LOGS, ge=1, le=MAX_ACCESS_LOGS),
    auth: AuthContext = Depends(require_admin_geral),
    db: AsyncSession = Depends(get_db_session),
):
    return await auth_service.list_access_logs(db, limit)
