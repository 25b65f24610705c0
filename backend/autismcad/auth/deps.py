"""
AutismCad Backend — FastAPI Auth Dependencies
==============================================

Usage in a route:

    @router.get("/pacientes")
    async def list_pacientes(
        auth: AuthContext = Depends(require_permission("pacientes:view")),
        db: AsyncSession = Depends(get_db_session),
    ): ...

FastAPI caches `get_db_session` per request, so the guard and the handler
share one session and one transaction.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.access import UserAccess, assert_has_permission, load_user_access
from autismcad.auth.permissions import role_canon
from autismcad.auth.session import SessionUser, decode_session_token
from autismcad.database import get_db_session
from autismcad.exceptions import ForbiddenError, UnauthorizedError

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user: SessionUser
    access: UserAccess

    @property
    def role_canon(self) -> Optional[str]:
        return role_canon(self.user.role)


async def require_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> SessionUser:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    return decode_session_token(credentials.credentials)


async def require_access(
    user: SessionUser = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> AuthContext:
    access = await load_user_access(db, user.id)
    if not access.exists:
        raise UnauthorizedError()
    return AuthContext(user=user, access=access)


def require_permission(*permission_keys: str) -> Callable:
    """Dependency factory: passes when the caller holds ANY of the keys (admins always pass)."""

    async def dependency(auth: AuthContext = Depends(require_access)) -> AuthContext:
        assert_has_permission(auth.access, permission_keys)
        return auth

    return dependency


async def require_admin_geral(auth: AuthContext = Depends(require_access)) -> AuthContext:
    """Only the general administrator manages users, roles and access logs."""
    if auth.access.primary_role != "ADMIN_GERAL":
        raise ForbiddenError()
    return auth
