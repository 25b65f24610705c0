"""
AutismCad Backend — User Access Loading
========================================

What:  Resolves what a user may do: their roles (raw slug + canonical name)
       and the set of granted "resource:action" keys.
When:  Once per guarded request (require_permission) and for /api/me/permissions.

Query plan:
    1. SELECT id, nome, email, role FROM users WHERE id = :id
    2. SELECT resource, action FROM role_permissions JOIN permissions
       WHERE role_permissions.role = :raw_role
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.permissions import any_admin, has_permission_key, role_canon
from autismcad.exceptions import ForbiddenError
from autismcad.models.user import Permission, RolePermission, User

logger = logging.getLogger(__name__)


@dataclass
class UserAccess:
    exists: bool
    roles: List[str] = field(default_factory=list)
    primary_role: Optional[str] = None
    permissions: Set[str] = field(default_factory=set)
    user: Optional[Dict[str, object]] = None

    @property
    def is_admin(self) -> bool:
        return any_admin(self.roles)

    def has(self, permission_key: str) -> bool:
        return self.is_admin or has_permission_key(self.permissions, permission_key)


async def load_user_access(db: AsyncSession, user_id: int) -> UserAccess:
    if not user_id or user_id <= 0:
        return UserAccess(exists=False)

    result = await db.execute(
        select(User.id, User.nome, User.email, User.role).where(User.id == user_id).limit(1)
    )
    row = result.first()
    if row is None:
        return UserAccess(exists=False)

    primary_role = role_canon(row.role)
    roles: List[str] = []
    for value in (primary_role, row.role):
        if value and value not in roles:
            roles.append(value)

    perm_result = await db.execute(
        select(Permission.resource, Permission.action)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role == row.role)
    )
    granted = {
        f"{perm.resource}:{perm.action}"
        for perm in perm_result.all()
        if perm.resource and perm.action
    }

    return UserAccess(
        exists=True,
        roles=roles,
        primary_role=primary_role,
        permissions=granted,
        user={"id": row.id, "nome": row.nome, "email": row.email},
    )


def assert_has_permission(access: UserAccess, permission_keys: Iterable[str]) -> None:
    """Admins always pass; everyone else needs at least one of the keys (aliases included)."""
    if access.is_admin:
        return
    keys = list(permission_keys)
    if not any(has_permission_key(access.permissions, key) for key in keys):
        logger.info("Permission denied for roles=%s required=%s", access.roles, keys)
        raise ForbiddenError()
