"""
AutismCad Backend — User & Role Administration Service
=======================================================

What:  Login accounts, the permission catalogue and role → permission grants.
Who:   Only reachable through admin-geral routes.

Role grants:
    role_permissions is replaced wholesale on every update. The admin-geral
    role ignores the submitted list and always receives every permission, so
    the general administrator can never lock themselves out.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.password import hash_password
from autismcad.auth.permissions import ADMIN_GERAL_SLUG
from autismcad.exceptions import (
    AppError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from autismcad.models.user import Permission, Role, RolePermission, User
from autismcad.normalize import is_unique_violation, iso_datetime
from autismcad.schemas.users import RolePermissionsUpdate, UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def _permission_dict(perm: Permission) -> Dict[str, Any]:
    return {"id": perm.id, "resource": perm.resource, "action": perm.action}


class UsersService:
    async def list_users(self, db: AsyncSession) -> List[Dict[str, Any]]:
        result = await db.execute(select(User).order_by(User.created_at.desc(), User.nome.asc()))
        return [
            {
                "id": u.id,
                "nome": u.nome,
                "email": u.email,
                "role": u.role,
                "created_at": iso_datetime(u.created_at),
            }
            for u in result.scalars().all()
        ]

    async def _assert_role_exists(self, db: AsyncSession, role: str) -> str:
        role_name = role.strip()
        result = await db.execute(select(Role.slug).where(Role.slug == role_name).limit(1))
        if result.scalar_one_or_none() is None:
            raise ValidationError("Role invalida", code="INVALID_ROLE")
        return role_name

    async def create_user(self, db: AsyncSession, data: UserCreate) -> Dict[str, Any]:
        """
        Create a user, or overwrite the account that already owns the email.

        The overwrite also reactivates the account and resets its password.
        """
        role_name = await self._assert_role_exists(db, data.role)
        senha_hash = hash_password(data.senha)

        result = await db.execute(select(User).where(User.email == data.email).limit(1))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(nome=data.nome, email=data.email, senha_hash=senha_hash, role=role_name, ativo=True)
            db.add(user)
        else:
            user.nome = data.nome
            user.senha_hash = senha_hash
            user.role = role_name
            user.ativo = True

        try:
            await db.flush()
        except SQLAlchemyError as e:
            if is_unique_violation(e):
                raise ConflictError("Email ja cadastrado", code="DUPLICATE_EMAIL")
            logger.error("Database error creating user: %s", str(e))
            raise DatabaseError(context={"email": data.email})

        logger.info("User saved: id=%s role=%s", user.id, role_name)
        return {"id": user.id, "email": user.email, "role": user.role}

    async def update_user(self, db: AsyncSession, user_id: int, data: UserUpdate) -> Dict[str, Any]:
        role_name = await self._assert_role_exists(db, data.role)
        values: Dict[str, Any] = {"nome": data.nome, "email": data.email, "role": role_name}
        if data.senha:
            values["senha_hash"] = hash_password(data.senha)

        try:
            result = await db.execute(
                update(User).where(User.id == user_id).values(**values).returning(User.id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError("Usuario nao encontrado", resource="user", resource_id=user_id)
        except AppError:
            raise
        except SQLAlchemyError as e:
            if is_unique_violation(e):
                raise ConflictError("Email ja cadastrado", code="DUPLICATE_EMAIL")
            logger.error("Database error updating user %s: %s", user_id, str(e))
            raise DatabaseError(context={"user_id": user_id})

        return {"ok": True, "id": user_id, "email": data.email, "role": role_name}

    async def delete_user(self, db: AsyncSession, user_id: int, requester_id: int) -> Dict[str, Any]:
        if user_id == requester_id:
            raise ValidationError("Nao e possivel excluir o proprio usuario", code="SELF_DELETE")
        await db.execute(delete(User).where(User.id == user_id))
        logger.info("User deleted: id=%s by=%s", user_id, requester_id)
        return {"ok": True, "id": user_id}

    async def list_permissions(self, db: AsyncSession) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(Permission).order_by(Permission.resource.asc(), Permission.action.asc())
        )
        return [_permission_dict(p) for p in result.scalars().all()]

    async def list_roles(self, db: AsyncSession) -> List[Dict[str, str]]:
        """Catalogue slugs plus any role string still set on a user row."""
        base = await db.execute(select(Role.slug))
        in_use = await db.execute(select(User.role).where(User.role.is_not(None), User.role != "").distinct())
        names = {slug for slug in base.scalars().all()}
        names.update(role for role in in_use.scalars().all() if role)
        return [{"nome": name} for name in sorted(names)]

    async def get_role_permissions(self, db: AsyncSession, role: str) -> Dict[str, Any]:
        result = await db.execute(
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role == role)
            .order_by(Permission.resource.asc(), Permission.action.asc())
        )
        return {"role": {"nome": role}, "permissions": [_permission_dict(p) for p in result.scalars().all()]}

    async def update_role_permissions(
        self, db: AsyncSession, role: str, data: RolePermissionsUpdate
    ) -> Dict[str, Any]:
        requested = data.positive_ids()
        if role == ADMIN_GERAL_SLUG:
            result = await db.execute(select(Permission.id).order_by(Permission.id))
            permission_ids = list(result.scalars().all())
        elif requested:
            result = await db.execute(
                select(Permission.id).where(Permission.id.in_(requested)).order_by(Permission.id)
            )
            permission_ids = list(result.scalars().all())
        else:
            permission_ids = []

        await db.execute(delete(RolePermission).where(RolePermission.role == role))
        for permission_id in permission_ids:
            db.add(RolePermission(role=role, permission_id=permission_id))
        await db.flush()

        logger.info("Role %s now has %d permissions", role, len(permission_ids))
        return {"ok": True, "role": role, "permissions": permission_ids}

    async def get_active_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email).limit(1))
        user = result.scalar_one_or_none()
        return user if user is not None and user.ativo else None


users_service = UsersService()
