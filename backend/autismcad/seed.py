"""
AutismCad Backend — Seed Command
=================================

What:  Loads the reference data a fresh database needs: the permission
       catalogue, the roles, the default grants, the therapy names and the
       super admin account.
How:   `python -m autismcad.seed` (run after `alembic upgrade head`).
       Catalogue rows are only inserted when missing, so re-running never
       overwrites grants edited through /api/roles. The super admin is the
       exception: it is upserted from SEED_SUPERADMIN_* (or ADMIN_SEED_*).
"""

import argparse
import asyncio
import logging
import sys
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.password import hash_password
from autismcad.auth.permissions import ADMIN_GERAL_SLUG
from autismcad.config import settings
from autismcad.database import dispose_engine, session_scope
from autismcad.models.paciente import Terapia
from autismcad.models.user import Permission, Role, RolePermission, User

logger = logging.getLogger("autismcad.seed")

PERMISSION_CATALOGUE: Dict[str, Sequence[str]] = {
    "pacientes": ("view", "create", "edit", "delete"),
    "consultas": ("view", "create", "edit", "cancel", "presence", "repasse_edit"),
    "prontuario": ("view", "create", "version", "finalize", "pdf", "delete"),
    "evolucoes": ("view", "create", "edit", "delete"),
    "relatorios": ("view", "export"),
    "relatorios_admin": ("view", "export"),
    "relatorios_clinicos": ("view", "export"),
    "terapeutas": ("view", "create", "edit", "edit_self", "delete"),
    "configuracoes": ("manage",),
    "atendimentos": ("view", "create", "edit", "delete"),
}

ROLES: Dict[str, str] = {
    ADMIN_GERAL_SLUG: "Administrador Geral",
    "admin": "Administrador",
    "recepcao": "Recepcao",
    "terapeuta": "Terapeuta",
}

ALL_PERMISSIONS = "*"

DEFAULT_GRANTS: Dict[str, Sequence[str]] = {
    ADMIN_GERAL_SLUG: (ALL_PERMISSIONS,),
    "admin": (ALL_PERMISSIONS,),
    "recepcao": (
        "pacientes:view",
        "pacientes:create",
        "pacientes:edit",
        "consultas:view",
        "consultas:create",
        "consultas:edit",
        "consultas:cancel",
        "consultas:presence",
        "consultas:repasse_edit",
        "relatorios_admin:view",
        "relatorios_admin:export",
        "terapeutas:view",
    ),
    "terapeuta": (
        "pacientes:view",
        "consultas:view",
        "consultas:presence",
        "prontuario:view",
        "prontuario:create",
        "prontuario:version",
        "prontuario:finalize",
        "prontuario:pdf",
        "evolucoes:view",
        "evolucoes:create",
        "evolucoes:edit",
        "relatorios_clinicos:view",
        "relatorios_clinicos:export",
        "terapeutas:view",
        "terapeutas:edit_self",
    ),
}

TERAPIAS: Tuple[str, ...] = ("Convencional", "Intensiva", "Especial", "Intercambio")


async def seed_permissions(db: AsyncSession) -> Dict[str, int]:
    """Insert missing catalogue entries. Returns {"resource:action": id} for the whole catalogue."""
    result = await db.execute(select(Permission))
    existing = {p.key: p for p in result.scalars().all()}

    created = 0
    for resource, actions in PERMISSION_CATALOGUE.items():
        for action in actions:
            key = f"{resource}:{action}"
            if key not in existing:
                permission = Permission(resource=resource, action=action)
                db.add(permission)
                existing[key] = permission
                created += 1
    await db.flush()

    logger.info("Permissions: %d created, %d total", created, len(existing))
    return {key: p.id for key, p in existing.items()}


async def seed_roles(db: AsyncSession) -> None:
    result = await db.execute(select(Role.slug))
    known = set(result.scalars().all())
    for slug, nome in ROLES.items():
        if slug not in known:
            db.add(Role(slug=slug, nome=nome))
            logger.info("Role created: %s", slug)
    await db.flush()


def grants_for(role: str, permission_ids: Dict[str, int]) -> List[int]:
    keys = DEFAULT_GRANTS.get(role, ())
    if ALL_PERMISSIONS in keys:
        return sorted(permission_ids.values())
    return sorted(permission_ids[key] for key in keys if key in permission_ids)


async def seed_grants(db: AsyncSession, permission_ids: Dict[str, int]) -> None:
    result = await db.execute(select(RolePermission.role, RolePermission.permission_id))
    granted = {(row.role, row.permission_id) for row in result.all()}

    created = 0
    for role in DEFAULT_GRANTS:
        for permission_id in grants_for(role, permission_ids):
            if (role, permission_id) not in granted:
                db.add(RolePermission(role=role, permission_id=permission_id))
                created += 1
    await db.flush()
    logger.info("Role grants: %d created", created)


async def seed_terapias(db: AsyncSession) -> None:
    result = await db.execute(select(Terapia.nome).where(Terapia.nome.in_(TERAPIAS)))
    known = set(result.scalars().all())
    for nome in TERAPIAS:
        if nome not in known:
            db.add(Terapia(nome=nome))
    await db.flush()


async def upsert_superadmin(db: AsyncSession) -> bool:
    """Create or refresh the admin-geral account. Returns False when not configured."""
    email = (settings.seed_superadmin_email or "").strip().lower()
    password = settings.seed_superadmin_password or ""
    if not email or not password:
        logger.warning("SEED_SUPERADMIN_EMAIL/SEED_SUPERADMIN_PASSWORD not set; super admin skipped")
        return False

    result = await db.execute(select(User).where(User.email == email).limit(1))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email)
        db.add(user)
    user.nome = settings.seed_superadmin_name
    user.senha_hash = hash_password(password)
    user.role = ADMIN_GERAL_SLUG
    user.ativo = True
    await db.flush()

    logger.info("Super admin ready: %s (id=%s)", email, user.id)
    return True


async def run(skip_admin: bool = False) -> None:
    async with session_scope() as db:
        permission_ids = await seed_permissions(db)
        await seed_roles(db)
        await seed_grants(db, permission_ids)
        await seed_terapias(db)
        if not skip_admin:
            await upsert_superadmin(db)
    await dispose_engine()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m autismcad.seed",
        description="Load the permission catalogue, roles, grants, therapies and the super admin.",
    )
    parser.add_argument(
        "--skip-admin",
        action="store_true",
        help="only load the reference data, leave user accounts untouched",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    asyncio.run(run(skip_admin=args.skip_admin))
    logger.info("Seed complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
