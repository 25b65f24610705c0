"""
AutismCad Backend — Role & Permission Rules
============================================

What:  Pure functions deciding whether a set of granted permission keys
       satisfies a required key, and mapping role slugs to canonical names.
Why:   Kept free of I/O so the rules can be unit-tested directly.

Permission keys are "resource:action". Several UI-facing keys (consultas:*,
relatorios_clinicos:*) are also satisfied by the older generic grants listed
in PERMISSION_ALIASES, so roles configured before the split keep working.
"""

from typing import Dict, Iterable, List, Optional, Set

PERMISSION_ALIASES: Dict[str, List[str]] = {
    "consultas:view": ["atendimentos:view"],
    "consultas:create": ["atendimentos:create"],
    "consultas:edit": ["atendimentos:edit"],
    "consultas:cancel": ["atendimentos:delete"],
    "consultas:presence": ["atendimentos:edit"],
    "consultas:repasse_edit": ["atendimentos:edit"],
    "relatorios_clinicos:view": ["relatorios:view"],
    "relatorios_clinicos:export": ["relatorios:export"],
    "prontuario:version": ["prontuario:delete"],
}

ROLE_CANONICALS: Dict[str, str] = {
    "ADMIN": "ADMIN",
    "admin": "ADMIN",
    "admin-geral": "ADMIN_GERAL",
    "ADMIN_GERAL": "ADMIN_GERAL",
    "TERAPEUTA": "TERAPEUTA",
    "terapeuta": "TERAPEUTA",
    "RECEPCAO": "RECEPCAO",
    "recepcao": "RECEPCAO",
}

ADMIN_ROLES: Set[str] = {"ADMIN", "ADMIN_GERAL"}

ADMIN_GERAL_SLUG = "admin-geral"


def canonical_role_name(role: Optional[str]) -> Optional[str]:
    """'admin-geral' → 'ADMIN_GERAL'; unknown or empty roles → None."""
    if not role:
        return None
    return ROLE_CANONICALS.get(role.strip())


def role_canon(role: Optional[str]) -> Optional[str]:
    """Canonical name when known, otherwise the raw role."""
    return canonical_role_name(role) or role


def is_admin_role(role: Optional[str]) -> bool:
    return role_canon(role) in ADMIN_ROLES


def any_admin(roles: Iterable[str]) -> bool:
    return any(is_admin_role(role) for role in roles)


def access_has_role(roles: Iterable[str], role: str) -> bool:
    target = canonical_role_name(role)
    if not target:
        return False
    return any(canonical_role_name(value) == target for value in roles)


def has_permission_key(permissions: Set[str], permission_key: str) -> bool:
    if permission_key in permissions:
        return True
    return any(alias in permissions for alias in PERMISSION_ALIASES.get(permission_key, []))
