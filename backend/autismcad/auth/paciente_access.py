"""
AutismCad Backend — Patient Access Rule
========================================

Admins see every patient. A therapist only sees patients they have at least
one live session (atendimento) with; any other role is refused outright.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.access import UserAccess, load_user_access
from autismcad.auth.permissions import role_canon
from autismcad.auth.session import SessionUser
from autismcad.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from autismcad.services.terapeuta_service import terapeuta_service


@dataclass
class PacienteAccess:
    user_id: int
    access: UserAccess
    terapeuta_id: Optional[int]


async def assert_paciente_access(
    db: AsyncSession, user: SessionUser, paciente_id: int
) -> PacienteAccess:
    if not user or user.id <= 0:
        raise UnauthorizedError()
    if not paciente_id or paciente_id <= 0:
        raise ValidationError("Paciente invalido")

    access = await load_user_access(db, user.id)
    if not access.exists:
        raise UnauthorizedError("Usuario nao encontrado")

    if access.is_admin:
        return PacienteAccess(user_id=user.id, access=access, terapeuta_id=None)

    if not any(role_canon(role) == "TERAPEUTA" for role in access.roles):
        raise ForbiddenError()

    terapeuta = await terapeuta_service.get_by_usuario(db, user.id)
    if terapeuta is None:
        raise ForbiddenError("Terapeuta sem vinculo")

    if not await terapeuta_service.atende_paciente(db, paciente_id, terapeuta["id"]):
        raise ForbiddenError("Acesso negado ao paciente")

    return PacienteAccess(user_id=user.id, access=access, terapeuta_id=terapeuta["id"])
