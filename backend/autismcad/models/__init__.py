"""
AutismCad Backend — ORM Models
===============================

Importing this package registers every table on `Base.metadata`
(Alembic's env.py relies on it).
"""

from autismcad.models.user import AccessLog, Permission, Role, RolePermission, User
from autismcad.models.paciente import Paciente, PacienteTerapia, Terapia
from autismcad.models.terapeuta import Terapeuta
from autismcad.models.atendimento import Atendimento
from autismcad.models.anamnese import Anamnese, AnamneseVersion
from autismcad.models.prontuario import Evolucao, ProntuarioDocumento

__all__ = [
    "AccessLog",
    "Anamnese",
    "AnamneseVersion",
    "Atendimento",
    "Evolucao",
    "Paciente",
    "PacienteTerapia",
    "Permission",
    "ProntuarioDocumento",
    "Role",
    "RolePermission",
    "Terapeuta",
    "Terapia",
    "User",
]
