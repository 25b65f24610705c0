"""User administration schemas (admin-geral only)."""

from typing import List, Optional

from pydantic import Field

from autismcad.schemas.common import Payload


class UserCreate(Payload):
    nome: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=160)
    senha: str = Field(min_length=8, max_length=72)
    role: str = Field(min_length=1, max_length=32)


class UserUpdate(Payload):
    nome: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=160)
    senha: Optional[str] = Field(default=None, min_length=8, max_length=72)
    role: str = Field(min_length=1, max_length=32)


class RolePermissionsUpdate(Payload):
    permissions: List[int] = Field(default_factory=list)

    def positive_ids(self) -> List[int]:
        return [pid for pid in self.permissions if pid > 0]
