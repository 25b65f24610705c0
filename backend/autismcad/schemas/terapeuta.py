"""Therapist schemas."""

from typing import Optional

from pydantic import EmailStr, Field, field_validator

from autismcad.schemas.common import Payload


class TerapeutaSave(Payload):
    nome: str = Field(min_length=1, max_length=120)
    cpf: str = Field(min_length=11, max_length=20)
    nascimento: Optional[str] = None
    email: Optional[EmailStr] = None
    telefone: Optional[str] = Field(default=None, max_length=20)
    endereco: Optional[str] = Field(default=None, max_length=255)
    logradouro: Optional[str] = Field(default=None, max_length=180)
    numero: Optional[str] = Field(default=None, max_length=20)
    bairro: Optional[str] = Field(default=None, max_length=120)
    cidade: Optional[str] = Field(default=None, max_length=120)
    cep: Optional[str] = Field(default=None, max_length=12)
    especialidade: str = Field(min_length=1, max_length=80)
    usuarioId: Optional[int] = Field(default=None, gt=0)

    @field_validator("email", mode="before")
    @classmethod
    def empty_email_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v
