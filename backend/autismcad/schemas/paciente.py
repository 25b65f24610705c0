"""
AutismCad Backend — Patient Schemas
====================================

Field names follow the frontend's camelCase form payload. `ativo` is accepted
as bool, int or string ("0"/"1") because the form posts a select value.
"""

from typing import List, Literal, Optional, Union

from pydantic import EmailStr, Field, field_validator

from autismcad.schemas.common import Payload

ArquivoKind = Literal["foto", "laudo", "documento"]


class PacienteSave(Payload):
    nome: str = Field(min_length=1, max_length=120)
    cpf: str = Field(min_length=11, max_length=20)
    nascimento: Optional[str] = None
    convenio: Optional[str] = None
    email: Optional[EmailStr] = None
    nomeResponsavel: Optional[str] = Field(default=None, max_length=255)
    telefone: Optional[str] = Field(default=None, max_length=20)
    telefone2: Optional[str] = Field(default=None, max_length=20)
    nomeMae: Optional[str] = Field(default=None, max_length=255)
    nomePai: Optional[str] = Field(default=None, max_length=255)
    sexo: Optional[str] = Field(default=None, max_length=20)
    dataInicio: Optional[str] = None
    fotoAtual: Optional[str] = Field(default=None, max_length=255)
    laudoAtual: Optional[str] = Field(default=None, max_length=255)
    documentoAtual: Optional[str] = Field(default=None, max_length=255)
    ativo: Optional[Union[bool, int, str]] = None
    terapias: List[str] = Field(default_factory=list)
    terapia: Optional[Union[str, List[str]]] = None

    @field_validator("email", mode="before")
    @classmethod
    def empty_email_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("terapias")
    @classmethod
    def validate_terapias(cls, v: List[str]) -> List[str]:
        for item in v:
            if not 1 <= len(item.strip()) <= 40:
                raise ValueError("Cada terapia deve ter entre 1 e 40 caracteres")
        return v


class PacienteAtivoUpdate(Payload):
    ativo: bool


class PresignRequest(Payload):
    kind: ArquivoKind
    filename: str = Field(min_length=1, max_length=180)
    contentType: str = Field(min_length=1, max_length=120)


class CommitRequest(Payload):
    kind: ArquivoKind
    key: Optional[str] = Field(default=None, min_length=1, max_length=255)
