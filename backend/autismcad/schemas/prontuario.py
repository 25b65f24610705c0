"""Clinical record schemas: documents and progress notes (evolucoes)."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from autismcad.schemas.common import Payload

DOC_TYPES = ("ANAMNESE", "PLANO_TERAPEUTICO", "RELATORIO_MULTIPROFISSIONAL", "OUTRO")
DOC_STATUS = ("Rascunho", "Finalizado")

DocTipo = Literal["ANAMNESE", "PLANO_TERAPEUTICO", "RELATORIO_MULTIPROFISSIONAL", "OUTRO"]
DocStatus = Literal["Rascunho", "Finalizado"]


class DocumentoPayload(BaseModel):
    """Known sections are validated; any extra section is kept as sent."""

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    introducao: Optional[str] = Field(default=None, min_length=1)
    avaliacao: Optional[str] = Field(default=None, min_length=1)
    objetivos: Optional[List[str]] = None
    observacoes: Optional[str] = Field(default=None, min_length=1)


class DocumentoSave(Payload):
    tipo: DocTipo
    status: Optional[DocStatus] = None
    titulo: Optional[str] = Field(default=None, max_length=180)
    payload: DocumentoPayload = Field(default_factory=DocumentoPayload)


class EvolucaoCreate(Payload):
    data: Optional[str] = None
    atendimentoId: Optional[int] = Field(default=None, gt=0)
    terapeutaId: Optional[int] = Field(default=None, gt=0)
    payload: Dict[str, Any] = Field(default_factory=dict)


class EvolucaoUpdate(Payload):
    data: Optional[str] = None
    atendimentoId: Optional[int] = Field(default=None, gt=0)
    terapeutaId: Optional[int] = Field(default=None, gt=0)
    payload: Optional[Dict[str, Any]] = None
