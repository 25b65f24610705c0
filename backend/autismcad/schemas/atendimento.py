"""Session (atendimento) schemas, including recurring batches and day-wide removal."""

from typing import Annotated, List, Optional

from pydantic import Field

from autismcad.schemas.common import Payload


class AtendimentoSave(Payload):
    pacienteId: int = Field(gt=0)
    terapeutaId: int = Field(gt=0)
    data: str = Field(min_length=10, max_length=10)
    horaInicio: str = Field(min_length=4, max_length=8)
    horaFim: str = Field(min_length=4, max_length=8)
    turno: Optional[str] = None
    periodoInicio: Optional[str] = None
    periodoFim: Optional[str] = None
    presenca: Optional[str] = None
    realizado: Optional[bool] = None
    motivo: Optional[str] = None
    observacoes: Optional[str] = None


class AtendimentoRecorrente(Payload):
    pacienteId: int = Field(gt=0)
    terapeutaId: int = Field(gt=0)
    horaInicio: str = Field(min_length=4, max_length=8)
    horaFim: str = Field(min_length=4, max_length=8)
    turno: Optional[str] = None
    periodoInicio: str = Field(min_length=10, max_length=10)
    periodoFim: str = Field(min_length=10, max_length=10)
    diasSemana: List[Annotated[int, Field(ge=0, le=6)]] = Field(min_length=1)
    presenca: Optional[str] = None
    motivo: Optional[str] = None
    observacoes: Optional[str] = None

    def dias(self) -> List[int]:
        return sorted(set(self.diasSemana))


class ExcluirDiaRequest(Payload):
    pacienteId: int = Field(gt=0)
    terapeutaId: Optional[int] = Field(default=None, gt=0)
    horaInicio: str = Field(min_length=4, max_length=8)
    horaFim: str = Field(min_length=4, max_length=8)
    turno: Optional[str] = None
    periodoInicio: str = Field(min_length=10, max_length=10)
    periodoFim: str = Field(min_length=10, max_length=10)
    diaSemana: int = Field(ge=0, le=6)
