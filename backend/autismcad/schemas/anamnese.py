"""Anamnese (intake interview) schemas. Interview fields pass through untyped."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AnamneseStatus = Literal["Rascunho", "Finalizada"]


class AnamneseSave(BaseModel):
    """
    Body of POST /api/anamnese. Only the patient id and status are checked
    here; the interview fields are normalized by the service.
    """

    model_config = ConfigDict(extra="allow")

    pacienteId: int = Field(gt=0)
    status: Optional[AnamneseStatus] = None
