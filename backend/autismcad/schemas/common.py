"""
AutismCad Backend — Shared Schemas
===================================

What:  Base model for request bodies plus the response envelopes every router
       references in its OpenAPI `responses=` table.

`Payload` trims surrounding whitespace on every string before length checks
run, so "  " fails a min_length=1 field the same way "" does.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class ErrorResponse(BaseModel):
    """
    What:  Error envelope returned by every non-2xx response.
    Example:
        {"error": "Paciente nao encontrado", "code": "NOT_FOUND", "request_id": "a1b2c3d4"}
    """

    error: str = Field(description="Human-readable message (pt-BR)")
    code: str = Field(description="Stable machine-readable error code")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Field-level validation details, when applicable"
    )
    request_id: Optional[str] = Field(default=None, description="Correlation ID")


class IdResponse(BaseModel):
    id: int


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    """
    Returned by /health and /api/health.

    status is "healthy" when the database answers SELECT 1, else "unhealthy"
    (and the endpoint replies 503).
    """

    ok: bool
    service: str = "autismcad-api"
    status: str
    version: str
    uptime_seconds: float
    checks: Dict[str, str]


AUTH_ERRORS = {
    401: {"description": "Missing or invalid session", "model": ErrorResponse},
    403: {"description": "Permission denied", "model": ErrorResponse},
}
