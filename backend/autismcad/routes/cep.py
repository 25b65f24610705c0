"""CEP lookup proxy for the therapist address form. Any logged-in user."""

from fastapi import APIRouter, Depends

from autismcad.auth.deps import require_user
from autismcad.auth.session import SessionUser
from autismcad.schemas.common import ErrorResponse
from autismcad.services.cep_service import cep_service

router = APIRouter(prefix="/api/cep", tags=["CEP"])


@router.get(
    "/{cep}",
    responses={
        400: {"description": "Not 8 digits", "model": ErrorResponse},
        401: {"description": "Missing or invalid session", "model": ErrorResponse},
        404: {"description": "Unknown CEP", "model": ErrorResponse},
        502: {"description": "ViaCEP failure", "model": ErrorResponse},
        503: {"description": "Circuit breaker open", "model": ErrorResponse},
    },
    summary="Resolve a CEP into street, district, city and state",
)
async def lookup_cep(cep: str, user: SessionUser = Depends(require_user)):
    return await cep_service.lookup(cep)
