"""
AutismCad Backend — Health Check Routes
========================================

What:  Liveness and readiness checks plus an admin-only storage smoke test.
How:   /health and /api/health run SELECT 1 against the database and answer
       503 when it fails, so load balancers route away from the instance.
       /api/health/storage writes, reads back and deletes a scratch object.

Status levels:
    - healthy:   database reachable (HTTP 200)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from autismcad import __version__
from autismcad.auth.deps import AuthContext, require_admin_geral
from autismcad.database import engine
from autismcad.schemas.common import AUTH_ERRORS, HealthResponse
from autismcad.services.file_service import file_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
@router.get("/api/health", response_model=HealthResponse, include_in_schema=False)
async def health_check():
    """
    Lightweight on purpose: health checks run every few seconds, so the database
    check is a bare SELECT 1.
    """
    db_status = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    healthy = db_status == "connected"
    body = HealthResponse(
        ok=healthy,
        status="healthy" if healthy else "unhealthy",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        checks={"database": db_status},
    )
    if not healthy:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body


@router.get("/api/health/storage", responses=AUTH_ERRORS, summary="Storage smoke test (admin-geral)")
async def storage_health(auth: AuthContext = Depends(require_admin_geral)):
    result = await file_service.smoke_test()
    if not result["ok"]:
        return JSONResponse(status_code=502, content=result)
    return result
