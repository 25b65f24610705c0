"""
AutismCad Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers;
       uvicorn serves `autismcad.main:app`.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware:  RateLimit → RequestID → Logging → GZip     │
    │               → CORS                                     │
    │                                                          │
    │  Routes:      auth, users, pacientes, arquivos,          │
    │               terapeutas, atendimentos, anamnese,        │
    │               prontuario, relatorios, cep, health        │
    │                                                          │
    │  Errors:      AppError subclasses → their status/code    │
    │               RequestValidationError → 400               │
    │               anything else → 500 "Erro interno"         │
    └──────────────────────────────────────────────────────────┘

Every error answer uses the same envelope:
    {"error": "<mensagem>", "code": "<CODE>", "request_id": "...", "details": {...}?}
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from autismcad import __version__
from autismcad.config import settings
from autismcad.database import dispose_engine
from autismcad.exceptions import (
    AppError,
    CircuitBreakerOpenError,
    DatabaseError,
    RateLimitExceededError,
)
from autismcad.middleware.logging import RequestLoggingMiddleware
from autismcad.middleware.rate_limit import RateLimitMiddleware
from autismcad.middleware.request_id import RequestIDMiddleware, request_id_var
from autismcad.routes import (
    anamnese,
    arquivos,
    atendimentos,
    auth,
    cep,
    health,
    pacientes,
    prontuario,
    relatorios,
    terapeutas,
    users,
)

logger = logging.getLogger(__name__)

VALIDATION_MESSAGES = {
    "body": "Payload invalido",
    "query": "Filtro invalido",
    "path": "Parametro invalido",
}


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    One stdout handler for the whole process; Docker collects stdout.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("fontTools").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("AutismCad Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: health checks and the error itself stay visible
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("AutismCad Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _envelope(
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    content: Dict[str, Any] = {"error": message, "code": code, "request_id": request_id_var.get("")}
    if details is not None:
        content["details"] = details
    return content


def flatten_validation_errors(errors: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Pydantic errors → {"formErrors": [...], "fieldErrors": {field: [...]}}.

    Errors attached to the body as a whole (malformed JSON, wrong top-level
    type) land in formErrors; the rest are keyed by their first field name.
    """
    form_errors: List[str] = []
    field_errors: Dict[str, List[str]] = {}
    for err in errors:
        loc = [part for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        message = err.get("msg", "Valor invalido")
        if loc and isinstance(loc[0], str):
            field_errors.setdefault(loc[0], []).append(message)
        else:
            form_errors.append(message)
    return {"formErrors": form_errors, "fieldErrors": field_errors}


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        RequestValidationError  → 400 VALIDATION_ERROR (never 422)
        RateLimitExceededError  → 429 + Retry-After
        CircuitBreakerOpenError → 503 + Retry-After
        DatabaseError           → 500 "Erro interno" (context logged only)
        AppError (base)         → exc.status / exc.code
        HTTPException           → its status (unknown routes, wrong method)
        Exception (fallback)    → 500 "Erro interno"

    Stack traces, SQL and file paths are logged server-side, never returned.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        source = errors[0]["loc"][0] if errors and errors[0].get("loc") else "body"
        message = VALIDATION_MESSAGES.get(source, "Payload invalido")
        logger.info("[%s] %s on %s %s", request_id_var.get(""), message, request.method, request.url.path)

        details = flatten_validation_errors(errors) if source == "body" else None
        return JSONResponse(status_code=400, content=_envelope(message, "VALIDATION_ERROR", details))

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=exc.status,
            content=_envelope(exc.message, exc.code, exc.details),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.context)
        return JSONResponse(
            status_code=exc.status,
            content=_envelope(exc.message, exc.code, exc.details),
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("[%s] Database error | Context: %s", request_id_var.get(""), exc.context)
        return JSONResponse(status_code=500, content=_envelope("Erro interno", exc.code))

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        rid = request_id_var.get("")
        if exc.status >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.info("[%s] %s %s: %s", rid, exc.status, exc.code, exc.message)
        return JSONResponse(status_code=exc.status, content=_envelope(exc.message, exc.code, exc.details))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Erro"
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(message, f"HTTP_{exc.status_code}"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(status_code=500, content=_envelope("Erro interno", "INTERNAL_ERROR"))


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="AutismCad API",
        description=(
            "Clinic management API: patients, therapists, sessions, anamnese, "
            "clinical record, reports and role-based access control."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(pacientes.router)
    app.include_router(arquivos.router)
    app.include_router(terapeutas.router)
    app.include_router(atendimentos.router)
    app.include_router(anamnese.router)
    app.include_router(prontuario.router)
    app.include_router(relatorios.router)
    app.include_router(cep.router)

    return app


app = create_app()
