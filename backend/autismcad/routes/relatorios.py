"""
AutismCad Backend — Report Route Handlers
==========================================

What:  Attendance (assiduidade), progress (evolutivo) and clinical (clinico)
       reports as JSON, plus the evolutivo and clinico PDF exports.
How:   `from`/`to` default to the last 30 days. Therapist callers are scoped
       to their own sessions by RelatorioService. fpdf2 rendering is CPU-bound
       and runs in the threadpool.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.deps import AuthContext, require_permission
from autismcad.database import get_db_session
from autismcad.schemas.common import AUTH_ERRORS, ErrorResponse
from autismcad.services.pdf_service import build_clinico_pdf, build_evolutivo_pdf
from autismcad.services.relatorio_service import relatorio_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/relatorios", tags=["Relatorios"], responses=AUTH_ERRORS)

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
PERIOD_ERRORS = {400: {"description": "Invalid filter or period", "model": ErrorResponse}}


def _pdf_response(content: bytes, tipo: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="relatorio-{tipo}.pdf"',
            "Cache-Control": "no-store",
        },
    )


@router.get("/assiduidade", responses=PERIOD_ERRORS, summary="Attendance per patient")
async def assiduidade(
    pacienteNome: Optional[str] = Query(default=None, max_length=120),
    terapeutaId: Optional[int] = Query(default=None, gt=0),
    from_: Optional[str] = Query(default=None, alias="from", pattern=DATE_PATTERN),
    to: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    presenca: Optional[str] = Query(default=None, max_length=20),
    auth: AuthContext = Depends(require_permission("relatorios_clinicos:view")),
    db: AsyncSession = Depends(get_db_session),
):
    return await relatorio_service.assiduidade(
        db,
        auth.user,
        paciente_nome=pacienteNome,
        terapeuta_id=terapeutaId,
        from_value=from_,
        to_value=to,
        presenca=presenca,
    )


@router.get("/evolutivo", responses=PERIOD_ERRORS, summary="Progress report of a patient")
async def evolutivo(
    pacienteId: int = Query(gt=0),
    from_: Optional[str] = Query(default=None, alias="from", pattern=DATE_PATTERN),
    to: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    terapeutaId: Optional[int] = Query(default=None, gt=0),
    auth: AuthContext = Depends(require_permission("relatorios_clinicos:view")),
    db: AsyncSession = Depends(get_db_session),
):
    return await relatorio_service.evolutivo(db, auth.user, pacienteId, from_, to, terapeutaId)


@router.get("/evolutivo/pdf", responses=PERIOD_ERRORS, summary="Progress report as PDF")
async def evolutivo_pdf(
    pacienteId: int = Query(gt=0),
    from_: Optional[str] = Query(default=None, alias="from", pattern=DATE_PATTERN),
    to: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    terapeutaId: Optional[int] = Query(default=None, gt=0),
    auth: AuthContext = Depends(require_permission("relatorios_clinicos:export")),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    report = await relatorio_service.evolutivo(db, auth.user, pacienteId, from_, to, terapeutaId)
    return _pdf_response(await run_in_threadpool(build_evolutivo_pdf, report), "evolutivo")


@router.get("/clinico", responses=PERIOD_ERRORS, summary="Clinical summary of a patient")
async def clinico(
    pacienteId: int = Query(gt=0),
    version: Optional[int] = Query(default=None, gt=0),
    from_: Optional[str] = Query(default=None, alias="from", pattern=DATE_PATTERN),
    to: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    terapeutaId: Optional[int] = Query(default=None, gt=0),
    auth: AuthContext = Depends(require_permission("relatorios_clinicos:view")),
    db: AsyncSession = Depends(get_db_session),
):
    return await relatorio_service.clinico(db, auth.user, pacienteId, version, from_, to, terapeutaId)


@router.get("/clinico/pdf", responses=PERIOD_ERRORS, summary="Clinical summary as PDF")
async def clinico_pdf(
    pacienteId: int = Query(gt=0),
    version: Optional[int] = Query(default=None, gt=0),
    from_: Optional[str] = Query(default=None, alias="from", pattern=DATE_PATTERN),
    to: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    terapeutaId: Optional[int] = Query(default=None, gt=0),
    auth: AuthContext = Depends(require_permission("relatorios_clinicos:export")),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    report = await relatorio_service.clinico(db, auth.user, pacienteId, version, from_, to, terapeutaId)
    return _pdf_response(await run_in_threadpool(build_clinico_pdf, report), "clinico")
