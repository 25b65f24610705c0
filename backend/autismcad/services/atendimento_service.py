"""
AutismCad Backend — Session (Atendimento) Service
==================================================

What:  Scheduling and attendance: single sessions, recurring batches and
       bulk removal of a weekly slot.

Scheduling rules:
    - A patient cannot have two live sessions overlapping on the same date
      (new_end > start AND new_start < end). Therapist overlap is allowed:
      group sessions are booked per patient.
    - "Ausente" requires a motivo; `realizado` mirrors presenca == "Presente".
    - Weekdays follow the 0=Sunday..6=Saturday convention used by the agenda UI.
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.exceptions import (
    AppError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from autismcad.models.atendimento import Atendimento
from autismcad.models.paciente import Paciente
from autismcad.models.terapeuta import Terapeuta
from autismcad.normalize import date_key, iso_datetime, optional_str, time_key
from autismcad.schemas.atendimento import (
    AtendimentoRecorrente,
    AtendimentoSave,
    ExcluirDiaRequest,
)

logger = logging.getLogger(__name__)

TURNOS = ("Matutino", "Vespertino")
PRESENCAS = ("Presente", "Ausente", "Nao informado")
MAX_RECORRENTES = 400

_TIME_HM = re.compile(r"^\d{2}:\d{2}$")
_TIME_HMS = re.compile(r"^\d{2}:\d{2}:\d{2}$")
_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def normalize_turno(value: Optional[str]) -> str:
    return value if value in TURNOS else "Matutino"


def normalize_presenca(value: Optional[str]) -> str:
    return value if value in PRESENCAS else "Nao informado"


def parse_time(value: str) -> time:
    """'HH:MM' or 'HH:MM:SS' → time; anything else is INVALID_TIME."""
    text = (value or "").strip()
    if _TIME_HM.match(text):
        text = f"{text}:00"
    if not _TIME_HMS.match(text):
        raise ValidationError("Horario invalido", code="INVALID_TIME")
    try:
        return time.fromisoformat(text)
    except ValueError:
        raise ValidationError("Horario invalido", code="INVALID_TIME")


def parse_strict_date(value: str) -> date:
    text = (value or "").strip()
    if not _DATE.match(text):
        raise ValidationError("Data invalida", code="INVALID_DATE")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError("Data invalida", code="INVALID_DATE")


def weekday_sunday_first(day: date) -> int:
    """0=Sunday .. 6=Saturday (Python's weekday() is 0=Monday)."""
    return (day.weekday() + 1) % 7


def dates_for_weekdays(inicio: date, fim: date, dias: List[int]) -> List[date]:
    wanted = set(dias)
    result = []
    current = inicio
    while current <= fim:
        if weekday_sunday_first(current) in wanted:
            result.append(current)
        current += timedelta(days=1)
    return result


def minutes_between(inicio: Any, fim: Any) -> int:
    """Session length in minutes from two time values (or 'HH:MM[:SS]' strings)."""
    start = inicio if isinstance(inicio, time) else parse_time(str(inicio)[:8])
    end = fim if isinstance(fim, time) else parse_time(str(fim)[:8])
    base = date(2000, 1, 1)
    delta = datetime.combine(base, end) - datetime.combine(base, start)
    return int(delta.total_seconds() // 60)


class AtendimentoService:
    async def list_atendimentos(
        self,
        db: AsyncSession,
        paciente_id: Optional[int] = None,
        terapeuta_id: Optional[int] = None,
        data_ini: Optional[str] = None,
        data_fim: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(Atendimento, Paciente.nome.label("paciente_nome"), Terapeuta.nome.label("terapeuta_nome"))
            .join(
                Paciente,
                (Paciente.id == Atendimento.paciente_id) & Paciente.deleted_at.is_(None),
            )
            .outerjoin(Terapeuta, Terapeuta.id == Atendimento.terapeuta_id)
            .where(Atendimento.deleted_at.is_(None))
        )
        if paciente_id:
            stmt = stmt.where(Atendimento.paciente_id == paciente_id)
        if terapeuta_id:
            stmt = stmt.where(Atendimento.terapeuta_id == terapeuta_id)
        if data_ini:
            stmt = stmt.where(Atendimento.data >= parse_strict_date(data_ini))
        if data_fim:
            stmt = stmt.where(Atendimento.data <= parse_strict_date(data_fim))

        stmt = stmt.order_by(
            Atendimento.data.desc(), Atendimento.hora_inicio.desc(), Atendimento.id.desc()
        )
        result = await db.execute(stmt)

        rows = []
        for atendimento, paciente_nome, terapeuta_nome in result.all():
            rows.append(
                {
                    "id": atendimento.id,
                    "paciente_id": atendimento.paciente_id,
                    "terapeuta_id": atendimento.terapeuta_id,
                    "pacienteNome": paciente_nome,
                    "terapeutaNome": terapeuta_nome,
                    "data": date_key(atendimento.data),
                    "hora_inicio": time_key(atendimento.hora_inicio),
                    "hora_fim": time_key(atendimento.hora_fim),
                    "turno": atendimento.turno,
                    "periodo_inicio": date_key(atendimento.periodo_inicio),
                    "periodo_fim": date_key(atendimento.periodo_fim),
                    "presenca": atendimento.presenca,
                    "realizado": 1 if atendimento.realizado else 0,
                    "motivo": atendimento.motivo,
                    "observacoes": atendimento.observacoes,
                    "created_at": iso_datetime(atendimento.created_at),
                    "updated_at": iso_datetime(atendimento.updated_at),
                }
            )
        return rows

    async def has_conflict(
        self,
        db: AsyncSession,
        paciente_id: int,
        data: date,
        hora_inicio: time,
        hora_fim: time,
        ignore_id: Optional[int] = None,
    ) -> bool:
        stmt = select(Atendimento.id).where(
            Atendimento.paciente_id == paciente_id,
            Atendimento.data == data,
            Atendimento.deleted_at.is_(None),
            Atendimento.hora_inicio < hora_fim,
            Atendimento.hora_fim > hora_inicio,
        )
        if ignore_id:
            stmt = stmt.where(Atendimento.id != ignore_id)
        result = await db.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def save(
        self,
        db: AsyncSession,
        data: AtendimentoSave,
        atendimento_id: Optional[int] = None,
    ) -> int:
        """
        Insert or update a session.

        Raises:
            ValidationError: bad date/time, or Ausente without motivo
            ConflictError:   overlapping session for the same patient (SCHEDULE_CONFLICT)
            NotFoundError:   update target does not exist
        """
        dia = parse_strict_date(data.data)
        hora_inicio = parse_time(data.horaInicio)
        hora_fim = parse_time(data.horaFim)
        presenca = normalize_presenca(data.presenca)
        motivo = optional_str(data.motivo)

        if presenca == "Ausente" and not motivo:
            raise ValidationError("Motivo e obrigatorio quando ausente", code="MOTIVO_REQUIRED")

        if await self.has_conflict(db, data.pacienteId, dia, hora_inicio, hora_fim, atendimento_id):
            raise ConflictError("Conflito de horario para este paciente", code="SCHEDULE_CONFLICT")

        values = {
            "paciente_id": data.pacienteId,
            "terapeuta_id": data.terapeutaId,
            "data": dia,
            "hora_inicio": hora_inicio,
            "hora_fim": hora_fim,
            "turno": normalize_turno(data.turno),
            "periodo_inicio": parse_strict_date(data.periodoInicio) if data.periodoInicio else None,
            "periodo_fim": parse_strict_date(data.periodoFim) if data.periodoFim else None,
            "presenca": presenca,
            "realizado": presenca == "Presente",
            "motivo": motivo,
            "observacoes": optional_str(data.observacoes),
        }

        try:
            if atendimento_id:
                result = await db.execute(
                    update(Atendimento)
                    .where(Atendimento.id == atendimento_id)
                    .values(**values, updated_at=func.now())
                    .returning(Atendimento.id)
                )
                if result.scalar_one_or_none() is None:
                    raise NotFoundError(
                        "Atendimento nao encontrado", resource="atendimento", resource_id=atendimento_id
                    )
                return atendimento_id

            atendimento = Atendimento(**values)
            db.add(atendimento)
            await db.flush()
            return atendimento.id

        except AppError:
            raise
        except SQLAlchemyError as e:
            logger.error("Database error saving atendimento: %s", str(e))
            raise DatabaseError(context={"atendimento_id": atendimento_id})

    async def soft_delete(
        self, db: AsyncSession, atendimento_id: int, deleted_by_user_id: Optional[int] = None
    ) -> int:
        result = await db.execute(
            update(Atendimento)
            .where(Atendimento.id == atendimento_id, Atendimento.deleted_at.is_(None))
            .values(
                deleted_at=func.now(),
                deleted_by_user_id=deleted_by_user_id,
                updated_at=func.now(),
            )
            .returning(Atendimento.id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Atendimento nao encontrado", resource="atendimento", resource_id=atendimento_id)
        return atendimento_id

    async def create_recorrentes(
        self, db: AsyncSession, payload: AtendimentoRecorrente
    ) -> Dict[str, Any]:
        """
        One session per matching weekday in [periodoInicio, periodoFim].

        The whole batch shares the request transaction: a conflict on any day
        aborts it and nothing is kept.
        """
        inicio = parse_strict_date(payload.periodoInicio)
        fim = parse_strict_date(payload.periodoFim)
        if inicio > fim:
            raise ValidationError("Data inicial maior que final", code="INVALID_PERIOD")

        dias = dates_for_weekdays(inicio, fim, payload.dias())
        if len(dias) > MAX_RECORRENTES:
            raise ValidationError(
                "Intervalo muito grande. Limite de 400 atendimentos por lote.",
                code="TOO_LARGE",
            )
        if not dias:
            raise ValidationError(
                "Nenhum atendimento gerado para o periodo e dias selecionados",
                code="NO_MATCH",
            )

        criados = []
        for dia in dias:
            item = AtendimentoSave(
                pacienteId=payload.pacienteId,
                terapeutaId=payload.terapeutaId,
                data=dia.isoformat(),
                horaInicio=payload.horaInicio,
                horaFim=payload.horaFim,
                turno=payload.turno,
                periodoInicio=payload.periodoInicio,
                periodoFim=payload.periodoFim,
                presenca=payload.presenca,
                motivo=payload.motivo,
                observacoes=payload.observacoes,
            )
            new_id = await self.save(db, item)
            criados.append({"id": new_id, "data": dia.isoformat()})

        logger.info(
            "Created %d recurring sessions for paciente %s", len(criados), payload.pacienteId
        )
        return {"criados": len(criados), "atendimentos": criados}

    async def excluir_dia(self, db: AsyncSession, payload: ExcluirDiaRequest) -> Dict[str, int]:
        """
        Hard-delete the still-pending sessions of a weekly slot.

        Only rows that are neither "Ausente" nor realizado are removed, so
        attendance history survives.
        """
        inicio = parse_strict_date(payload.periodoInicio)
        fim = parse_strict_date(payload.periodoFim)
        if inicio > fim:
            raise ValidationError("Data inicial maior que final", code="INVALID_PERIOD")

        stmt = select(Atendimento.id, Atendimento.data).where(
            Atendimento.paciente_id == payload.pacienteId,
            Atendimento.hora_inicio == parse_time(payload.horaInicio),
            Atendimento.hora_fim == parse_time(payload.horaFim),
            Atendimento.turno == normalize_turno(payload.turno),
            Atendimento.data >= inicio,
            Atendimento.data <= fim,
            Atendimento.deleted_at.is_(None),
            Atendimento.presenca != "Ausente",
            Atendimento.realizado.is_(False),
        )
        if payload.terapeutaId:
            stmt = stmt.where(Atendimento.terapeuta_id == payload.terapeutaId)

        result = await db.execute(stmt)
        ids = [
            row.id
            for row in result.all()
            if weekday_sunday_first(row.data) == payload.diaSemana
        ]
        if ids:
            await db.execute(delete(Atendimento).where(Atendimento.id.in_(ids)))

        logger.info("Removed %d pending sessions for paciente %s", len(ids), payload.pacienteId)
        return {"removidos": len(ids)}


atendimento_service = AtendimentoService()
