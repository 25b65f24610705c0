"""
AutismCad Backend — Session (Atendimento) Model
================================================

What:  One scheduled therapy session for a patient.

Lifecycle:
    1. Created as presenca='Nao informado', realizado=false
    2. Attendance recorded: 'Presente' (realizado=true) or 'Ausente' (motivo required)
    3. Cancelled: soft delete via deleted_at (bulk "excluir dia" hard-deletes
       pending rows only)

Query Patterns:
    - Agenda by date/therapist → idx_atend_data_terapeuta
    - Overlap check per patient/date → idx_atend_paciente
"""

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from autismcad.database import Base, BigIntPK


class Atendimento(Base):
    __tablename__ = "atendimentos"
    __table_args__ = (
        Index("idx_atend_paciente", "paciente_id"),
        Index("idx_atend_terapeuta", "terapeuta_id"),
        Index("idx_atend_data_terapeuta", "data", "terapeuta_id"),
        Index("idx_atend_deleted_at", "deleted_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    paciente_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("pacientes.id", ondelete="CASCADE"), nullable=False
    )
    terapeuta_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("terapeutas.id", ondelete="SET NULL"), nullable=True
    )
    data: Mapped[date] = mapped_column(Date, nullable=False)
    hora_inicio: Mapped[time] = mapped_column(Time, nullable=False)
    hora_fim: Mapped[time] = mapped_column(Time, nullable=False)
    turno: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Matutino", server_default=text("'Matutino'")
    )
    periodo_inicio: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    periodo_fim: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    presenca: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="Nao informado",
        server_default=text("'Nao informado'"),
    )
    realizado: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    status_repasse: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Pendente", server_default=text("'Pendente'")
    )
    resumo_repasse: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    motivo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observacoes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by_user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )
