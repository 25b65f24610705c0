"""
AutismCad Backend — Clinical Record Models
===========================================

prontuario_documentos:
    Versioned documents per (paciente, tipo). A new save always inserts the
    next version; "Finalizado" documents can no longer be removed.

evolucoes:
    Daily progress notes. At most one live note per patient, therapist and
    day (partial unique index on deleted_at IS NULL).
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from autismcad.database import Base, BigIntPK, JSONPayload


class ProntuarioDocumento(Base):
    __tablename__ = "prontuario_documentos"
    __table_args__ = (
        Index(
            "uk_prontuario_documentos_paciente_tipo_version",
            "paciente_id",
            "tipo",
            "version",
            unique=True,
        ),
        Index("idx_prontuario_documentos_paciente", "paciente_id"),
        Index("idx_prontuario_documentos_tipo", "tipo"),
        Index("idx_prontuario_documentos_created_at", "created_at"),
        Index("idx_prontuario_documentos_deleted_at", "deleted_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    paciente_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("pacientes.id", ondelete="CASCADE"), nullable=False
    )
    tipo: Mapped[str] = mapped_column(String(40), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Rascunho", server_default=text("'Rascunho'")
    )
    titulo: Mapped[Optional[str]] = mapped_column(String(180), nullable=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, nullable=False)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by_role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by_user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class Evolucao(Base):
    __tablename__ = "evolucoes"
    __table_args__ = (
        Index(
            "uk_evolucoes_paciente_terapeuta_data_ativo",
            "paciente_id",
            "terapeuta_id",
            "data",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_evolucoes_paciente", "paciente_id"),
        Index("idx_evolucoes_terapeuta", "terapeuta_id"),
        Index("idx_evolucoes_data", "data"),
        Index("idx_evolucoes_deleted_at", "deleted_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    paciente_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("pacientes.id", ondelete="CASCADE"), nullable=False
    )
    terapeuta_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("terapeutas.id", ondelete="RESTRICT"), nullable=False
    )
    atendimento_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("atendimentos.id", ondelete="SET NULL"), nullable=True
    )
    data: Mapped[date] = mapped_column(Date, nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by_user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
