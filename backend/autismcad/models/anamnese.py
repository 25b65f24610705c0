"""
AutismCad Backend — Anamnese Models
====================================

`anamnese` keeps the latest payload per patient (one row, upserted);
`anamnese_versions` is the append-only history. Version numbers are
unique per patient; concurrent saves that collide are retried by the service.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from autismcad.database import Base, BigIntPK, JSONPayload


class Anamnese(Base):
    __tablename__ = "anamnese"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    paciente_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("pacientes.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )


class AnamneseVersion(Base):
    __tablename__ = "anamnese_versions"
    __table_args__ = (
        Index(
            "uk_anamnese_versions_paciente_version", "paciente_id", "version", unique=True
        ),
        Index("idx_anamnese_versions_paciente_created", "paciente_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    paciente_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("pacientes.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Rascunho", server_default=text("'Rascunho'")
    )
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONPayload, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
