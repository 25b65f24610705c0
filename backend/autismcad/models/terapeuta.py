"""
AutismCad Backend — Therapist Model
====================================

`usuario_id` links a therapist to the login account; the patient-access rule
and the "edit own profile" permission both resolve the therapist through it.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, Date, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from autismcad.database import Base, BigIntPK


class Terapeuta(Base):
    __tablename__ = "terapeutas"
    __table_args__ = (
        Index("idx_terapeutas_usuario", "usuario_id"),
        Index("idx_terapeutas_nome", "nome"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    cpf: Mapped[str] = mapped_column(String(11), nullable=False, unique=True)
    data_nascimento: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    telefone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    endereco: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    logradouro: Mapped[Optional[str]] = mapped_column(String(180), nullable=True)
    numero: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    bairro: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    cidade: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    cep: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    especialidade: Mapped[str] = mapped_column(String(80), nullable=False)
    usuario_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )
