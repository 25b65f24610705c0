"""
AutismCad Backend — Patient Models
===================================

What:  `pacientes`, the therapy catalogue (`terapias`) and the N:N link table.

Soft delete:
    Patients are never removed physically. Deleting sets deleted_at /
    deleted_by_user_id, and the CPF uniqueness only applies to rows where
    deleted_at IS NULL, so a deleted patient can be registered again.

Attachments:
    foto / laudo / documento hold a storage key (or a legacy http(s) URL).
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
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

from autismcad.database import Base, BigIntPK


class Paciente(Base):
    __tablename__ = "pacientes"
    __table_args__ = (
        Index(
            "uk_pacientes_cpf_ativo",
            "cpf",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_pacientes_nome", "nome"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    cpf: Mapped[str] = mapped_column(String(11), nullable=False, comment="Digits only")
    data_nascimento: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    convenio: Mapped[str] = mapped_column(
        String(40), nullable=False, default="Particular", server_default=text("'Particular'")
    )
    email: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    nome_responsavel: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    telefone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    telefone2: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    nome_mae: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    nome_pai: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    sexo: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    data_inicio: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    foto: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    laudo: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    documento: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ativo: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by_user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Paciente(id={self.id}, nome={self.nome!r})>"


class Terapia(Base):
    __tablename__ = "terapias"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)


class PacienteTerapia(Base):
    __tablename__ = "paciente_terapia"

    paciente_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("pacientes.id", ondelete="CASCADE"), primary_key=True
    )
    terapia_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("terapias.id", ondelete="CASCADE"), primary_key=True
    )
