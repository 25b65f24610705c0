"""
AutismCad Backend — Users, Roles & Permissions Models
======================================================

What:  ORM models for login accounts, the role catalogue, the permission
       catalogue, role→permission grants and the login access log.
Who:   Used by the auth layer (access loading, login), the users service and
       the seed command.

Table Design Rationale:
    - users.role is a plain slug (not a FK): legacy rows may carry roles that
      are not in the `roles` table, and /api/roles lists both.
    - role_permissions is keyed by (role, permission_id); deleting a permission
      cascades its grants.
    - access_logs keeps the e-mail as typed, so failed logins for unknown
      accounts are still recorded (user_id is then NULL).
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from autismcad.database import Base, BigIntPK


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(160), nullable=False, unique=True)
    senha_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="bcrypt hash; 64-hex values are legacy SHA-256 digests",
    )
    role: Mapped[str] = mapped_column(
        String(32), nullable=False, default="terapeuta", server_default=text("'terapeuta'")
    )
    ativo: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role!r})>"


class Role(Base):
    __tablename__ = "roles"

    slug: Mapped[str] = mapped_column(String(32), primary_key=True)
    nome: Mapped[str] = mapped_column(String(80), nullable=False)


class Permission(Base):
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("resource", "action", name="uk_permissions_resource_action"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    resource: Mapped[str] = mapped_column(String(80), nullable=False)
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    descricao: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def key(self) -> str:
        return f"{self.resource}:{self.action}"


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (
        Index("idx_role_permissions_role", "role"),
        Index("idx_role_permissions_permission", "permission_id"),
    )

    role: Mapped[str] = mapped_column(String(32), primary_key=True)
    permission_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )


class AccessLog(Base):
    """One row per login attempt (status SUCESSO or FALHA)."""

    __tablename__ = "access_logs"
    __table_args__ = (
        Index("idx_access_logs_created_at", "created_at"),
        Index("idx_access_logs_user_id", "user_id"),
        Index("idx_access_logs_status_created_at", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    user_email: Mapped[str] = mapped_column(String(160), nullable=False)
    ip_origem: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    browser: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="SUCESSO", server_default=text("'SUCESSO'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
