"""Create clinic tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Initial schema: accounts and access control, patients and therapies,
       therapists, sessions, anamnese and the clinical record.
How:   BIGINT identities, JSONB payloads on PostgreSQL. Live-row uniqueness
       (patient CPF, one evolucao per patient/therapist/day) uses partial
       indexes on `deleted_at IS NULL`.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BigIntPK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
JSONPayload = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
LIVE_ROWS = sa.text("deleted_at IS NULL")


def _timestamps(updated: bool = True):
    columns = [sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    # ── Accounts & access control ─────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("nome", sa.String(120), nullable=False),
        sa.Column("email", sa.String(160), nullable=False, unique=True),
        sa.Column(
            "senha_hash",
            sa.String(255),
            nullable=False,
            comment="bcrypt hash; 64-hex values are legacy SHA-256 digests",
        ),
        sa.Column("role", sa.String(32), nullable=False, server_default=sa.text("'terapeuta'")),
        sa.Column("ativo", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "roles",
        sa.Column("slug", sa.String(32), primary_key=True),
        sa.Column("nome", sa.String(80), nullable=False),
    )

    op.create_table(
        "permissions",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("resource", sa.String(80), nullable=False),
        sa.Column("action", sa.String(40), nullable=False),
        sa.Column("descricao", sa.Text(), nullable=True),
        sa.UniqueConstraint("resource", "action", name="uk_permissions_resource_action"),
    )

    op.create_table(
        "role_permissions",
        sa.Column("role", sa.String(32), primary_key=True),
        sa.Column(
            "permission_id",
            sa.BigInteger(),
            sa.ForeignKey("permissions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_index("idx_role_permissions_role", "role_permissions", ["role"])
    op.create_index("idx_role_permissions_permission", "role_permissions", ["permission_id"])

    op.create_table(
        "access_logs",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_email", sa.String(160), nullable=False),
        sa.Column("ip_origem", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("browser", sa.String(120), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'SUCESSO'")),
        *_timestamps(updated=False),
    )
    op.create_index("idx_access_logs_created_at", "access_logs", ["created_at"])
    op.create_index("idx_access_logs_user_id", "access_logs", ["user_id"])
    op.create_index("idx_access_logs_status_created_at", "access_logs", ["status", "created_at"])

    # ── Patients & therapies ──────────────────────────────────────────────
    op.create_table(
        "pacientes",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("nome", sa.String(120), nullable=False),
        sa.Column("cpf", sa.String(11), nullable=False, comment="Digits only"),
        sa.Column("data_nascimento", sa.Date(), nullable=True),
        sa.Column("convenio", sa.String(40), nullable=False, server_default=sa.text("'Particular'")),
        sa.Column("email", sa.String(120), nullable=True),
        sa.Column("nome_responsavel", sa.String(120), nullable=True),
        sa.Column("telefone", sa.String(20), nullable=True),
        sa.Column("telefone2", sa.String(20), nullable=True),
        sa.Column("nome_mae", sa.String(120), nullable=True),
        sa.Column("nome_pai", sa.String(120), nullable=True),
        sa.Column("sexo", sa.String(20), nullable=True),
        sa.Column("data_inicio", sa.Date(), nullable=True),
        sa.Column("foto", sa.String(255), nullable=True),
        sa.Column("laudo", sa.String(255), nullable=True),
        sa.Column("documento", sa.String(255), nullable=True),
        sa.Column("ativo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_by_user_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "uk_pacientes_cpf_ativo",
        "pacientes",
        ["cpf"],
        unique=True,
        postgresql_where=LIVE_ROWS,
        sqlite_where=LIVE_ROWS,
    )
    op.create_index("idx_pacientes_nome", "pacientes", ["nome"])

    op.create_table(
        "terapias",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("nome", sa.String(40), nullable=False, unique=True),
    )

    op.create_table(
        "paciente_terapia",
        sa.Column(
            "paciente_id",
            sa.BigInteger(),
            sa.ForeignKey("pacientes.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "terapia_id",
            sa.Integer(),
            sa.ForeignKey("terapias.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # ── Therapists ────────────────────────────────────────────────────────
    op.create_table(
        "terapeutas",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column("nome", sa.String(120), nullable=False),
        sa.Column("cpf", sa.String(11), nullable=False, unique=True),
        sa.Column("data_nascimento", sa.Date(), nullable=True),
        sa.Column("email", sa.String(120), nullable=True),
        sa.Column("telefone", sa.String(20), nullable=True),
        sa.Column("endereco", sa.String(255), nullable=True),
        sa.Column("logradouro", sa.String(180), nullable=True),
        sa.Column("numero", sa.String(20), nullable=True),
        sa.Column("bairro", sa.String(120), nullable=True),
        sa.Column("cidade", sa.String(120), nullable=True),
        sa.Column("cep", sa.String(8), nullable=True),
        sa.Column("especialidade", sa.String(80), nullable=False),
        sa.Column("usuario_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_terapeutas_usuario", "terapeutas", ["usuario_id"])
    op.create_index("idx_terapeutas_nome", "terapeutas", ["nome"])

    # ── Sessions ──────────────────────────────────────────────────────────
    op.create_table(
        "atendimentos",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column(
            "paciente_id",
            sa.BigInteger(),
            sa.ForeignKey("pacientes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "terapeuta_id",
            sa.BigInteger(),
            sa.ForeignKey("terapeutas.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("data", sa.Date(), nullable=False),
        sa.Column("hora_inicio", sa.Time(), nullable=False),
        sa.Column("hora_fim", sa.Time(), nullable=False),
        sa.Column("turno", sa.String(20), nullable=False, server_default=sa.text("'Matutino'")),
        sa.Column("periodo_inicio", sa.Date(), nullable=True),
        sa.Column("periodo_fim", sa.Date(), nullable=True),
        sa.Column("presenca", sa.String(20), nullable=False, server_default=sa.text("'Nao informado'")),
        sa.Column("realizado", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status_repasse", sa.String(20), nullable=False, server_default=sa.text("'Pendente'")),
        sa.Column("resumo_repasse", sa.Text(), nullable=True),
        sa.Column("motivo", sa.Text(), nullable=True),
        sa.Column("observacoes", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_by_user_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_atend_paciente", "atendimentos", ["paciente_id"])
    op.create_index("idx_atend_terapeuta", "atendimentos", ["terapeuta_id"])
    op.create_index("idx_atend_data_terapeuta", "atendimentos", ["data", "terapeuta_id"])
    op.create_index("idx_atend_deleted_at", "atendimentos", ["deleted_at"])

    # ── Anamnese ──────────────────────────────────────────────────────────
    op.create_table(
        "anamnese",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column(
            "paciente_id",
            sa.BigInteger(),
            sa.ForeignKey("pacientes.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("payload", JSONPayload, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "anamnese_versions",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column(
            "paciente_id",
            sa.BigInteger(),
            sa.ForeignKey("pacientes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Rascunho'")),
        sa.Column("payload", JSONPayload, nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index(
        "uk_anamnese_versions_paciente_version",
        "anamnese_versions",
        ["paciente_id", "version"],
        unique=True,
    )
    op.create_index(
        "idx_anamnese_versions_paciente_created", "anamnese_versions", ["paciente_id", "created_at"]
    )

    # ── Clinical record ───────────────────────────────────────────────────
    op.create_table(
        "prontuario_documentos",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column(
            "paciente_id",
            sa.BigInteger(),
            sa.ForeignKey("pacientes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tipo", sa.String(40), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Rascunho'")),
        sa.Column("titulo", sa.String(180), nullable=True),
        sa.Column("payload", JSONPayload, nullable=False),
        sa.Column(
            "created_by_user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_by_role", sa.String(32), nullable=True),
        *_timestamps(updated=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column(
            "deleted_by_user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index(
        "uk_prontuario_documentos_paciente_tipo_version",
        "prontuario_documentos",
        ["paciente_id", "tipo", "version"],
        unique=True,
    )
    op.create_index("idx_prontuario_documentos_paciente", "prontuario_documentos", ["paciente_id"])
    op.create_index("idx_prontuario_documentos_tipo", "prontuario_documentos", ["tipo"])
    op.create_index("idx_prontuario_documentos_created_at", "prontuario_documentos", ["created_at"])
    op.create_index("idx_prontuario_documentos_deleted_at", "prontuario_documentos", ["deleted_at"])

    op.create_table(
        "evolucoes",
        sa.Column("id", BigIntPK, primary_key=True, autoincrement=True),
        sa.Column(
            "paciente_id",
            sa.BigInteger(),
            sa.ForeignKey("pacientes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "terapeuta_id",
            sa.BigInteger(),
            sa.ForeignKey("terapeutas.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "atendimento_id",
            sa.BigInteger(),
            sa.ForeignKey("atendimentos.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("data", sa.Date(), nullable=False),
        sa.Column("payload", JSONPayload, nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column(
            "deleted_by_user_id",
            sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index(
        "uk_evolucoes_paciente_terapeuta_data_ativo",
        "evolucoes",
        ["paciente_id", "terapeuta_id", "data"],
        unique=True,
        postgresql_where=LIVE_ROWS,
        sqlite_where=LIVE_ROWS,
    )
    op.create_index("idx_evolucoes_paciente", "evolucoes", ["paciente_id"])
    op.create_index("idx_evolucoes_terapeuta", "evolucoes", ["terapeuta_id"])
    op.create_index("idx_evolucoes_data", "evolucoes", ["data"])
    op.create_index("idx_evolucoes_deleted_at", "evolucoes", ["deleted_at"])


def downgrade() -> None:
    """Drops children before parents. All data is lost."""
    for table in (
        "evolucoes",
        "prontuario_documentos",
        "anamnese_versions",
        "anamnese",
        "atendimentos",
        "terapeutas",
        "paciente_terapia",
        "terapias",
        "pacientes",
        "access_logs",
        "role_permissions",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
