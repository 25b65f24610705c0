"""
AutismCad Backend — Therapist Service
======================================

What:  CRUD for therapists plus the two lookups the access rules depend on
       (therapist linked to a login account, therapist attending a patient).
Who:   Called by the terapeutas routes, the patient-access check, the
       prontuario service and the reports.

Address handling:
    The form sends the address split (logradouro/numero/bairro/cidade, usually
    pre-filled from the CEP lookup). `endereco` stores the joined single-line
    form so older screens that only read `endereco` keep working.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, exists, func, select, update
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
from autismcad.models.prontuario import Evolucao
from autismcad.models.terapeuta import Terapeuta
from autismcad.normalize import (
    date_key,
    is_unique_violation,
    normalize_cpf,
    only_digits,
    optional_str,
    parse_date,
)
from autismcad.schemas.terapeuta import TerapeutaSave

logger = logging.getLogger(__name__)

ESPECIALIDADES = (
    "Psicologia",
    "Terapia Ocupacional",
    "Fonoaudiologia",
    "Fisioterapia",
    "Psicopedagogia",
    "Acompanhante Terapeutico (AT)",
)


def normalize_especialidade(value: Optional[str]) -> str:
    text = (value or "").strip()
    if not text:
        return "Nao informado"
    for known in ESPECIALIDADES:
        if known.lower() == text.lower():
            return known
    return text


def normalize_cep(value: Optional[str]) -> Optional[str]:
    digits = only_digits(value)
    return digits if len(digits) == 8 else None


def build_endereco(data: TerapeutaSave) -> Optional[str]:
    parts = [
        optional_str(data.logradouro),
        optional_str(data.numero),
        optional_str(data.bairro),
        optional_str(data.cidade),
    ]
    joined = ", ".join(p for p in parts if p)
    return joined or optional_str(data.endereco)


def _row_to_dict(t: Terapeuta) -> Dict[str, Any]:
    return {
        "id": t.id,
        "nome": t.nome,
        "cpf": t.cpf,
        "data_nascimento": date_key(t.data_nascimento),
        "nascimento": date_key(t.data_nascimento),
        "email": t.email,
        "telefone": t.telefone,
        "endereco": t.endereco,
        "logradouro": t.logradouro or t.endereco,
        "numero": t.numero,
        "bairro": t.bairro,
        "cidade": t.cidade,
        "cep": t.cep,
        "especialidade": t.especialidade,
        "usuario_id": t.usuario_id,
    }


class TerapeutaService:
    """Stateless therapist operations; every method receives the request's session."""

    async def list_terapeutas(
        self,
        db: AsyncSession,
        id: Optional[int] = None,
        nome: Optional[str] = None,
        cpf: Optional[str] = None,
        especialidade: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(Terapeuta)
        if id:
            stmt = stmt.where(Terapeuta.id == id)
        if nome and nome.strip():
            stmt = stmt.where(Terapeuta.nome.ilike(f"%{nome.strip()}%"))
        cpf_digits = only_digits(cpf)
        if cpf_digits:
            stmt = stmt.where(Terapeuta.cpf.ilike(f"%{cpf_digits}%"))
        if especialidade and especialidade.strip():
            stmt = stmt.where(Terapeuta.especialidade.ilike(f"%{especialidade.strip()}%"))

        result = await db.execute(stmt.order_by(Terapeuta.nome.asc()))
        return [_row_to_dict(t) for t in result.scalars().all()]

    async def save(
        self,
        db: AsyncSession,
        data: TerapeutaSave,
        terapeuta_id: Optional[int] = None,
    ) -> int:
        """
        Insert (terapeuta_id=None) or update a therapist. Returns the id.

        Raises:
            ValidationError: CPF does not have 11 digits
            NotFoundError:   update target does not exist
            ConflictError:   CPF already registered for another therapist
        """
        cpf = normalize_cpf(data.cpf)
        if len(cpf) != 11:
            raise ValidationError("Nome, CPF e especialidade sao obrigatorios")

        values = {
            "nome": data.nome.strip(),
            "cpf": cpf,
            "data_nascimento": parse_date(data.nascimento),
            "email": optional_str(data.email),
            "telefone": optional_str(data.telefone),
            "endereco": build_endereco(data),
            "logradouro": optional_str(data.logradouro),
            "numero": optional_str(data.numero),
            "bairro": optional_str(data.bairro),
            "cidade": optional_str(data.cidade),
            "cep": normalize_cep(data.cep),
            "especialidade": normalize_especialidade(data.especialidade),
        }
        if data.usuarioId is not None:
            values["usuario_id"] = data.usuarioId

        try:
            if terapeuta_id:
                result = await db.execute(
                    update(Terapeuta)
                    .where(Terapeuta.id == terapeuta_id)
                    .values(**values, updated_at=func.now())
                    .returning(Terapeuta.id)
                )
                if result.scalar_one_or_none() is None:
                    raise NotFoundError("Terapeuta nao encontrado", resource="terapeuta", resource_id=terapeuta_id)
                return terapeuta_id

            terapeuta = Terapeuta(**values)
            db.add(terapeuta)
            await db.flush()
            logger.info("Terapeuta created: %s", terapeuta.id)
            return terapeuta.id

        except AppError:
            raise
        except SQLAlchemyError as e:
            if is_unique_violation(e):
                raise ConflictError("CPF ja cadastrado para outro terapeuta", code="DUPLICATE_CPF")
            logger.error("Database error saving terapeuta: %s", str(e))
            raise DatabaseError(context={"terapeuta_id": terapeuta_id})

    async def delete(self, db: AsyncSession, terapeuta_id: int) -> int:
        """Deletes a therapist without progress notes; their sessions lose the therapist link."""
        found = await db.execute(select(Terapeuta.id).where(Terapeuta.id == terapeuta_id).limit(1))
        if found.scalar_one_or_none() is None:
            raise NotFoundError("Terapeuta nao encontrado", resource="terapeuta", resource_id=terapeuta_id)

        has_evolucoes = await db.execute(
            select(Evolucao.id).where(Evolucao.terapeuta_id == terapeuta_id).limit(1)
        )
        if has_evolucoes.scalar_one_or_none() is not None:
            raise ConflictError(
                "Nao e possivel excluir terapeuta com evolucoes vinculadas",
                code="THERAPIST_HAS_EVOLUCOES",
            )

        await db.execute(
            update(Atendimento)
            .where(Atendimento.terapeuta_id == terapeuta_id)
            .values(terapeuta_id=None)
        )
        await db.execute(delete(Terapeuta).where(Terapeuta.id == terapeuta_id))
        logger.info("Terapeuta deleted: %s", terapeuta_id)
        return terapeuta_id

    async def get_by_usuario(self, db: AsyncSession, user_id: int) -> Optional[Dict[str, Any]]:
        """Therapist row linked to a login account, as {id, nome}, or None."""
        result = await db.execute(
            select(Terapeuta.id, Terapeuta.nome).where(Terapeuta.usuario_id == user_id).limit(1)
        )
        row = result.first()
        return {"id": row.id, "nome": row.nome} if row else None

    async def atende_paciente(self, db: AsyncSession, paciente_id: int, terapeuta_id: int) -> bool:
        result = await db.execute(
            select(
                exists().where(
                    Atendimento.paciente_id == paciente_id,
                    Atendimento.terapeuta_id == terapeuta_id,
                    Atendimento.deleted_at.is_(None),
                )
            )
        )
        return bool(result.scalar())


terapeuta_service = TerapeutaService()
