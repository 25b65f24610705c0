"""
AutismCad Backend — Patient Service
====================================

What:  Patient registration, listing, archiving/soft delete and attachment
       bookkeeping (foto / laudo / documento).
Who:   Called by the pacientes routes; `get_active` is reused by anamnese,
       prontuario and reports to check that a patient exists.

Registration rules:
    - CPF is stored as 11 digits; any punctuation is stripped.
    - Registering a CPF that already belongs to a live patient updates that
      patient instead of failing (the reception desk re-registers returning
      patients); the route reports it as `reaproveitado`.
    - convenio outside the accepted list falls back to "Particular".
    - A patient must be archived (ativo=false) before it can be deleted.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.config import settings
from autismcad.exceptions import (
    AppError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from autismcad.models.paciente import Paciente, PacienteTerapia, Terapia
from autismcad.normalize import (
    date_key,
    is_unique_violation,
    normalize_cpf,
    only_digits,
    optional_str,
    parse_date,
)
from autismcad.schemas.paciente import PacienteSave
from autismcad.services.file_service import file_service, is_external_url

logger = logging.getLogger(__name__)

CONVENIOS = ("Particular", "Unimed", "Bradesco", "CASSI")

ATTACHMENT_COLUMNS = {
    "foto": Paciente.foto,
    "laudo": Paciente.laudo,
    "documento": Paciente.documento,
}


def normalize_convenio(value: Optional[str]) -> str:
    convenio = optional_str(value) or "Particular"
    return convenio if convenio in CONVENIOS else "Particular"


def parse_ativo(value: Any) -> bool:
    """Only "0" / 0 / False archive a patient; a missing value means active."""
    raw = "1" if value is None else value
    if raw is False:
        return False
    return str(raw) != "0"


def normalize_terapias(data: PacienteSave) -> List[str]:
    names: List[str] = list(data.terapias or [])
    if isinstance(data.terapia, list):
        names.extend(data.terapia)
    elif isinstance(data.terapia, str):
        names.append(data.terapia)

    seen: List[str] = []
    for name in names:
        trimmed = (name or "").strip()
        if trimmed and trimmed not in seen:
            seen.append(trimmed)
    return seen


def _row_to_dict(p: Paciente, terapias: List[str]) -> Dict[str, Any]:
    nascimento = date_key(p.data_nascimento)
    inicio = date_key(p.data_inicio)
    return {
        "id": p.id,
        "nome": p.nome,
        "cpf": p.cpf,
        "data_nascimento": nascimento,
        "convenio": p.convenio,
        "email": p.email,
        "nome_responsavel": p.nome_responsavel,
        "telefone": p.telefone,
        "telefone2": p.telefone2,
        "nome_mae": p.nome_mae,
        "nome_pai": p.nome_pai,
        "sexo": p.sexo,
        "data_inicio": inicio,
        "foto": p.foto,
        "laudo": p.laudo,
        "documento": p.documento,
        "nascimento": nascimento,
        "nomeResponsavel": p.nome_responsavel,
        "nomeMae": p.nome_mae,
        "nomePai": p.nome_pai,
        "dataInicio": inicio,
        "ativo": 1 if p.ativo else 0,
        "terapias": terapias,
    }


class PacienteService:
    """
    Business logic for patients.

    Error Handling Strategy:
        Business rule failures raise AppError subclasses directly. Unexpected
        SQLAlchemy errors on writes are logged and wrapped in DatabaseError so
        no SQL reaches the client.
    """

    async def list_pacientes(
        self,
        db: AsyncSession,
        id: Optional[int] = None,
        nome: Optional[str] = None,
        cpf: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        stmt = select(Paciente).where(Paciente.deleted_at.is_(None))
        if id:
            stmt = stmt.where(Paciente.id == id)
        if nome:
            stmt = stmt.where(Paciente.nome.ilike(f"%{nome}%"))
        cpf_digits = only_digits(cpf)
        if cpf_digits:
            stmt = stmt.where(Paciente.cpf.ilike(f"%{cpf_digits}%"))

        result = await db.execute(stmt.order_by(Paciente.nome.asc()))
        rows = result.scalars().all()
        if not rows:
            return []

        terapias_map = await self._terapias_by_paciente(db, [p.id for p in rows])
        return [_row_to_dict(p, terapias_map.get(p.id, [])) for p in rows]

    async def _terapias_by_paciente(
        self, db: AsyncSession, paciente_ids: List[int]
    ) -> Dict[int, List[str]]:
        result = await db.execute(
            select(PacienteTerapia.paciente_id, Terapia.nome)
            .join(Terapia, Terapia.id == PacienteTerapia.terapia_id)
            .where(PacienteTerapia.paciente_id.in_(paciente_ids))
        )
        terapias_map: Dict[int, List[str]] = {}
        for row in result.all():
            terapias_map.setdefault(row.paciente_id, []).append(row.nome)
        return terapias_map

    async def get_active(self, db: AsyncSession, paciente_id: int) -> Paciente:
        """Live (not soft-deleted) patient, or NotFoundError."""
        result = await db.execute(
            select(Paciente)
            .where(Paciente.id == paciente_id, Paciente.deleted_at.is_(None))
            .limit(1)
        )
        paciente = result.scalar_one_or_none()
        if paciente is None:
            raise NotFoundError("Paciente nao encontrado", resource="paciente", resource_id=paciente_id)
        return paciente

    async def find_by_cpf_ativo(self, db: AsyncSession, cpf: str) -> Optional[int]:
        normalized = normalize_cpf(cpf)
        if not normalized:
            return None
        result = await db.execute(
            select(Paciente.id)
            .where(Paciente.cpf == normalized, Paciente.deleted_at.is_(None))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create(self, db: AsyncSession, data: PacienteSave) -> Tuple[int, bool]:
        """
        Register a patient. Returns (id, reaproveitado) where reaproveitado is
        True when an existing live patient with the same CPF was updated.
        """
        existing_id = await self.find_by_cpf_ativo(db, data.cpf)
        if existing_id:
            await self.save(db, data, existing_id)
            logger.info("Paciente %s re-registered by CPF", existing_id)
            return existing_id, True
        return await self.save(db, data), False

    async def save(
        self, db: AsyncSession, data: PacienteSave, paciente_id: Optional[int] = None
    ) -> int:
        nome = data.nome.strip()
        cpf = normalize_cpf(data.cpf)
        if not nome or len(cpf) != 11:
            raise ValidationError("Nome e CPF sao obrigatorios")

        values = {
            "nome": nome,
            "cpf": cpf,
            "data_nascimento": parse_date(data.nascimento),
            "convenio": normalize_convenio(data.convenio),
            "email": optional_str(data.email),
            "nome_responsavel": optional_str(data.nomeResponsavel),
            "telefone": optional_str(data.telefone),
            "telefone2": optional_str(data.telefone2),
            "nome_mae": optional_str(data.nomeMae),
            "nome_pai": optional_str(data.nomePai),
            "sexo": optional_str(data.sexo),
            "data_inicio": parse_date(data.dataInicio),
            "foto": optional_str(data.fotoAtual),
            "laudo": optional_str(data.laudoAtual),
            "documento": optional_str(data.documentoAtual),
            "ativo": parse_ativo(data.ativo),
        }
        terapia_nomes = normalize_terapias(data)

        try:
            if paciente_id:
                result = await db.execute(
                    update(Paciente)
                    .where(Paciente.id == paciente_id)
                    .values(
                        **values,
                        deleted_at=None,
                        deleted_by_user_id=None,
                        updated_at=func.now(),
                    )
                    .returning(Paciente.id)
                )
                if result.scalar_one_or_none() is None:
                    raise NotFoundError("Paciente nao encontrado", resource="paciente", resource_id=paciente_id)
                await db.execute(
                    delete(PacienteTerapia).where(PacienteTerapia.paciente_id == paciente_id)
                )
            else:
                paciente = Paciente(**values)
                db.add(paciente)
                await db.flush()
                paciente_id = paciente.id
                logger.info("Paciente created: %s", paciente_id)

            if terapia_nomes:
                await self._link_terapias(db, paciente_id, terapia_nomes)
            return paciente_id

        except AppError:
            raise
        except SQLAlchemyError as e:
            if is_unique_violation(e):
                raise ConflictError("CPF ja cadastrado", code="DUPLICATE_CPF")
            logger.error("Database error saving paciente: %s", str(e))
            raise DatabaseError(context={"paciente_id": paciente_id})

    async def _link_terapias(self, db: AsyncSession, paciente_id: int, nomes: List[str]) -> None:
        """Create unknown therapy names, then link every named therapy to the patient."""
        result = await db.execute(select(Terapia.id, Terapia.nome).where(Terapia.nome.in_(nomes)))
        known = {row.nome: row.id for row in result.all()}

        for nome in nomes:
            if nome not in known:
                terapia = Terapia(nome=nome)
                db.add(terapia)
                await db.flush()
                known[nome] = terapia.id

        for nome in nomes:
            db.add(PacienteTerapia(paciente_id=paciente_id, terapia_id=known[nome]))
        await db.flush()

    async def soft_delete(
        self, db: AsyncSession, paciente_id: int, deleted_by_user_id: Optional[int] = None
    ) -> int:
        paciente = await self.get_active(db, paciente_id)
        if paciente.ativo:
            raise ConflictError(
                "Arquive o paciente antes de excluir",
                code="PATIENT_MUST_BE_ARCHIVED_FIRST",
            )

        await db.execute(
            update(Paciente)
            .where(Paciente.id == paciente_id, Paciente.deleted_at.is_(None))
            .values(
                ativo=False,
                deleted_at=func.now(),
                deleted_by_user_id=deleted_by_user_id,
                updated_at=func.now(),
            )
        )
        logger.info("Paciente %s soft-deleted by user %s", paciente_id, deleted_by_user_id)
        return paciente_id

    async def set_ativo(self, db: AsyncSession, paciente_id: int, ativo: bool) -> Dict[str, Any]:
        result = await db.execute(
            update(Paciente)
            .where(Paciente.id == paciente_id, Paciente.deleted_at.is_(None))
            .values(ativo=ativo, updated_at=func.now())
            .returning(Paciente.id, Paciente.ativo)
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Paciente nao encontrado", resource="paciente", resource_id=paciente_id)
        return {"id": row.id, "ativo": bool(row.ativo)}

    # ── Attachments ───────────────────────────────────────────────────────

    async def presign_upload(
        self, db: AsyncSession, paciente_id: int, kind: str, filename: str, content_type: str
    ) -> Dict[str, Any]:
        await self.get_active(db, paciente_id)
        key = file_service.build_key(paciente_id, kind, filename)
        return {
            "key": key,
            "url": file_service.presign_put(key, content_type),
            "expiresInSeconds": settings.signed_url_expires_seconds,
        }

    async def commit_attachment(
        self, db: AsyncSession, paciente_id: int, kind: str, key: Optional[str]
    ) -> Dict[str, Any]:
        """
        Point the patient's `kind` column at `key` (or clear it with None).

        The row change is committed before the previously stored object is
        removed, so a failed commit never leaves the patient pointing at a
        deleted file. External URLs and an unchanged key are left alone.
        """
        if key is not None and not is_external_url(key):
            if not file_service.key_belongs_to(key, paciente_id, kind):
                raise ValidationError("Chave de arquivo invalida", code="INVALID_KEY")
            if not file_service.exists(key):
                raise NotFoundError("Arquivo nao encontrado", resource="arquivo", resource_id=key)

        paciente = await self.get_active(db, paciente_id)
        previous = getattr(paciente, kind)

        await db.execute(
            update(Paciente)
            .where(Paciente.id == paciente_id)
            .values({ATTACHMENT_COLUMNS[kind]: key, Paciente.updated_at: func.now()})
        )
        await db.commit()

        if previous and previous != key and not is_external_url(previous):
            await file_service.delete_object(previous)

        return {"ok": True}

    async def read_url(self, db: AsyncSession, paciente_id: int, kind: str) -> Dict[str, Any]:
        paciente = await self.get_active(db, paciente_id)
        key = getattr(paciente, kind)
        if not key:
            return {"url": None, "key": None}
        if is_external_url(key):
            return {"url": key, "key": key}
        return {
            "url": file_service.presign_get(key),
            "key": key,
            "expiresInSeconds": settings.signed_url_expires_seconds,
        }


paciente_service = PacienteService()
