"""
AutismCad Backend — Clinical Record (Prontuario) Service
=========================================================

What:  Versioned clinical documents, daily progress notes (evolucoes) and the
       merged timeline shown on the patient's record page.

Documents:
    Each save inserts version max+1 for (paciente, tipo); nothing is updated
    in place except the Rascunho → Finalizado transition and soft delete.

Evolucoes:
    One live note per (paciente, terapeuta, data). A therapist always writes
    as themselves: whatever terapeutaId they send is replaced by their own.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.permissions import role_canon
from autismcad.auth.session import SessionUser
from autismcad.exceptions import (
    AppError,
    ConflictError,
    DatabaseError,
    ForbiddenError,
    ValidationError,
)
from autismcad.models.prontuario import Evolucao, ProntuarioDocumento
from autismcad.models.terapeuta import Terapeuta
from autismcad.models.user import User
from autismcad.normalize import date_key, is_unique_violation, iso_datetime, parse_date
from autismcad.schemas.prontuario import DOC_STATUS, DOC_TYPES, DocumentoSave, EvolucaoCreate, EvolucaoUpdate
from autismcad.services.terapeuta_service import terapeuta_service

logger = logging.getLogger(__name__)

MAX_VERSION_ATTEMPTS = 3


def _to_date(value: Optional[str]) -> date:
    parsed = parse_date(value) if value else date.today()
    if parsed is None:
        raise ValidationError("Data invalida")
    return parsed


def _timeline_sort_key(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return datetime.min


def _documento_dict(doc: ProntuarioDocumento, autor_nome: Optional[str]) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "paciente_id": doc.paciente_id,
        "tipo": doc.tipo,
        "version": doc.version,
        "status": doc.status,
        "titulo": doc.titulo,
        "payload": doc.payload,
        "created_by_user_id": doc.created_by_user_id,
        "created_by_role": doc.created_by_role,
        "created_at": iso_datetime(doc.created_at),
        "autor_nome": autor_nome,
    }


def _evolucao_dict(evolucao: Evolucao, terapeuta_nome: Optional[str]) -> Dict[str, Any]:
    return {
        "id": evolucao.id,
        "paciente_id": evolucao.paciente_id,
        "terapeuta_id": evolucao.terapeuta_id,
        "atendimento_id": evolucao.atendimento_id,
        "data": date_key(evolucao.data),
        "payload": evolucao.payload,
        "created_at": iso_datetime(evolucao.created_at),
        "terapeuta_nome": terapeuta_nome,
    }


class ProntuarioService:
    # ── Documents ─────────────────────────────────────────────────────────

    def _documentos_query(self):
        return (
            select(ProntuarioDocumento, User.nome.label("autor_nome"))
            .outerjoin(User, User.id == ProntuarioDocumento.created_by_user_id)
            .where(ProntuarioDocumento.deleted_at.is_(None))
        )

    async def list_documentos(
        self, db: AsyncSession, paciente_id: int, tipo: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        stmt = self._documentos_query().where(ProntuarioDocumento.paciente_id == paciente_id)
        if tipo:
            stmt = stmt.where(ProntuarioDocumento.tipo == tipo)
        stmt = stmt.order_by(ProntuarioDocumento.version.desc(), ProntuarioDocumento.created_at.desc())
        result = await db.execute(stmt)
        return [_documento_dict(doc, autor) for doc, autor in result.all()]

    async def get_documento(self, db: AsyncSession, documento_id: int) -> Optional[Dict[str, Any]]:
        result = await db.execute(
            self._documentos_query().where(ProntuarioDocumento.id == documento_id).limit(1)
        )
        row = result.first()
        return _documento_dict(row[0], row[1]) if row else None

    async def save_documento(
        self,
        db: AsyncSession,
        paciente_id: int,
        data: DocumentoSave,
        user: Optional[SessionUser] = None,
    ) -> Dict[str, int]:
        """
        Insert the next version of a document.

        Returns:
            {"id": ..., "version": ...}
        """
        tipo = data.tipo.upper().strip()
        if tipo not in DOC_TYPES:
            raise ValidationError("Tipo de documento invalido")
        status = data.status if data.status in DOC_STATUS else "Rascunho"
        titulo = (data.titulo or tipo).strip() or tipo
        payload = data.payload.model_dump(exclude_none=True)

        for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
            try:
                async with db.begin_nested():
                    result = await db.execute(
                        select(func.coalesce(func.max(ProntuarioDocumento.version), 0)).where(
                            ProntuarioDocumento.paciente_id == paciente_id,
                            ProntuarioDocumento.tipo == tipo,
                        )
                    )
                    documento = ProntuarioDocumento(
                        paciente_id=paciente_id,
                        tipo=tipo,
                        version=int(result.scalar() or 0) + 1,
                        status=status,
                        titulo=titulo,
                        payload=payload,
                        created_by_user_id=user.id if user else None,
                        created_by_role=user.role if user else None,
                    )
                    db.add(documento)
                    await db.flush()
                logger.info(
                    "Documento saved: paciente=%s tipo=%s version=%s", paciente_id, tipo, documento.version
                )
                return {"id": documento.id, "version": documento.version}
            except SQLAlchemyError as e:
                if is_unique_violation(e) and attempt < MAX_VERSION_ATTEMPTS:
                    logger.warning("Documento version collision (attempt %d)", attempt)
                    continue
                logger.error("Database error saving documento: %s", str(e))
                raise DatabaseError(context={"paciente_id": paciente_id, "tipo": tipo})

        raise DatabaseError(context={"paciente_id": paciente_id, "tipo": tipo})

    async def finalize_documento(self, db: AsyncSession, documento_id: int) -> Optional[Dict[str, Any]]:
        result = await db.execute(
            update(ProntuarioDocumento)
            .where(ProntuarioDocumento.id == documento_id, ProntuarioDocumento.deleted_at.is_(None))
            .values(status="Finalizado")
            .returning(ProntuarioDocumento.id, ProntuarioDocumento.status)
        )
        row = result.first()
        return {"id": row.id, "status": row.status} if row else None

    async def delete_documento(
        self, db: AsyncSession, documento_id: int, user_id: Optional[int] = None
    ) -> bool:
        result = await db.execute(
            update(ProntuarioDocumento)
            .where(ProntuarioDocumento.id == documento_id, ProntuarioDocumento.deleted_at.is_(None))
            .values(deleted_at=func.now(), deleted_by_user_id=user_id)
            .returning(ProntuarioDocumento.id)
        )
        return result.scalar_one_or_none() is not None

    # ── Evolucoes ─────────────────────────────────────────────────────────

    def _evolucoes_query(self):
        return (
            select(Evolucao, Terapeuta.nome.label("terapeuta_nome"))
            .outerjoin(Terapeuta, Terapeuta.id == Evolucao.terapeuta_id)
            .where(Evolucao.deleted_at.is_(None))
        )

    async def list_evolucoes(self, db: AsyncSession, paciente_id: int) -> List[Dict[str, Any]]:
        result = await db.execute(
            self._evolucoes_query()
            .where(Evolucao.paciente_id == paciente_id)
            .order_by(Evolucao.data.desc(), Evolucao.created_at.desc())
        )
        return [_evolucao_dict(evolucao, nome) for evolucao, nome in result.all()]

    async def get_evolucao(self, db: AsyncSession, evolucao_id: int) -> Optional[Dict[str, Any]]:
        result = await db.execute(self._evolucoes_query().where(Evolucao.id == evolucao_id).limit(1))
        row = result.first()
        return _evolucao_dict(row[0], row[1]) if row else None

    async def _resolve_terapeuta(
        self, db: AsyncSession, user: Optional[SessionUser], requested: Optional[int]
    ) -> int:
        terapeuta_id = requested
        if user and role_canon(user.role) == "TERAPEUTA":
            own = await terapeuta_service.get_by_usuario(db, user.id)
            if own is None:
                raise ForbiddenError("Terapeuta nao encontrado")
            terapeuta_id = own["id"]
        if not terapeuta_id:
            raise ValidationError("Terapeuta obrigatorio para evolucao")
        return terapeuta_id

    async def create_evolucao(
        self,
        db: AsyncSession,
        paciente_id: int,
        data: EvolucaoCreate,
        user: Optional[SessionUser] = None,
    ) -> Dict[str, Any]:
        dia = _to_date(data.data)
        terapeuta_id = await self._resolve_terapeuta(db, user, data.terapeutaId)

        evolucao = Evolucao(
            paciente_id=paciente_id,
            terapeuta_id=terapeuta_id,
            atendimento_id=data.atendimentoId,
            data=dia,
            payload=data.payload or {},
        )
        try:
            async with db.begin_nested():
                db.add(evolucao)
                await db.flush()
        except SQLAlchemyError as e:
            if is_unique_violation(e):
                raise ConflictError("Ja existe evolucao para este dia/terapeuta")
            logger.error("Database error creating evolucao: %s", str(e))
            raise DatabaseError(context={"paciente_id": paciente_id})

        return {"id": evolucao.id, "data": dia.isoformat()}

    async def update_evolucao(
        self,
        db: AsyncSession,
        current: Dict[str, Any],
        data: EvolucaoUpdate,
        user: Optional[SessionUser] = None,
    ) -> Dict[str, Any]:
        """Merge the sent fields over `current` (as returned by get_evolucao)."""
        dia = _to_date(data.data or current.get("data"))
        payload = data.payload if data.payload is not None else (current.get("payload") or {})
        terapeuta_id = await self._resolve_terapeuta(
            db, user, data.terapeutaId or current.get("terapeuta_id")
        )
        atendimento_id = data.atendimentoId or current.get("atendimento_id")

        try:
            async with db.begin_nested():
                await db.execute(
                    update(Evolucao)
                    .where(Evolucao.id == current["id"])
                    .values(
                        data=dia,
                        payload=payload,
                        terapeuta_id=terapeuta_id,
                        atendimento_id=atendimento_id,
                        updated_at=func.now(),
                    )
                )
        except AppError:
            raise
        except SQLAlchemyError as e:
            if is_unique_violation(e):
                raise ConflictError("Ja existe evolucao para este dia/terapeuta")
            logger.error("Database error updating evolucao %s: %s", current["id"], str(e))
            raise DatabaseError(context={"evolucao_id": current["id"]})

        return {"id": current["id"], "data": dia.isoformat()}

    async def delete_evolucao(
        self, db: AsyncSession, evolucao_id: int, user_id: Optional[int] = None
    ) -> bool:
        result = await db.execute(
            update(Evolucao)
            .where(Evolucao.id == evolucao_id, Evolucao.deleted_at.is_(None))
            .values(deleted_at=func.now(), deleted_by_user_id=user_id, updated_at=func.now())
            .returning(Evolucao.id)
        )
        return result.scalar_one_or_none() is not None

    # ── Timeline ──────────────────────────────────────────────────────────

    async def timeline(self, db: AsyncSession, paciente_id: int) -> List[Dict[str, Any]]:
        """Documents and evolucoes merged into one list, newest first."""
        docs = await db.execute(
            self._documentos_query().where(ProntuarioDocumento.paciente_id == paciente_id)
        )
        evols = await db.execute(self._evolucoes_query().where(Evolucao.paciente_id == paciente_id))

        entries = []
        for doc, autor_nome in docs.all():
            entries.append(
                (
                    doc.created_at,
                    {
                        "kind": "documento",
                        "id": doc.id,
                        "tipo": doc.tipo,
                        "titulo": doc.titulo or doc.tipo,
                        "status": doc.status,
                        "version": doc.version,
                        "data": iso_datetime(doc.created_at) or "",
                        "profissional": autor_nome or doc.created_by_role or "Usuario",
                    },
                )
            )
        for evolucao, terapeuta_nome in evols.all():
            payload = evolucao.payload or {}
            comportamento = bool(payload.get("comportamentos"))
            when = evolucao.data or evolucao.created_at
            entries.append(
                (
                    when,
                    {
                        "kind": "evolucao",
                        "id": evolucao.id,
                        "tipo": "COMPORTAMENTO" if comportamento else "EVOLUCAO",
                        "titulo": payload.get("titulo")
                        or ("Registro de comportamento" if comportamento else "Evolucao clinica"),
                        "status": "-",
                        "version": None,
                        "data": date_key(evolucao.data) or iso_datetime(evolucao.created_at),
                        "profissional": terapeuta_nome or "Terapeuta",
                    },
                )
            )

        entries.sort(key=lambda entry: _timeline_sort_key(entry[0]), reverse=True)
        return [item for _, item in entries]


prontuario_service = ProntuarioService()
