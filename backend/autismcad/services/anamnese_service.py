"""
AutismCad Backend — Anamnese Service
=====================================

What:  Stores the intake interview of a patient with full version history.
How:   Every save upserts the single `anamnese` row (latest payload) and
       appends a row to `anamnese_versions` with version = max + 1.

Concurrency:
    (paciente_id, version) is unique. Two saves racing for the same version
    make one insert fail; that attempt is rolled back to its savepoint and
    retried with a fresh max(), up to MAX_VERSION_ATTEMPTS times.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.exceptions import AppError, DatabaseError, NotFoundError
from autismcad.models.anamnese import Anamnese, AnamneseVersion
from autismcad.models.paciente import Paciente
from autismcad.normalize import is_iso_date, is_unique_violation, iso_datetime, optional_str

logger = logging.getLogger(__name__)

MAX_VERSION_ATTEMPTS = 3

# camelCase key → snake_case alias accepted from older clients
ANAMNESE_FIELDS = {
    "entrevistaPor": "entrevista_por",
    "dataEntrevista": "data_entrevista",
    "possuiDiagnostico": "possui_diagnostico",
    "diagnostico": "diagnostico",
    "laudoDiagnostico": "laudo_diagnostico",
    "medicoAcompanhante": "medico_acompanhante",
    "comorbidadesFamiliares": "comorbidades_familiares",
    "quemPercebeu": "quem_percebeu",
    "sinaisPercebidos": "sinais_percebidos",
    "idadeDiagnostico": "idade_diagnostico",
    "percepcaoFamilia": "percepcao_familia",
    "fezTerapia": "fez_terapia",
    "terapias": "terapias",
    "frequencia": "frequencia",
    "atividadesExtras": "atividades_extras",
    "gravidezPlanejada": "gravidez_planejada",
    "intercorrenciasGestacionais": "intercorrencias_gestacionais",
    "usoMedicamentos": "uso_medicamentos",
    "tipoParto": "tipo_parto",
    "intercorrenciasParto": "intercorrencias_parto",
    "marcosMotores": "marcos_motores",
    "linguagem": "linguagem",
    "comunicacao": "comunicacao",
    "escola": "escola",
    "serie": "serie",
    "professor": "professor",
    "acompanhanteEscolar": "acompanhante_escolar",
    "observacoesEscolares": "observacoes_escolares",
    "frustracoes": "frustracoes",
    "humor": "humor",
    "estereotipias": "estereotipias",
    "autoagressao": "autoagressao",
    "heteroagressao": "heteroagressao",
    "seletividadeAlimentar": "seletividade_alimentar",
    "rotinaSono": "rotina_sono",
    "medicamentosUsoAnterior": "medicamentos_uso_anterior",
    "medicamentosUsoAtual": "medicamentos_uso_atual",
    "dificuldadesFamilia": "dificuldades_familia",
    "expectativasTerapia": "expectativas_terapia",
}

BOOLEAN_FIELDS = {"possuiDiagnostico", "fezTerapia", "gravidezPlanejada"}
DATE_FIELDS = {"dataEntrevista"}

_TRUE_WORDS = {"1", "true", "sim", "yes", "on"}
_FALSE_WORDS = {"0", "false", "nao", "não", "no", "off"}


def parse_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return None


def parse_date_only(value: Any) -> Optional[str]:
    """'YYYY-MM-DD' from a date or ISO datetime string; None otherwise."""
    text = optional_str(value)
    if not text:
        return None
    head = text[:10]
    return head if is_iso_date(head) else None


def build_payload(body: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only the interview fields, read from camelCase or snake_case keys."""
    payload: Dict[str, Any] = {}
    for camel, snake in ANAMNESE_FIELDS.items():
        raw = body.get(camel)
        if raw is None:
            raw = body.get(snake)
        if camel in BOOLEAN_FIELDS:
            payload[camel] = parse_bool(raw)
        elif camel in DATE_FIELDS:
            payload[camel] = parse_date_only(raw)
        else:
            payload[camel] = optional_str(raw)
    return payload


def normalize_status(value: Any) -> str:
    return "Finalizada" if value == "Finalizada" else "Rascunho"


class AnamneseService:
    async def assert_paciente_exists(self, db: AsyncSession, paciente_id: int) -> None:
        result = await db.execute(
            select(Paciente.id)
            .where(Paciente.id == paciente_id, Paciente.deleted_at.is_(None))
            .limit(1)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Paciente nao encontrado", resource="paciente", resource_id=paciente_id)

    async def get_base(self, db: AsyncSession, paciente_id: int) -> Optional[Dict[str, Any]]:
        result = await db.execute(select(Anamnese).where(Anamnese.paciente_id == paciente_id).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return {
            **(row.payload or {}),
            "paciente_id": row.paciente_id,
            "created_at": iso_datetime(row.created_at),
            "updated_at": iso_datetime(row.updated_at),
        }

    async def get_version(
        self, db: AsyncSession, paciente_id: int, version: Optional[int] = None
    ) -> Optional[Dict[str, Any]]:
        """A specific version, or the latest one when version is None."""
        stmt = select(AnamneseVersion).where(AnamneseVersion.paciente_id == paciente_id)
        if version is not None:
            stmt = stmt.where(AnamneseVersion.version == version)
        result = await db.execute(stmt.order_by(AnamneseVersion.version.desc()).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return {
            **(row.payload or {}),
            "version": row.version,
            "status": row.status,
            "created_at": iso_datetime(row.created_at),
            "paciente_id": row.paciente_id,
        }

    async def list_versions(
        self, db: AsyncSession, paciente_id: int, limit: int = 50
    ) -> List[Dict[str, Any]]:
        safe_limit = min(max(int(limit or 50), 1), 200)
        result = await db.execute(
            select(AnamneseVersion)
            .where(AnamneseVersion.paciente_id == paciente_id)
            .order_by(AnamneseVersion.version.desc())
            .limit(safe_limit)
        )
        return [
            {
                "id": row.id,
                "paciente_id": row.paciente_id,
                "version": row.version,
                "status": row.status,
                "created_at": iso_datetime(row.created_at),
                "payload": row.payload,
            }
            for row in result.scalars().all()
        ]

    async def save(
        self,
        db: AsyncSession,
        paciente_id: int,
        body: Mapping[str, Any],
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Upsert the base record and append a new version.

        Returns:
            The saved payload plus version, status, created_at and paciente_id.

        Raises:
            NotFoundError: patient missing or soft-deleted
            DatabaseError: persistent failure, including exhausted version retries
        """
        await self.assert_paciente_exists(db, paciente_id)

        status = normalize_status(status)
        payload = build_payload(body)
        version_payload = {**payload, "paciente_id": paciente_id}

        for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
            try:
                async with db.begin_nested():
                    await self._upsert_base(db, paciente_id, payload)
                    saved = await self._append_version(db, paciente_id, status, version_payload)
                logger.info("Anamnese saved: paciente=%s version=%s", paciente_id, saved.version)
                return {
                    **version_payload,
                    "version": saved.version,
                    "status": saved.status,
                    "created_at": iso_datetime(saved.created_at),
                }
            except AppError:
                raise
            except SQLAlchemyError as e:
                if is_unique_violation(e) and attempt < MAX_VERSION_ATTEMPTS:
                    logger.warning(
                        "Anamnese version collision for paciente %s (attempt %d)", paciente_id, attempt
                    )
                    continue
                logger.error("Database error saving anamnese: %s", str(e))
                raise DatabaseError(context={"paciente_id": paciente_id, "attempt": attempt})

        raise DatabaseError(context={"paciente_id": paciente_id})

    async def _upsert_base(self, db: AsyncSession, paciente_id: int, payload: Dict[str, Any]) -> None:
        result = await db.execute(select(Anamnese).where(Anamnese.paciente_id == paciente_id).limit(1))
        base = result.scalar_one_or_none()
        if base is None:
            db.add(Anamnese(paciente_id=paciente_id, payload=payload))
        else:
            base.payload = payload
            base.updated_at = func.now()
        await db.flush()

    async def _append_version(
        self, db: AsyncSession, paciente_id: int, status: str, payload: Dict[str, Any]
    ) -> AnamneseVersion:
        result = await db.execute(
            select(func.coalesce(func.max(AnamneseVersion.version), 0)).where(
                AnamneseVersion.paciente_id == paciente_id
            )
        )
        next_version = int(result.scalar() or 0) + 1
        row = AnamneseVersion(
            paciente_id=paciente_id, version=next_version, status=status, payload=payload
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return row


anamnese_service = AnamneseService()
