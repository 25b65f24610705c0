"""
AutismCad Backend — Reports Service
====================================

What:  Consolidates sessions, progress notes and anamnese versions into three
       reports: assiduidade (attendance across patients), evolutivo (one
       patient over a period) and clinico (short summary for a patient).
How:   One query per source, then the aggregation runs in Python over the
       rows. The arithmetic lives in module-level functions so it can be
       tested without a database.

Scope rules:
    - Period defaults to the 30 days ending today; from > to is rejected.
    - A therapist only ever sees their own sessions, whatever terapeutaId
      they pass. Other roles may narrow by terapeutaId.
    - Per-patient reports also go through assert_paciente_access.

Rates:
    evolutivo  → presentes / total, one decimal
    assiduidade, clinico → presentes / (presentes + faltas), integer percent
"""

import logging
import math
import re
from collections import Counter, OrderedDict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autismcad.auth.paciente_access import assert_paciente_access
from autismcad.auth.permissions import role_canon
from autismcad.auth.session import SessionUser
from autismcad.exceptions import ForbiddenError, NotFoundError, ValidationError
from autismcad.models.anamnese import AnamneseVersion
from autismcad.models.atendimento import Atendimento
from autismcad.models.paciente import Paciente
from autismcad.models.prontuario import Evolucao
from autismcad.models.terapeuta import Terapeuta
from autismcad.normalize import date_key, parse_date, time_key
from autismcad.services.terapeuta_service import terapeuta_service

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 29
OBSERVATION_MAX_CHARS = 240
LATEST_OBSERVATIONS = 8
TOP_ABSENCE_REASONS = 5
CLINICO_OBSERVATIONS = 12

_WHITESPACE = re.compile(r"\s+")


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def resolve_period(
    from_value: Optional[str], to_value: Optional[str], today: Optional[date] = None
) -> Tuple[str, str]:
    """(from, to) as 'YYYY-MM-DD'; unparseable values fall back to the default window."""
    today = today or date.today()
    start = parse_date(from_value) or today - timedelta(days=DEFAULT_PERIOD_DAYS)
    end = parse_date(to_value) or today
    if start > end:
        raise ValidationError("Periodo invalido", code="INVALID_PERIOD")
    return start.isoformat(), end.isoformat()


def session_minutes(hora_inicio: Any, hora_fim: Any) -> int:
    start, end = time_key(hora_inicio), time_key(hora_fim)
    if not start or not end:
        return 0
    try:
        sh, sm = (int(part) for part in start[:5].split(":"))
        eh, em = (int(part) for part in end[:5].split(":"))
    except ValueError:
        return 0
    return (eh * 60 + em) - (sh * 60 + sm)


def session_observation(session: Dict[str, Any]) -> Optional[Dict[str, str]]:
    """First non-empty of observacoes, resumo_repasse and motivo, whitespace-collapsed and cut."""
    for origem in ("observacoes", "resumo_repasse", "motivo"):
        text = (session.get(origem) or "").strip()
        if text:
            clean = _WHITESPACE.sub(" ", text).strip()
            if len(clean) > OBSERVATION_MAX_CHARS:
                clean = f"{clean[:OBSERVATION_MAX_CHARS]}..."
            return {"texto": clean, "origem": origem}
    return None


def evolucao_text(payload: Optional[Dict[str, Any]]) -> Optional[str]:
    payload = payload or {}
    metas = payload.get("metas")
    parts = [
        payload.get("descricao"),
        payload.get("conduta"),
        "; ".join(str(m) for m in metas) if isinstance(metas, list) else None,
        payload.get("titulo"),
    ]
    texts = [str(p).strip() for p in parts if p and str(p).strip()]
    return " | ".join(texts) if texts else None


def evolutivo_indicators(sessions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """`sessions` must be ordered newest first."""
    total = len(sessions)
    presentes = sum(1 for s in sessions if s["presenca"] == "Presente")
    ausentes = sum(1 for s in sessions if s["presenca"] == "Ausente")
    nao_informado = sum(1 for s in sessions if s["presenca"] == "Nao informado")
    durations = [s["duracao_min"] for s in sessions if s["duracao_min"] > 0]
    total_minutes = sum(durations)
    return {
        "totalAtendimentos": total,
        "presentes": presentes,
        "ausentes": ausentes,
        "naoInformado": nao_informado,
        "taxaPresencaPercent": round_half_up(presentes / total * 100, 1) if total else 0,
        "tempoTotalMinutos": total_minutes,
        "mediaMinutosPorSessao": round_half_up(total_minutes / len(durations), 1) if durations else 0,
        "primeiroAtendimento": sessions[-1]["data"] if sessions else None,
        "ultimoAtendimento": sessions[0]["data"] if sessions else None,
    }


def by_therapist(sessions: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    groups: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
    for s in sessions:
        key = s["terapeuta_id"] or 0
        if key not in groups:
            groups[key] = {
                "terapeuta_id": s["terapeuta_id"] or None,
                "terapeuta_nome": s["terapeuta_nome"] or "N/A",
                "total": 0,
                "presentes": 0,
                "ausentes": 0,
            }
        group = groups[key]
        group["total"] += 1
        if s["presenca"] == "Presente":
            group["presentes"] += 1
        elif s["presenca"] == "Ausente":
            group["ausentes"] += 1
    return list(groups.values())


def automatic_summary(
    indicadores: Dict[str, Any], observacoes_count: int, evolucoes_count: int
) -> Dict[str, Any]:
    """Rule codes plus the three-line text shown at the top of the evolutivo report."""
    total = indicadores["totalAtendimentos"]
    taxa = indicadores["taxaPresencaPercent"]
    ausentes = indicadores["ausentes"]

    regras = []
    if taxa >= 85 and total >= 4:
        regras.append("ADESAO_BOA")
    if ausentes >= 3 or taxa < 70:
        regras.append("MUITAS_FALTAS")
    if total and indicadores["naoInformado"] / total > 0.4:
        regras.append("MUITOS_SEM_REGISTRO")
    if not observacoes_count and not evolucoes_count:
        regras.append("SEM_EVOLUCOES_TEXTUAIS")
    if observacoes_count + evolucoes_count >= 5:
        regras.append("COM_REGISTROS_CLINICOS")

    if taxa >= 85:
        adesao = "Adesao considerada boa no periodo, com alta taxa de presenca."
    elif taxa < 70:
        adesao = "Adesao abaixo do esperado, com presencas reduzidas."
    else:
        adesao = "Adesao moderada, com variacao na presenca."

    if ausentes >= 3:
        faltas = "Houve numero elevado de faltas; investigar causas e ajustar agenda."
    else:
        faltas = "Faltas dentro do esperado."

    if observacoes_count:
        registros = f"Foram registrados {observacoes_count} apontamentos clinicos relevantes."
    else:
        registros = "Nao ha registros textuais de evolucao no periodo."

    if "MUITAS_FALTAS" in regras:
        recomendacao = "Recomenda-se reforcar contato com a familia e revisar horarios."
    elif "SEM_EVOLUCOES_TEXTUAIS" in regras:
        recomendacao = "Reforcar registro de observacoes clinicas para melhor acompanhamento."
    else:
        recomendacao = "Manter acompanhamento atual e revisitar metas periodicamente."

    return {
        "texto": f"{adesao} {faltas}\n{registros}\n{recomendacao}",
        "regrasDisparadas": regras,
    }


def attendance_rate(presentes: int, faltas: int) -> int:
    denominador = presentes + faltas
    return int(round_half_up(presentes / denominador * 100)) if denominador else 0


def assiduidade_lines(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per-patient attendance, worst rate first, then by name."""
    groups: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
    for row in rows:
        key = row["paciente_id"]
        if key not in groups:
            groups[key] = {
                "pacienteNome": row["paciente_nome"] or "Paciente",
                "total": 0,
                "presencas": 0,
                "faltas": 0,
                "neutros": 0,
                "ultimo": "",
                "terapeutas": [],
            }
        item = groups[key]
        item["total"] += 1
        if row["presenca"] == "Presente":
            item["presencas"] += 1
        elif row["presenca"] == "Ausente":
            item["faltas"] += 1
        else:
            item["neutros"] += 1
        day = row["data"] or ""
        if day and day > item["ultimo"]:
            item["ultimo"] = day
        nome = row.get("terapeuta_nome")
        if nome and nome not in item["terapeutas"]:
            item["terapeutas"].append(nome)

    lines = [
        {
            "pacienteNome": item["pacienteNome"],
            "total": item["total"],
            "presencas": item["presencas"],
            "faltas": item["faltas"],
            "taxa": attendance_rate(item["presencas"], item["faltas"]),
            "neutros": item["neutros"],
            "ultimo": item["ultimo"],
            "terapeutas": ", ".join(item["terapeutas"]) or "-",
        }
        for item in groups.values()
    ]
    lines.sort(key=lambda line: (line["taxa"], line["pacienteNome"].lower()))
    return lines


class RelatorioService:
    async def _terapeuta_scope(
        self, db: AsyncSession, user: SessionUser, terapeuta_id: Optional[int]
    ) -> Optional[int]:
        if role_canon(user.role) == "TERAPEUTA":
            own = await terapeuta_service.get_by_usuario(db, user.id)
            if own is None:
                raise ForbiddenError("Terapeuta nao encontrado")
            return own["id"]
        return terapeuta_id or None

    async def _paciente_header(self, db: AsyncSession, paciente_id: int) -> Dict[str, Any]:
        result = await db.execute(
            select(Paciente.id, Paciente.nome, Paciente.cpf, Paciente.data_nascimento, Paciente.convenio)
            .where(Paciente.id == paciente_id, Paciente.deleted_at.is_(None))
            .limit(1)
        )
        row = result.first()
        if row is None:
            raise NotFoundError("Paciente nao encontrado", resource="paciente", resource_id=paciente_id)
        return {
            "id": row.id,
            "nome": row.nome,
            "cpf": row.cpf,
            "data_nascimento": date_key(row.data_nascimento),
            "convenio": row.convenio,
        }

    async def _sessions(
        self,
        db: AsyncSession,
        paciente_id: int,
        start: str,
        end: str,
        terapeuta_id: Optional[int],
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(Atendimento, Terapeuta.nome.label("terapeuta_nome"))
            .outerjoin(Terapeuta, Terapeuta.id == Atendimento.terapeuta_id)
            .where(
                Atendimento.paciente_id == paciente_id,
                Atendimento.deleted_at.is_(None),
                Atendimento.data >= date.fromisoformat(start),
                Atendimento.data <= date.fromisoformat(end),
            )
        )
        if terapeuta_id:
            stmt = stmt.where(Atendimento.terapeuta_id == terapeuta_id)
        stmt = stmt.order_by(Atendimento.data.desc(), Atendimento.hora_inicio.desc(), Atendimento.id.desc())
        result = await db.execute(stmt)
        return [
            {
                "id": a.id,
                "data": date_key(a.data),
                "hora_inicio": time_key(a.hora_inicio),
                "hora_fim": time_key(a.hora_fim),
                "duracao_min": session_minutes(a.hora_inicio, a.hora_fim),
                "presenca": a.presenca,
                "terapeuta_id": a.terapeuta_id,
                "terapeuta_nome": terapeuta_nome,
                "motivo": a.motivo,
                "observacoes": a.observacoes,
                "resumo_repasse": a.resumo_repasse,
            }
            for a, terapeuta_nome in result.all()
        ]

    async def evolutivo(
        self,
        db: AsyncSession,
        user: SessionUser,
        paciente_id: int,
        from_value: Optional[str] = None,
        to_value: Optional[str] = None,
        terapeuta_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        start, end = resolve_period(from_value, to_value)
        await assert_paciente_access(db, user, paciente_id)
        terapeuta_filtro = await self._terapeuta_scope(db, user, terapeuta_id)
        paciente = await self._paciente_header(db, paciente_id)

        sessions = await self._sessions(db, paciente_id, start, end, terapeuta_filtro)
        indicadores = evolutivo_indicators(sessions)

        evol_result = await db.execute(
            select(Evolucao, Terapeuta.nome.label("terapeuta_nome"))
            .outerjoin(Terapeuta, Terapeuta.id == Evolucao.terapeuta_id)
            .where(
                Evolucao.paciente_id == paciente_id,
                Evolucao.deleted_at.is_(None),
                Evolucao.data >= date.fromisoformat(start),
                Evolucao.data <= date.fromisoformat(end),
            )
            .order_by(Evolucao.data.desc(), Evolucao.created_at.desc())
        )
        evolucoes = [
            {
                "id": e.id,
                "data": date_key(e.data),
                "terapeuta_id": e.terapeuta_id,
                "terapeuta_nome": nome,
                "payload": e.payload,
            }
            for e, nome in evol_result.all()
        ]

        observacoes = []
        motivos: Counter = Counter()
        for s in sessions:
            obs = session_observation(s)
            if obs:
                observacoes.append(
                    {"data": s["data"], "terapeuta_nome": s["terapeuta_nome"] or "Terapeuta", **obs}
                )
            if s["presenca"] == "Ausente" and (s["motivo"] or "").strip():
                motivos[s["motivo"].strip()] += 1
        for e in evolucoes:
            texto = evolucao_text(e["payload"])
            if texto:
                observacoes.append(
                    {
                        "data": e["data"],
                        "terapeuta_nome": e["terapeuta_nome"] or "Terapeuta",
                        "texto": texto,
                        "origem": "evolucao",
                    }
                )
        observacoes.sort(key=lambda o: o["data"] or "", reverse=True)

        return {
            "paciente": paciente,
            "periodo": {"from": start, "to": end},
            "filtros": {"terapeutaId": terapeuta_filtro, "role": role_canon(user.role)},
            "indicadores": indicadores,
            "distribuicao": {
                "porPresenca": {
                    "Presente": indicadores["presentes"],
                    "Ausente": indicadores["ausentes"],
                    "Nao informado": indicadores["naoInformado"],
                },
                "porTerapeuta": by_therapist(sessions),
            },
            "destaques": {
                "ultimasObservacoes": observacoes[:LATEST_OBSERVATIONS],
                "principaisMotivosAusencia": [
                    {"motivo": motivo, "count": count}
                    for motivo, count in motivos.most_common(TOP_ABSENCE_REASONS)
                ],
            },
            "resumoAutomatico": automatic_summary(indicadores, len(observacoes), len(evolucoes)),
            "evolucoes": evolucoes,
            "atendimentos": sessions,
        }

    async def assiduidade(
        self,
        db: AsyncSession,
        user: SessionUser,
        paciente_nome: Optional[str] = None,
        terapeuta_id: Optional[int] = None,
        from_value: Optional[str] = None,
        to_value: Optional[str] = None,
        presenca: Optional[str] = None,
    ) -> Dict[str, Any]:
        start, end = resolve_period(from_value, to_value)
        terapeuta_filtro = await self._terapeuta_scope(db, user, terapeuta_id)
        nome_filtro = (paciente_nome or "").strip() or None

        stmt = (
            select(
                Atendimento.id,
                Atendimento.paciente_id,
                Paciente.nome.label("paciente_nome"),
                Atendimento.data,
                Atendimento.presenca,
                Terapeuta.nome.label("terapeuta_nome"),
            )
            .join(Paciente, (Paciente.id == Atendimento.paciente_id) & Paciente.deleted_at.is_(None))
            .outerjoin(Terapeuta, Terapeuta.id == Atendimento.terapeuta_id)
            .where(
                Atendimento.deleted_at.is_(None),
                Atendimento.data >= date.fromisoformat(start),
                Atendimento.data <= date.fromisoformat(end),
            )
        )
        if terapeuta_filtro:
            stmt = stmt.where(Atendimento.terapeuta_id == terapeuta_filtro)
        if presenca:
            stmt = stmt.where(Atendimento.presenca == presenca)
        if nome_filtro:
            stmt = stmt.where(Paciente.nome.ilike(f"%{nome_filtro}%"))

        result = await db.execute(stmt.order_by(Atendimento.data.desc(), Atendimento.id.desc()))
        rows = [
            {
                "paciente_id": r.paciente_id,
                "paciente_nome": r.paciente_nome,
                "data": date_key(r.data),
                "presenca": r.presenca,
                "terapeuta_nome": r.terapeuta_nome,
            }
            for r in result.all()
        ]

        presentes = sum(1 for r in rows if r["presenca"] == "Presente")
        faltas = sum(1 for r in rows if r["presenca"] == "Ausente")
        return {
            "periodo": {"from": start, "to": end},
            "filtros": {
                "terapeutaId": terapeuta_filtro,
                "pacienteNome": nome_filtro,
                "presenca": presenca or None,
                "role": role_canon(user.role),
            },
            "resumo": {
                "total": len(rows),
                "presentes": presentes,
                "faltas": faltas,
                "semRegistro": len(rows) - presentes - faltas,
                "taxa": attendance_rate(presentes, faltas),
            },
            "linhas": assiduidade_lines(rows),
        }

    async def clinico(
        self,
        db: AsyncSession,
        user: SessionUser,
        paciente_id: int,
        version: Optional[int] = None,
        from_value: Optional[str] = None,
        to_value: Optional[str] = None,
        terapeuta_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        await assert_paciente_access(db, user, paciente_id)
        start, end = resolve_period(from_value, to_value)
        terapeuta_filtro = await self._terapeuta_scope(db, user, terapeuta_id)
        paciente = await self._paciente_header(db, paciente_id)

        sessions = await self._sessions(db, paciente_id, start, end, terapeuta_filtro)
        presentes = sum(1 for s in sessions if s["presenca"] == "Presente")
        ausentes = sum(1 for s in sessions if s["presenca"] == "Ausente")
        observacoes = [
            {
                "data": s["data"],
                "hora_inicio": (s["hora_inicio"] or "")[:5],
                "presenca": s["presenca"],
                "observacoes": s["observacoes"],
                "motivo": s["motivo"],
            }
            for s in sessions
            if (s["observacoes"] or "").strip() or (s["motivo"] or "").strip()
        ][:CLINICO_OBSERVATIONS]

        stmt = select(AnamneseVersion).where(AnamneseVersion.paciente_id == paciente_id)
        if version:
            stmt = stmt.where(AnamneseVersion.version == version)
        result = await db.execute(
            stmt.order_by(AnamneseVersion.version.desc(), AnamneseVersion.created_at.desc()).limit(1)
        )
        anamnese_row = result.scalar_one_or_none()
        anamnese = (
            {
                "version": anamnese_row.version,
                "status": anamnese_row.status,
                "created_at": date_key(anamnese_row.created_at),
            }
            if anamnese_row
            else None
        )

        return {
            "paciente": paciente,
            "periodo": {"from": start, "to": end},
            "filtros": {"terapeutaId": terapeuta_filtro, "role": role_canon(user.role), "version": version},
            "atendimentos": {
                "total": len(sessions),
                "presentes": presentes,
                "ausentes": ausentes,
                "taxaPresenca": attendance_rate(presentes, ausentes),
                "observacoes": observacoes,
            },
            "anamnese": anamnese,
        }


relatorio_service = RelatorioService()
