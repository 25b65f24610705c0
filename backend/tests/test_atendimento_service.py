"""
AutismCad Backend — Session Scheduling Unit Tests
==================================================

What we test:
    ✅ time/date parsing and the Sunday-first weekday convention
    ✅ Ausente requires a motivo
    ✅ overlapping sessions for a patient are refused
    ✅ recurring batches: range limits, empty matches, one save per day
    ✅ excluir-dia only removes rows on the requested weekday
"""

from datetime import date, time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError as SchemaError

from autismcad.exceptions import ConflictError, NotFoundError, ValidationError
from autismcad.schemas.atendimento import AtendimentoRecorrente, AtendimentoSave, ExcluirDiaRequest
from autismcad.services.atendimento_service import (
    AtendimentoService,
    dates_for_weekdays,
    minutes_between,
    normalize_presenca,
    normalize_turno,
    parse_strict_date,
    parse_time,
    weekday_sunday_first,
)


def _save(**overrides) -> AtendimentoSave:
    data = {
        "pacienteId": 1,
        "terapeutaId": 2,
        "data": "2024-03-04",
        "horaInicio": "08:00",
        "horaFim": "09:00",
    }
    data.update(overrides)
    return AtendimentoSave(**data)


def _recorrente(**overrides) -> AtendimentoRecorrente:
    data = {
        "pacienteId": 1,
        "terapeutaId": 2,
        "horaInicio": "14:00",
        "horaFim": "15:00",
        "periodoInicio": "2024-03-01",
        "periodoFim": "2024-03-31",
        "diasSemana": [1, 3],
    }
    data.update(overrides)
    return AtendimentoRecorrente(**data)


class TestSchedulingHelpers:
    def test_parse_time(self):
        assert parse_time("08:30") == time(8, 30)
        assert parse_time(" 17:45:10 ") == time(17, 45, 10)

    @pytest.mark.parametrize("value", ["8:30", "25:00", "08h30", "", "08:60"])
    def test_parse_time_invalid(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_time(value)
        assert exc_info.value.code == "INVALID_TIME"

    def test_parse_strict_date(self):
        assert parse_strict_date("2024-02-29") == date(2024, 2, 29)
        with pytest.raises(ValidationError):
            parse_strict_date("2023-02-29")
        with pytest.raises(ValidationError):
            parse_strict_date("04/03/2024")

    def test_weekday_sunday_first(self):
        assert weekday_sunday_first(date(2024, 3, 3)) == 0
        assert weekday_sunday_first(date(2024, 3, 4)) == 1
        assert weekday_sunday_first(date(2024, 3, 9)) == 6

    def test_dates_for_weekdays(self):
        dias = dates_for_weekdays(date(2024, 3, 1), date(2024, 3, 10), [1, 3])
        assert dias == [date(2024, 3, 4), date(2024, 3, 6)]

    def test_defaults(self):
        assert normalize_turno("Noturno") == "Matutino"
        assert normalize_turno("Vespertino") == "Vespertino"
        assert normalize_presenca(None) == "Nao informado"
        assert normalize_presenca("Presente") == "Presente"

    def test_minutes_between(self):
        assert minutes_between(time(8, 0), time(9, 30)) == 90
        assert minutes_between("14:00:00", "14:45:00") == 45


class TestAtendimentoSave:
    def setup_method(self):
        self.service = AtendimentoService()

    @pytest.mark.asyncio
    async def test_ausente_requires_motivo(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.save(mock_db_session, _save(presenca="Ausente", motivo="  "))
        assert exc_info.value.code == "MOTIVO_REQUIRED"
        mock_db_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_overlap_is_conflict(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=33)

        with pytest.raises(ConflictError) as exc_info:
            await self.service.save(mock_db_session, _save())
        assert exc_info.value.code == "SCHEDULE_CONFLICT"

    @pytest.mark.asyncio
    async def test_insert_marks_realizado_from_presenca(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=None)

        await self.service.save(mock_db_session, _save(presenca="Presente", turno="Vespertino"))

        added = mock_db_session.add.call_args[0][0]
        assert added.realizado is True
        assert added.turno == "Vespertino"
        assert added.hora_inicio == time(8, 0)

    @pytest.mark.asyncio
    async def test_update_missing(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [make_result(scalar=None), make_result(scalar=None)]

        with pytest.raises(NotFoundError):
            await self.service.save(mock_db_session, _save(), atendimento_id=70)

    @pytest.mark.asyncio
    async def test_soft_delete_missing(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError):
            await self.service.soft_delete(mock_db_session, 70, deleted_by_user_id=1)


class TestRecorrenteSchema:
    @pytest.mark.parametrize("dias", [[1, 9], [-3], [7], []])
    def test_weekdays_outside_sunday_to_saturday_rejected(self, dias):
        with pytest.raises(SchemaError):
            _recorrente(diasSemana=dias)

    def test_weekdays_deduplicated_and_sorted(self):
        assert _recorrente(diasSemana=[6, 0, 3, 0]).dias() == [0, 3, 6]


class TestRecorrentes:
    def setup_method(self):
        self.service = AtendimentoService()

    @pytest.mark.asyncio
    async def test_one_session_per_matching_day(self, mock_db_session):
        with patch.object(self.service, "save", AsyncMock(side_effect=range(100, 200))) as mock_save:
            result = await self.service.create_recorrentes(mock_db_session, _recorrente())

        # March 2024: 4 Mondays + 4 Wednesdays
        assert result["criados"] == 8
        assert mock_save.await_count == 8
        assert result["atendimentos"][0] == {"id": 100, "data": "2024-03-04"}

    @pytest.mark.asyncio
    async def test_inverted_period(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_recorrentes(
                mock_db_session, _recorrente(periodoInicio="2024-04-01", periodoFim="2024-03-01")
            )
        assert exc_info.value.code == "INVALID_PERIOD"

    @pytest.mark.asyncio
    async def test_no_matching_day(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_recorrentes(
                mock_db_session,
                _recorrente(periodoInicio="2024-03-04", periodoFim="2024-03-05", diasSemana=[6]),
            )
        assert exc_info.value.code == "NO_MATCH"

    @pytest.mark.asyncio
    async def test_batch_too_large(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_recorrentes(
                mock_db_session,
                _recorrente(
                    periodoInicio="2020-01-01",
                    periodoFim="2022-12-31",
                    diasSemana=[0, 1, 2, 3, 4, 5, 6],
                ),
            )
        assert exc_info.value.code == "TOO_LARGE"

    @pytest.mark.asyncio
    async def test_conflict_aborts_batch(self, mock_db_session):
        failing = AsyncMock(side_effect=[1, ConflictError("Conflito", code="SCHEDULE_CONFLICT")])
        with patch.object(self.service, "save", failing):
            with pytest.raises(ConflictError):
                await self.service.create_recorrentes(mock_db_session, _recorrente())


class TestExcluirDia:
    @pytest.mark.asyncio
    async def test_only_requested_weekday_removed(self, mock_db_session, make_result):
        rows = [
            MagicMock(id=1, data=date(2024, 3, 4)),  # Monday
            MagicMock(id=2, data=date(2024, 3, 5)),  # Tuesday
            MagicMock(id=3, data=date(2024, 3, 11)),  # Monday
        ]
        mock_db_session.execute.side_effect = [make_result(rows=rows), make_result()]
        payload = ExcluirDiaRequest(
            pacienteId=1,
            horaInicio="08:00",
            horaFim="09:00",
            periodoInicio="2024-03-01",
            periodoFim="2024-03-31",
            diaSemana=1,
        )

        result = await AtendimentoService().excluir_dia(mock_db_session, payload)

        assert result == {"removidos": 2}
        assert mock_db_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_nothing_to_remove(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(rows=[])
        payload = ExcluirDiaRequest(
            pacienteId=1,
            horaInicio="08:00",
            horaFim="09:00",
            periodoInicio="2024-03-01",
            periodoFim="2024-03-31",
            diaSemana=2,
        )

        assert await AtendimentoService().excluir_dia(mock_db_session, payload) == {"removidos": 0}
        assert mock_db_session.execute.await_count == 1
