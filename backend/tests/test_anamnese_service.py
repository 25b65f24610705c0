"""
AutismCad Backend — Anamnese Service Unit Tests
================================================

What we test:
    ✅ payload filtering (camelCase and snake_case keys, booleans, dates)
    ✅ save appends version max+1 and upserts the base row
    ✅ a version collision is retried inside a fresh savepoint
    ✅ missing patient → NotFoundError
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from autismcad.exceptions import DatabaseError, NotFoundError
from autismcad.models.anamnese import Anamnese, AnamneseVersion
from autismcad.services.anamnese_service import (
    MAX_VERSION_ATTEMPTS,
    AnamneseService,
    build_payload,
    normalize_status,
    parse_bool,
    parse_date_only,
)


def _collision():
    return IntegrityError(
        "INSERT", {}, Exception("UNIQUE constraint failed: anamnese_versions.paciente_id, anamnese_versions.version")
    )


class TestAnamnesePayload:
    @pytest.mark.parametrize(
        "value, expected",
        [("sim", True), ("Não", False), (1, True), ("0", False), ("talvez", None), ("", None), (None, None)],
    )
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected

    def test_parse_date_only(self):
        assert parse_date_only("2024-05-10T13:00:00Z") == "2024-05-10"
        assert parse_date_only("10/05/2024") is None
        assert parse_date_only(None) is None

    def test_build_payload_reads_both_key_styles(self):
        payload = build_payload(
            {
                "entrevistaPor": " Dra. Ana ",
                "data_entrevista": "2024-05-10",
                "possui_diagnostico": "sim",
                "escola": "",
                "campoDesconhecido": "x",
            }
        )

        assert payload["entrevistaPor"] == "Dra. Ana"
        assert payload["dataEntrevista"] == "2024-05-10"
        assert payload["possuiDiagnostico"] is True
        assert payload["escola"] is None
        assert "campoDesconhecido" not in payload
        assert "data_entrevista" not in payload

    def test_status(self):
        assert normalize_status("Finalizada") == "Finalizada"
        assert normalize_status("finalizada") == "Rascunho"
        assert normalize_status(None) == "Rascunho"


class TestAnamneseSave:
    def setup_method(self):
        self.service = AnamneseService()

    @pytest.mark.asyncio
    async def test_missing_patient(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError):
            await self.service.save(mock_db_session, 1, {"escola": "X"})

    @pytest.mark.asyncio
    async def test_first_save_creates_base_and_version_one(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [
            make_result(scalar=1),  # patient exists
            make_result(scalar=None),  # no base row yet
            make_result(scalar=0),  # max(version)
        ]

        saved = await self.service.save(mock_db_session, 1, {"escola": "Escola Sol"}, "Finalizada")

        assert saved["version"] == 1
        assert saved["status"] == "Finalizada"
        assert saved["escola"] == "Escola Sol"
        assert saved["paciente_id"] == 1
        added = [call[0][0] for call in mock_db_session.add.call_args_list]
        assert isinstance(added[0], Anamnese)
        assert isinstance(added[1], AnamneseVersion)
        mock_db_session.begin_nested.assert_called_once()

    @pytest.mark.asyncio
    async def test_collision_is_retried(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [
            make_result(scalar=1),
            make_result(scalar=None),
            make_result(scalar=4),
            make_result(scalar=None),
            make_result(scalar=5),
        ]
        mock_db_session.flush = AsyncMock(side_effect=[None, _collision(), None, None])

        saved = await self.service.save(mock_db_session, 1, {})

        assert saved["version"] == 6
        assert mock_db_session.begin_nested.call_count == 2

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [make_result(scalar=1)] + [
            make_result(scalar=None) for _ in range(MAX_VERSION_ATTEMPTS * 2)
        ]
        mock_db_session.flush = AsyncMock(side_effect=_collision())

        with pytest.raises(DatabaseError):
            await self.service.save(mock_db_session, 1, {})
        assert mock_db_session.begin_nested.call_count == MAX_VERSION_ATTEMPTS


class TestAnamneseRead:
    @pytest.mark.asyncio
    async def test_no_version(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=None)

        assert await AnamneseService().get_version(mock_db_session, 1, 3) is None

    @pytest.mark.asyncio
    async def test_version_payload_is_flattened(self, mock_db_session, make_result):
        row = AnamneseVersion(paciente_id=1, version=2, status="Rascunho", payload={"escola": "Sol"})
        mock_db_session.execute.return_value = make_result(scalar=row)

        result = await AnamneseService().get_version(mock_db_session, 1)

        assert result["escola"] == "Sol"
        assert result["version"] == 2
        assert result["status"] == "Rascunho"
