"""
AutismCad Backend — Patient Service Unit Tests
===============================================

What:  Registration rules, soft delete guard and attachment bookkeeping.
How:   Mock DB session; each db.execute call is fed a prepared result.

What we test:
    ✅ convenio / ativo / terapias normalization
    ✅ existing CPF is reused instead of duplicated (reaproveitado)
    ✅ unique violations surface as DUPLICATE_CPF
    ✅ active patients cannot be deleted
    ✅ attachment keys must belong to the patient
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from autismcad.exceptions import ConflictError, NotFoundError, ValidationError
from autismcad.schemas.paciente import PacienteSave
from autismcad.services.paciente_service import (
    PacienteService,
    normalize_convenio,
    normalize_terapias,
    parse_ativo,
)


def _payload(**overrides) -> PacienteSave:
    data = {"nome": "Joao Silva", "cpf": "123.456.789-01"}
    data.update(overrides)
    return PacienteSave(**data)


class TestPacienteNormalization:
    def test_convenio_fallback(self):
        assert normalize_convenio("Unimed") == "Unimed"
        assert normalize_convenio("SulAmerica") == "Particular"
        assert normalize_convenio(None) == "Particular"

    @pytest.mark.parametrize(
        "value, expected",
        [(None, True), ("1", True), (1, True), (True, True), ("0", False), (0, False), (False, False)],
    )
    def test_parse_ativo(self, value, expected):
        assert parse_ativo(value) is expected

    def test_terapias_merge_and_dedupe(self):
        data = _payload(terapias=["Intensiva", " Especial "], terapia=["Intensiva", "Convencional"])
        assert normalize_terapias(data) == ["Intensiva", "Especial", "Convencional"]

    def test_single_terapia_string(self):
        assert normalize_terapias(_payload(terapia="Intercambio")) == ["Intercambio"]

    def test_empty_email_becomes_none(self):
        assert _payload(email="  ").email is None


class TestPacienteCreate:
    def setup_method(self):
        self.service = PacienteService()

    @pytest.mark.asyncio
    async def test_existing_cpf_is_reused(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [
            make_result(scalar=7),  # find_by_cpf_ativo
            make_result(scalar=7),  # UPDATE ... RETURNING id
            make_result(),  # DELETE paciente_terapias
        ]

        paciente_id, reaproveitado = await self.service.create(mock_db_session, _payload())

        assert paciente_id == 7
        assert reaproveitado is True
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_new_cpf_inserts(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [make_result(scalar=None)]

        _, reaproveitado = await self.service.create(mock_db_session, _payload())

        assert reaproveitado is False
        added = mock_db_session.add.call_args[0][0]
        assert added.cpf == "12345678901"
        assert added.convenio == "Particular"
        assert added.ativo is True

    @pytest.mark.asyncio
    async def test_short_cpf_rejected(self, mock_db_session):
        with pytest.raises(ValidationError, match="Nome e CPF sao obrigatorios"):
            await self.service.save(mock_db_session, _payload(cpf="123-456-789-0"))
        mock_db_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_missing_patient(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError):
            await self.service.save(mock_db_session, _payload(), paciente_id=99)

    @pytest.mark.asyncio
    async def test_unique_violation_is_conflict(self, mock_db_session):
        mock_db_session.execute.side_effect = IntegrityError(
            "UPDATE", {}, Exception("UNIQUE constraint failed: pacientes.cpf")
        )

        with pytest.raises(ConflictError) as exc_info:
            await self.service.save(mock_db_session, _payload(), paciente_id=3)
        assert exc_info.value.code == "DUPLICATE_CPF"


class TestPacienteDelete:
    def setup_method(self):
        self.service = PacienteService()

    @pytest.mark.asyncio
    async def test_active_patient_must_be_archived(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=MagicMock(ativo=True))

        with pytest.raises(ConflictError) as exc_info:
            await self.service.soft_delete(mock_db_session, 4, deleted_by_user_id=1)
        assert exc_info.value.code == "PATIENT_MUST_BE_ARCHIVED_FIRST"

    @pytest.mark.asyncio
    async def test_archived_patient_is_soft_deleted(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [
            make_result(scalar=MagicMock(ativo=False)),
            make_result(),
        ]

        assert await self.service.soft_delete(mock_db_session, 4, deleted_by_user_id=1) == 4
        assert mock_db_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_patient(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError):
            await self.service.soft_delete(mock_db_session, 4)


class TestPacienteAttachments:
    def setup_method(self):
        self.service = PacienteService()

    @pytest.mark.asyncio
    async def test_foreign_key_rejected(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.commit_attachment(
                mock_db_session, 5, "foto", "pacientes/6/foto/abc-foto.png"
            )
        assert exc_info.value.code == "INVALID_KEY"

    @pytest.mark.asyncio
    async def test_external_url_is_returned_as_is(self, mock_db_session, make_result):
        url = "https://cdn.example.com/foto.png"
        mock_db_session.execute.return_value = make_result(scalar=MagicMock(foto=url))

        assert await self.service.read_url(mock_db_session, 5, "foto") == {"url": url, "key": url}

    @pytest.mark.asyncio
    async def test_empty_attachment(self, mock_db_session, make_result):
        mock_db_session.execute.return_value = make_result(scalar=MagicMock(laudo=None))

        assert await self.service.read_url(mock_db_session, 5, "laudo") == {"url": None, "key": None}

    @pytest.mark.asyncio
    async def test_commit_replaces_previous_object(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [
            make_result(scalar=MagicMock(documento="pacientes/5/documento/old-doc.pdf")),
            make_result(),
        ]
        with patch("autismcad.services.paciente_service.file_service") as mock_file:
            mock_file.key_belongs_to.return_value = True
            mock_file.exists.return_value = True

            mock_file.delete_object = AsyncMock()
            result = await self.service.commit_attachment(
                mock_db_session, 5, "documento", "pacientes/5/documento/new-doc.pdf"
            )

        assert result == {"ok": True}
        mock_file.delete_object.assert_awaited_once_with("pacientes/5/documento/old-doc.pdf")
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_previous_object(self, mock_db_session, make_result):
        mock_db_session.execute.side_effect = [
            make_result(scalar=MagicMock(laudo="pacientes/5/laudo/old-laudo.pdf")),
            make_result(),
        ]
        mock_db_session.commit.side_effect = IntegrityError("UPDATE", {}, Exception("locked"))
        with patch("autismcad.services.paciente_service.file_service") as mock_file:
            mock_file.key_belongs_to.return_value = True
            mock_file.exists.return_value = True
            mock_file.delete_object = AsyncMock()

            with pytest.raises(IntegrityError):
                await self.service.commit_attachment(
                    mock_db_session, 5, "laudo", "pacientes/5/laudo/new-laudo.pdf"
                )

        mock_file.delete_object.assert_not_awaited()
