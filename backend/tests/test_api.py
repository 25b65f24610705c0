"""
AutismCad Backend — API Integration Tests
==========================================

What:  Exercises the HTTP surface through the real app: routing, auth guards,
       the error envelope and a few end-to-end handler paths.
How:   httpx AsyncClient over ASGITransport (no server). The database
       session dependency is overridden with a mock; services are patched
       where a test needs a specific outcome.

What we test:
    ✅ 401 without a token, 403 for the wrong role
    ✅ 400 VALIDATION_ERROR envelope (body, query and path sources)
    ✅ unknown routes answer the same envelope
    ✅ login success and failure
    ✅ patient re-registration answers 200 reaproveitado
    ✅ health check reports database status
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from autismcad.auth.access import UserAccess
from autismcad.auth.deps import AuthContext, require_access
from autismcad.auth.password import hash_password
from autismcad.auth.session import SessionUser, create_file_token, create_session_token
from autismcad.config import settings
from autismcad.database import get_db_session
from autismcad.main import app
from autismcad.services.pdf_service import build_evolutivo_pdf


@pytest.fixture
def api_db(mock_db_session):
    async def override():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = override
    yield mock_db_session
    app.dependency_overrides.clear()


def _as(role: str, permissions=()):
    canonical = {"admin-geral": "ADMIN_GERAL", "admin": "ADMIN", "recepcao": "RECEPCAO", "terapeuta": "TERAPEUTA"}[role]
    context = AuthContext(
        user=SessionUser(id=1, role=role),
        access=UserAccess(exists=True, roles=[canonical, role], primary_role=canonical, permissions=set(permissions)),
    )

    async def override():
        return context

    app.dependency_overrides[require_access] = override


def _bearer(role: str = "admin-geral") -> dict:
    token, _ = create_session_token(1, role)
    return {"Authorization": f"Bearer {token}"}


class TestAuthGuards:
    @pytest.mark.asyncio
    async def test_missing_token(self, test_client, api_db):
        response = await test_client.get("/api/pacientes")

        assert response.status_code == 401
        body = response.json()
        assert body["code"] == "UNAUTHORIZED"
        assert body["request_id"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_garbage_token(self, test_client, api_db):
        response = await test_client.get("/api/pacientes", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_for_deleted_user(self, test_client, api_db, make_result):
        api_db.execute.return_value = make_result(first=None)

        response = await test_client.get("/api/pacientes", headers=_bearer())

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_recepcao_cannot_manage_users(self, test_client, api_db, make_result):
        row = MagicMock(id=1, nome="Rita", email="rita@clinica.com", role="recepcao")
        api_db.execute.side_effect = [make_result(first=row), make_result(rows=[])]

        response = await test_client.get("/api/users", headers=_bearer("recepcao"))

        assert response.status_code == 403
        assert response.json()["error"] == "Acesso negado"

    @pytest.mark.asyncio
    async def test_missing_permission(self, test_client, api_db):
        _as("recepcao", permissions={"pacientes:view"})

        response = await test_client.delete("/api/pacientes/3")

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"


class TestErrorEnvelope:
    @pytest.mark.asyncio
    async def test_body_validation(self, test_client, api_db):
        response = await test_client.post("/api/auth/login", json={"email": "not-an-email"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Payload invalido"
        assert body["code"] == "VALIDATION_ERROR"
        assert set(body["details"]["fieldErrors"]) == {"email", "password"}

    @pytest.mark.asyncio
    async def test_malformed_json(self, test_client, api_db):
        response = await test_client.post(
            "/api/auth/login", content=b"{oops", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["details"]["formErrors"]

    @pytest.mark.asyncio
    async def test_query_validation(self, test_client, api_db):
        _as("admin-geral")

        response = await test_client.get("/api/atendimentos", params={"dataIni": "01/03/2024"})

        assert response.status_code == 400
        assert response.json()["error"] == "Filtro invalido"
        assert "details" not in response.json()

    @pytest.mark.asyncio
    async def test_path_parameter_must_be_positive(self, test_client, api_db):
        _as("admin-geral")

        response = await test_client.patch("/api/pacientes/0/ativo", json={"ativo": False})

        assert response.status_code == 400
        assert response.json()["error"] == "Parametro invalido"

    @pytest.mark.asyncio
    async def test_unknown_route(self, test_client):
        response = await test_client.get("/api/nao-existe")

        assert response.status_code == 404
        assert response.json()["code"] == "HTTP_404"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/api/nao-existe", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
        assert response.json()["request_id"] == "abc123"


class TestLogin:
    @pytest.mark.asyncio
    async def test_success(self, test_client, api_db):
        user = MagicMock(id=4, nome="Ana", email="ana@clinica.com", role="terapeuta", senha_hash=hash_password("segredo1"))
        with patch("autismcad.services.auth_service.users_service") as mock_users:
            mock_users.get_active_by_email = AsyncMock(return_value=user)
            response = await test_client.post(
                "/api/auth/login",
                json={"email": "ana@clinica.com", "password": "segredo1"},
                headers={"User-Agent": "Mozilla/5.0 Firefox/121.0"},
            )

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "Bearer"
        assert body["user"]["role"] == "terapeuta"
        added_log = api_db.add.call_args[0][0]
        assert added_log.status == "SUCESSO"
        assert added_log.browser == "Firefox 121"

    @pytest.mark.asyncio
    async def test_wrong_password(self, test_client, api_db):
        user = MagicMock(id=4, role="terapeuta", senha_hash=hash_password("segredo1"))
        with patch("autismcad.services.auth_service.users_service") as mock_users:
            mock_users.get_active_by_email = AsyncMock(return_value=user)
            response = await test_client.post(
                "/api/auth/login", json={"email": "ana@clinica.com", "password": "errada"}
            )

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"
        api_db.commit.assert_awaited()


class TestPacientesApi:
    @pytest.mark.asyncio
    async def test_reregistration_answers_200(self, test_client, api_db):
        _as("admin-geral")
        with patch("autismcad.routes.pacientes.paciente_service") as mock_service:
            mock_service.create = AsyncMock(return_value=(7, True))
            response = await test_client.post(
                "/api/pacientes", json={"nome": "Joao", "cpf": "12345678901"}
            )

        assert response.status_code == 200
        assert response.json() == {"id": 7, "reaproveitado": True}

    @pytest.mark.asyncio
    async def test_new_patient_answers_201(self, test_client, api_db):
        _as("admin-geral")
        with patch("autismcad.routes.pacientes.paciente_service") as mock_service:
            mock_service.create = AsyncMock(return_value=(8, False))
            response = await test_client.post(
                "/api/pacientes", json={"nome": "Joao", "cpf": "12345678901"}
            )

        assert response.status_code == 201
        assert response.json() == {"id": 8}


class TestAtendimentosApi:
    @pytest.mark.asyncio
    async def test_recurring_weekday_out_of_range(self, test_client, api_db):
        _as("admin-geral")
        with patch("autismcad.routes.atendimentos.atendimento_service") as mock_service:
            mock_service.create_recorrentes = AsyncMock()
            response = await test_client.post(
                "/api/atendimentos/recorrente",
                json={
                    "pacienteId": 1,
                    "terapeutaId": 2,
                    "horaInicio": "14:00",
                    "horaFim": "15:00",
                    "periodoInicio": "2024-03-01",
                    "periodoFim": "2024-03-31",
                    "diasSemana": [1, 9, -3],
                },
            )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Payload invalido"
        assert "diasSemana" in body["details"]["fieldErrors"]
        mock_service.create_recorrentes.assert_not_awaited()


class TestArquivosApi:
    @pytest.mark.asyncio
    async def test_oversized_upload_is_400_and_never_stored(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "max_file_size", 16)
        token = create_file_token("put", "pacientes/1/laudo/abc-laudo.pdf", "application/pdf")
        with patch("autismcad.routes.arquivos.file_service.put_object", AsyncMock()) as mock_put:
            response = await test_client.put(f"/api/arquivos/{token}", content=b"%PDF-" + b"x" * 64)

        assert response.status_code == 400
        assert response.json()["code"] == "FILE_TOO_LARGE"
        mock_put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upload_within_limit_is_stored(self, test_client):
        token = create_file_token("put", "pacientes/1/laudo/abc-laudo.pdf", "application/pdf")
        with patch("autismcad.routes.arquivos.file_service.put_object", AsyncMock()) as mock_put:
            response = await test_client.put(f"/api/arquivos/{token}", content=b"%PDF-1.4 body")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "key": "pacientes/1/laudo/abc-laudo.pdf"}
        args, kwargs = mock_put.await_args
        assert args == ("pacientes/1/laudo/abc-laudo.pdf", b"%PDF-1.4 body")
        assert kwargs["content_length"] == len(b"%PDF-1.4 body")


class TestRelatoriosApi:
    @pytest.mark.asyncio
    async def test_pdf_rendered_off_the_event_loop(self, test_client, api_db):
        _as("admin-geral")
        report = {"paciente": {"id": 3, "nome": "Ana"}}
        with patch("autismcad.routes.relatorios.relatorio_service") as mock_service, patch(
            "autismcad.routes.relatorios.run_in_threadpool", AsyncMock(return_value=b"%PDF-1.7")
        ) as mock_pool:
            mock_service.evolutivo = AsyncMock(return_value=report)
            response = await test_client.get("/api/relatorios/evolutivo/pdf", params={"pacienteId": 3})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.7"
        mock_pool.assert_awaited_once_with(build_evolutivo_pdf, report)


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        conn = MagicMock()
        conn.execute = AsyncMock()

        @asynccontextmanager
        async def connect():
            yield conn

        with patch("autismcad.routes.health.engine") as mock_engine:
            mock_engine.connect.side_effect = connect
            response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["checks"]["database"] == "connected"
        assert body["service"] == "autismcad-api"

    @pytest.mark.asyncio
    async def test_database_down(self, test_client):
        with patch("autismcad.routes.health.engine") as mock_engine:
            mock_engine.connect.side_effect = OSError("connection refused")
            response = await test_client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
