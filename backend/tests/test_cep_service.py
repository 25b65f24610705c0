"""
AutismCad Backend — CEP Lookup Unit Tests (Mocked)
===================================================

What:  Tests for CepService and its CircuitBreaker.
How:   httpx.MockTransport stands in for ViaCEP; tenacity waits are disabled
       with wait_none() so retries run instantly.

What we test:
    ✅ successful lookup maps ViaCEP fields
    ✅ {"erro": true} → 404, upstream 5xx → 502, transport errors retried then 502
    ✅ circuit breaker opens, rejects, half-opens and closes
    ❌ Real ViaCEP calls
"""

import time

import httpx
import pytest
from tenacity import wait_none

from autismcad.config import settings
from autismcad.exceptions import (
    CircuitBreakerOpenError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from autismcad.services.cep_service import CepService, CircuitBreaker, normalize_cep_param

VIACEP_OK = {
    "cep": "01310-100",
    "logradouro": "Avenida Paulista",
    "bairro": "Bela Vista",
    "localidade": "Sao Paulo",
    "uf": "SP",
}


def _service(handler) -> CepService:
    return CepService(transport=httpx.MockTransport(handler), retry_wait=wait_none())


class TestCircuitBreaker:
    def test_initial_state_is_closed(self):
        cb = CircuitBreaker("viacep", failure_threshold=3, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.can_execute()

    def test_opens_at_threshold(self):
        cb = CircuitBreaker("viacep", failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == "open"
        with pytest.raises(CircuitBreakerOpenError):
            cb.can_execute()

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker("viacep", failure_threshold=3, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.state == "closed"
        assert cb.failure_count == 1

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker("viacep", failure_threshold=2, recovery_timeout=10)
        cb.record_failure()
        cb.record_failure()
        cb.last_failure_time = time.time() - 11

        assert cb.can_execute()
        assert cb.state == "half_open"

        cb.record_failure()
        assert cb.state == "open"

    def test_success_after_half_open_closes(self):
        cb = CircuitBreaker("viacep", failure_threshold=2, recovery_timeout=10)
        cb.state = cb.HALF_OPEN
        cb.record_success()
        assert cb.state == "closed"
        assert cb.last_failure_time is None


class TestCepLookup:
    def test_param_normalization(self):
        assert normalize_cep_param("01310-100") == "01310100"
        with pytest.raises(ValidationError):
            normalize_cep_param("1234")

    @pytest.mark.asyncio
    async def test_success(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json=VIACEP_OK)

        result = await _service(handler).lookup("01310-100")

        assert result == {
            "logradouro": "Avenida Paulista",
            "bairro": "Bela Vista",
            "cidade": "Sao Paulo",
            "uf": "SP",
        }
        assert seen[0].endswith("/01310100/json/")

    @pytest.mark.asyncio
    async def test_unknown_cep(self):
        service = _service(lambda request: httpx.Response(200, json={"erro": True}))

        with pytest.raises(NotFoundError):
            await service.lookup("99999999")
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_upstream_error_counts_as_failure(self):
        service = _service(lambda request: httpx.Response(503, text="down"))

        with pytest.raises(ExternalServiceError) as exc_info:
            await service.lookup("01310100")
        assert exc_info.value.status == 502
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_client_error_does_not_trip_breaker(self):
        service = _service(lambda request: httpx.Response(400, text="bad"))

        with pytest.raises(ExternalServiceError):
            await service.lookup("01310100")
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        service = _service(handler)

        with pytest.raises(ExternalServiceError, match="Falha ao consultar CEP"):
            await service.lookup("01310100")
        assert len(calls) == settings.retry_max_attempts

    @pytest.mark.asyncio
    async def test_retry_recovers(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=VIACEP_OK)

        result = await _service(handler).lookup("01310100")

        assert result["uf"] == "SP"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=VIACEP_OK)

        service = _service(handler)
        service.circuit_breaker.state = CircuitBreaker.OPEN
        service.circuit_breaker.last_failure_time = time.time()

        with pytest.raises(CircuitBreakerOpenError):
            await service.lookup("01310100")
        assert calls == []
