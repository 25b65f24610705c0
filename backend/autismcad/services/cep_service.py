"""
AutismCad Backend — CEP Lookup Service (ViaCEP)
================================================

What:  Resolves a Brazilian postal code (CEP) into street, district, city and
       state, used to pre-fill the therapist address form.
How:   GET {viacep_base_url}/{cep}/json/ through httpx.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter, transport errors only
       (connect failures, timeouts). An HTTP answer is never retried.
    2. Circuit breaker around the whole lookup: after cb_failure_threshold
       consecutive failures every call fails fast with 503 until
       cb_recovery_timeout has elapsed.

Outcome mapping:
    upstream non-2xx            → 502 "CEP nao encontrado"
    {"erro": true} / bad body   → 404 "CEP nao encontrado"
    transport failure           → 502 "Falha ao consultar CEP"
    circuit open                → 503
"""

import logging
import time
from typing import Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from autismcad.config import settings
from autismcad.exceptions import (
    CircuitBreakerOpenError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from autismcad.normalize import only_digits

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    CLOSED → OPEN after `failure_threshold` consecutive failures.
    OPEN rejects calls until `recovery_timeout` seconds passed, then HALF_OPEN
    lets one call through: success closes the circuit, failure reopens it.

    Not shared between worker processes; each uvicorn worker keeps its own.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """Raises CircuitBreakerOpenError while OPEN and still inside the recovery window."""
        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(
                    service=self.name, recovery_time=int(self.recovery_timeout - elapsed)
                )
            logger.info("Circuit breaker %s transitioning to HALF_OPEN after %.1fs", self.name, elapsed)
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker %s transitioning to CLOSED", self.name)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker %s returning to OPEN (test call failed)", self.name)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker %s OPENING after %d consecutive failures", self.name, self.failure_count
            )
            self.state = self.OPEN


def normalize_cep_param(value: str) -> str:
    cep = only_digits(value)
    if len(cep) != 8:
        raise ValidationError("CEP invalido", code="INVALID_CEP")
    return cep


class CepService:
    """
    Args:
        transport:   httpx transport override (tests use httpx.MockTransport)
        retry_wait:  tenacity wait strategy override (tests pass wait_none())
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, retry_wait=None):
        self.transport = transport
        self.retry_wait = retry_wait or wait_exponential_jitter(
            initial=settings.retry_min_wait, max=settings.retry_max_wait, jitter=1
        )
        self.circuit_breaker = CircuitBreaker(
            "viacep",
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    async def lookup(self, raw_cep: str) -> Dict[str, str]:
        """
        Returns:
            {"logradouro", "bairro", "cidade", "uf"}; missing parts are "".

        Raises:
            ValidationError:         not 8 digits
            NotFoundError:           ViaCEP flagged the CEP as unknown
            ExternalServiceError:    non-2xx answer or transport failure
            CircuitBreakerOpenError: too many recent failures
        """
        cep = normalize_cep_param(raw_cep)
        self.circuit_breaker.can_execute()

        try:
            response = await self._fetch(cep)
        except RetryError as e:
            self.circuit_breaker.record_failure()
            last = e.last_attempt.exception() if e.last_attempt else None
            logger.error("ViaCEP lookup failed for %s: %s", cep, str(last))
            raise ExternalServiceError("Falha ao consultar CEP", context={"cep": cep})

        if response.status_code >= 500:
            self.circuit_breaker.record_failure()
        else:
            self.circuit_breaker.record_success()

        if not response.is_success:
            logger.warning("ViaCEP answered %d for %s", response.status_code, cep)
            raise ExternalServiceError("CEP nao encontrado", context={"status": response.status_code})

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or data.get("erro"):
            raise NotFoundError("CEP nao encontrado", resource="cep", resource_id=cep)

        return {
            "logradouro": data.get("logradouro") or "",
            "bairro": data.get("bairro") or "",
            "cidade": data.get("localidade") or "",
            "uf": data.get("uf") or "",
        }

    async def _fetch(self, cep: str) -> httpx.Response:
        url = f"{settings.viacep_base_url.rstrip('/')}/{cep}/json/"
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(settings.retry_max_attempts),
            wait=self.retry_wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                start = time.time()
                async with httpx.AsyncClient(
                    timeout=settings.viacep_timeout, transport=self.transport
                ) as client:
                    response = await client.get(url, headers={"Accept": "application/json"})
                logger.debug(
                    "ViaCEP %s answered %d in %.0fms", cep, response.status_code, (time.time() - start) * 1000
                )
        return response


cep_service = CepService()
