"""
AutismCad Backend — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions carrying an HTTP status and a stable code.
Why:   Services raise them; one set of global handlers (main.py) turns them
       into the JSON envelope `{"error": message, "code": code, "request_id": ...}`.
How:   Each exception carries a user-facing message (Portuguese, shown to the
       clinic staff), an optional `details` dict returned to the client and a
       `context` dict that is only logged.

Exception Hierarchy:
    AppError (base)                  → 500 INTERNAL_ERROR
    ├── ValidationError              → 400 INVALID_INPUT (code overridable)
    ├── UnauthorizedError            → 401 UNAUTHORIZED
    ├── ForbiddenError               → 403 FORBIDDEN
    ├── NotFoundError                → 404 NOT_FOUND
    ├── ConflictError                → 409 CONFLICT (code overridable)
    ├── RateLimitExceededError       → 429 RATE_LIMITED
    ├── ExternalServiceError         → 502 UPSTREAM_ERROR
    ├── CircuitBreakerOpenError      → 503 SERVICE_UNAVAILABLE
    ├── FileStorageError             → 500 STORAGE_ERROR
    └── DatabaseError                → 500 DATABASE_ERROR (message never exposed)
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (returned as `error`)
        status:   HTTP status code
        code:     Machine-readable error code
        details:  Extra payload returned to the client (validation details)
        context:  Debug info, logged but NOT returned
    """

    status: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Erro interno",
        status: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code
        self.details = details
        self.context = context or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    """
    Client input failed a business rule (bad CPF, invalid time, empty role...).

    HTTP: 400. Schema-level failures (Pydantic) are mapped to the same status
    by the RequestValidationError handler, with `details` filled in.
    """

    status = 400
    code = "INVALID_INPUT"

    def __init__(
        self,
        message: str = "Payload invalido",
        code: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, code=code, details=details, context=ctx)
        self.field = field


class UnauthorizedError(AppError):
    status = 401
    code = "UNAUTHORIZED"

    def __init__(
        self,
        message: str = "Nao autenticado",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class ForbiddenError(AppError):
    status = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Acesso negado", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class NotFoundError(AppError):
    """
    A requested record does not exist (or is soft-deleted).

    Services convert SQLAlchemy's `None` into this so routes never check for it.
    """

    status = 404
    code = "NOT_FOUND"

    def __init__(
        self,
        message: str = "Nao encontrado",
        resource: Optional[str] = None,
        resource_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if resource:
            ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = str(resource_id)
        super().__init__(message=message, context=ctx)


class ConflictError(AppError):
    status = 409
    code = "CONFLICT"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class RateLimitExceededError(AppError):
    status = 429
    code = "RATE_LIMITED"

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(
            message=f"Muitas requisicoes. Tente novamente em {retry_after} segundos.",
            details={"retry_after": retry_after},
            context=ctx,
        )
        self.retry_after = retry_after


class ExternalServiceError(AppError):
    """An upstream HTTP service (ViaCEP) failed or answered with an error status."""

    status = 502
    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        message: str = "Falha ao consultar servico externo",
        status: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, status=status, context=context)


class CircuitBreakerOpenError(AppError):
    """
    Raised while the circuit breaker for an upstream service is OPEN.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED; test fails → OPEN again
    """

    status = 503
    code = "SERVICE_UNAVAILABLE"

    def __init__(
        self,
        service: str = "upstream",
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["service"] = service
        ctx["recovery_time"] = recovery_time
        super().__init__(
            message=f"Servico temporariamente indisponivel. Tente novamente em {recovery_time} segundos.",
            details={"recovery_time": recovery_time},
            context=ctx,
        )
        self.recovery_time = recovery_time


class FileStorageError(AppError):
    """Reading, writing or deleting an attachment on the storage volume failed."""

    status = 500
    code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str = "Falha no armazenamento de arquivo",
        status: Optional[int] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, status=status, code=code, context=context)


class DatabaseError(AppError):
    """
    A query failed unexpectedly.

    Security Note:
        The client always gets "Erro interno"; SQL text and constraint names
        stay in the server log.
    """

    status = 500
    code = "DATABASE_ERROR"

    def __init__(
        self,
        message: str = "Erro interno",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
