"""Error taxonomy shared by the Paypack client, correlator and HTTP layer.

Every error raised across a component boundary is a `PushPayError`; the HTTP
layer turns it into `{"error", "code", "details"}` with `status_code`.
"""

from typing import Any


class PushPayError(Exception):
    """Base error carrying an HTTP status, a stable code and optional details."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(PushPayError):
    """Bad caller input. Never retried."""

    status_code = 400
    code = "VALIDATION_FAILED"


class AuthError(PushPayError):
    """Paypack rejected our credentials or returned no access token."""

    status_code = 500
    code = "PAYPACK_AUTH_FAILED"

    def __init__(self, message: str, *, upstream_status: int | None = None, details: Any | None = None) -> None:
        super().__init__(message, details=details)
        self.upstream_status = upstream_status


class ProviderError(PushPayError):
    """Non-2xx or transport failure from the Paypack API."""

    status_code = 502
    code = "PAYPACK_API_ERROR"

    def __init__(self, message: str, *, upstream_status: int | None = None, body: Any | None = None) -> None:
        super().__init__(message, details={"upstream_status": upstream_status})
        self.upstream_status = upstream_status
        self.body = body


class SignatureError(PushPayError):
    """Webhook signature missing, malformed or mismatched."""

    status_code = 401
    code = "INVALID_SIGNATURE"


class NotFoundError(PushPayError):
    status_code = 404
    code = "PAYMENT_NOT_FOUND"


class StateConflictError(PushPayError):
    """A write would break the payment state or external_ref invariants."""

    status_code = 409
    code = "PAYMENT_STATE_CONFLICT"


class InternalError(PushPayError):
    status_code = 500
    code = "INTERNAL_ERROR"


class ConfigurationError(RuntimeError):
    """Required configuration is missing; raised at startup only."""
