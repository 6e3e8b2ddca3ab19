# orderflow/core/errors.py
from typing import Any, Dict


class OrderflowError(Exception):
    """Base for every contract violation surfaced by the coordinator."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message, **self.details}


class ValidationError(OrderflowError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(OrderflowError):
    kind = "not_found"
    status_code = 404


class ConflictError(OrderflowError):
    kind = "conflict"
    status_code = 409


class ExpiredError(OrderflowError):
    kind = "expired"
    status_code = 410


class RateLimitError(OrderflowError):
    kind = "rate_limited"
    status_code = 429


class ExternalServiceError(OrderflowError):
    """Raised by gateways; the dispatcher records it per channel and moves on."""

    kind = "external_service_error"
    status_code = 502
