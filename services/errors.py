"""Failures raised by the booking and payment services.

Every error carries a machine-readable ``kind`` and the HTTP status the
routing layer should answer with. Gateway and persistence errors keep the
upstream detail in ``detail`` for the server log and only expose a generic
``public_message`` to callers.
"""


class BookingError(Exception):
    kind = "error"
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None, details=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    @property
    def public_message(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        body = {"error": self.public_message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BookingError):
    kind = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(BookingError):
    kind = "authentication_error"
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(BookingError):
    kind = "authorization_error"
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(BookingError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class ConflictError(BookingError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict"


class AmountError(BookingError):
    kind = "amount_too_small"
    status_code = 400
    default_message = "Booking amount is below the payment minimum"


class GatewayError(BookingError):
    kind = "gateway_error"
    status_code = 502
    default_message = "Payment gateway request failed"

    def __init__(self, message: str | None = None, status: int | None = None, detail=None):
        super().__init__(message)
        self.upstream_status = status
        self.detail = detail

    @property
    def public_message(self) -> str:
        return self.default_message

    def to_dict(self) -> dict:
        return {"error": self.public_message, "kind": self.kind}


class PersistenceError(BookingError):
    kind = "persistence_error"
    status_code = 500
    default_message = "Could not save changes"

    @property
    def public_message(self) -> str:
        return self.default_message

    def to_dict(self) -> dict:
        return {"error": self.public_message, "kind": self.kind}
