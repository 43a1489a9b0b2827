"""Booking domain errors.

Services raise these; ``app.main`` turns them into JSON responses with the
status code and machine-readable ``code`` carried by each class.
"""


class BookingError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class ValidationError(BookingError):
    status_code = 400
    code = "validation_error"


class CapacityError(BookingError):
    status_code = 400
    code = "capacity_unavailable"

    def __init__(self, message: str = "", reason: str = "insufficient_capacity"):
        super().__init__(message)
        self.reason = reason  # no_slot | insufficient_capacity

    def to_dict(self) -> dict:
        return {**super().to_dict(), "reason": self.reason}


class PolicyError(BookingError):
    status_code = 400
    code = "policy_violation"


class SignatureError(BookingError):
    status_code = 400
    code = "invalid_signature"

    def to_dict(self) -> dict:
        # never echo verification internals back to the caller
        return {"detail": "Invalid signature", "code": self.code}


class InvalidStateError(BookingError):
    status_code = 409
    code = "invalid_state"


class ConflictError(BookingError):
    status_code = 409
    code = "conflict"


class RetryableError(BookingError):
    status_code = 503
    code = "retry"


class PaymentProviderError(BookingError):
    status_code = 502
    code = "payment_provider_error"
