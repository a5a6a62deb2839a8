"""Business errors raised by the ledger and the appointment lifecycle.

Each error carries the HTTP status the API layer answers with and a short
machine readable ``code``.
"""


class StudioError(Exception):
    status_code = 400
    code = "studio_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StudioError):
    code = "validation_error"

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class CancellationTooLate(ValidationError):
    code = "cancellation_too_late"

    def __init__(self, required_hours: int, shortfall_hours: float) -> None:
        self.required_hours = required_hours
        self.shortfall_hours = shortfall_hours
        super().__init__(
            f"Appointments must be cancelled at least {required_hours} hours in advance "
            f"({shortfall_hours:.1f} hours short)"
        )


class Conflict(StudioError):
    status_code = 409
    code = "conflict"


class InsufficientBalance(StudioError):
    status_code = 409
    code = "insufficient_balance"


class NoActiveSessions(StudioError):
    status_code = 409
    code = "no_active_sessions"


class DuplicateDeduction(StudioError):
    status_code = 409
    code = "duplicate_deduction"


class DuplicateRefund(StudioError):
    status_code = 409
    code = "duplicate_refund"


class InvalidTransition(StudioError):
    code = "invalid_transition"


class NotFound(StudioError):
    status_code = 404
    code = "not_found"


# Ledger failures that completion and cancellation report instead of raising
LEDGER_ERRORS = (
    InsufficientBalance,
    NoActiveSessions,
    DuplicateDeduction,
    DuplicateRefund,
)


__all__ = [
    "StudioError",
    "ValidationError",
    "CancellationTooLate",
    "Conflict",
    "InsufficientBalance",
    "NoActiveSessions",
    "DuplicateDeduction",
    "DuplicateRefund",
    "InvalidTransition",
    "NotFound",
    "LEDGER_ERRORS",
]
