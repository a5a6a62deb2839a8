"""Common application-wide constants."""

from ..db.models.appointment import AppointmentStatus

# On-the-wire synonyms accepted for appointment statuses
STATUS_ALIASES: dict[str, AppointmentStatus] = {
    "ausstehend": AppointmentStatus.pending,
    "bestätigt": AppointmentStatus.confirmed,
    "abgesagt": AppointmentStatus.cancelled,
    "abgeschlossen": AppointmentStatus.completed,
    "nicht erschienen": AppointmentStatus.no_show,
}

# Reverse direction, used for display labels
STATUS_LABELS: dict[AppointmentStatus, str] = {
    status: alias for alias, status in STATUS_ALIASES.items()
}

# Statuses that never block a time slot
NON_BLOCKING_STATUSES = (AppointmentStatus.cancelled, AppointmentStatus.no_show)

# Allowed moves of the appointment state machine
STATUS_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.pending: frozenset(
        {AppointmentStatus.confirmed, AppointmentStatus.cancelled}
    ),
    AppointmentStatus.confirmed: frozenset(
        {
            AppointmentStatus.completed,
            AppointmentStatus.cancelled,
            AppointmentStatus.no_show,
        }
    ),
    AppointmentStatus.cancelled: frozenset(),
    AppointmentStatus.completed: frozenset(),
    AppointmentStatus.no_show: frozenset(),
}

SWEEP_DEDUCTION_NOTE = "Automatic session deduction for completed past appointment"
COMPLETION_DEDUCTION_NOTE = "Session deducted for completed appointment"
CANCELLATION_REFUND_NOTE = "Session restored for cancelled appointment"


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    normalized = value.strip().lower()
    if normalized in STATUS_ALIASES:
        return STATUS_ALIASES[normalized]
    return AppointmentStatus(normalized)


def status_label(status: AppointmentStatus) -> str:
    return STATUS_LABELS[status]


def valid_status_values() -> list[str]:
    return [status.value for status in AppointmentStatus] + list(STATUS_ALIASES)


__all__ = [
    "STATUS_ALIASES",
    "STATUS_LABELS",
    "NON_BLOCKING_STATUSES",
    "STATUS_TRANSITIONS",
    "SWEEP_DEDUCTION_NOTE",
    "COMPLETION_DEDUCTION_NOTE",
    "CANCELLATION_REFUND_NOTE",
    "parse_status",
    "status_label",
    "valid_status_values",
]
