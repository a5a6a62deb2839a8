from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, selectinload

from ..config import get_settings
from ..core import errors
from ..core.auth import Actor
from ..core.constants import (
    CANCELLATION_REFUND_NOTE,
    COMPLETION_DEDUCTION_NOTE,
    NON_BLOCKING_STATUSES,
    STATUS_TRANSITIONS,
    SWEEP_DEDUCTION_NOTE,
    parse_status,
    valid_status_values,
)
from ..db import models
from ..db.models.appointment import AppointmentStatus
from ..db.session import atomic
from . import session_service

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}$")


@dataclass(slots=True)
class LifecycleResult:
    appointment: models.Appointment
    session_deducted: bool | None = None
    session_refunded: bool | None = None
    remaining_sessions: int | None = None
    error: str | None = None


@dataclass(slots=True)
class SweepSummary:
    completed: int = 0
    deducted: int = 0
    failed: list[int] = field(default_factory=list)


def local_now() -> datetime:
    """Current wall-clock time in the studio timezone, without tzinfo."""
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def _parse_date(value: Any, problems: list[str]) -> date | None:
    if value is None:
        problems.append("Appointment date is required")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        problems.append("Invalid appointment date format. Expected YYYY-MM-DD")
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        problems.append("Invalid appointment date")
        return None


def _parse_time(value: Any, label: str, problems: list[str]) -> time | None:
    if value is None:
        problems.append(f"{label} is required")
        return None
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str) or not _TIME_RE.match(value):
        problems.append(f"Invalid {label.lower()} format. Expected HH:MM")
        return None
    try:
        return time.fromisoformat(value)
    except ValueError:
        problems.append(f"Invalid {label.lower()}")
        return None


def _parse_status_value(value: Any, problems: list[str]) -> AppointmentStatus | None:
    if value is None:
        return None
    try:
        return parse_status(value)
    except (ValueError, AttributeError):
        problems.append(f"Invalid status. Must be one of: {', '.join(valid_status_values())}")
        return None


def validate_schedule(
    appointment_date: Any,
    start_time: Any,
    end_time: Any,
    *,
    is_new: bool,
    today: date | None = None,
) -> tuple[date, time, time]:
    problems: list[str] = []
    parsed_date = _parse_date(appointment_date, problems)
    start = _parse_time(start_time, "Start time", problems)
    end = _parse_time(end_time, "End time", problems)
    if start and end and start >= end:
        problems.append("Start time must be before end time")
    if is_new and parsed_date and parsed_date < (today or local_now().date()):
        problems.append("Appointment date cannot be in the past")
    if problems:
        raise errors.ValidationError(problems)
    return parsed_date, start, end


def check_conflicts(
    db: Session,
    studio_id: int,
    appointment_date: date,
    start_time: time,
    end_time: time,
    exclude_id: int | None = None,
) -> bool:
    """True when another blocking appointment overlaps ``[start_time, end_time)``."""

    stmt = select(func.count(models.Appointment.id)).where(
        models.Appointment.studio_id == studio_id,
        models.Appointment.appointment_date == appointment_date,
        models.Appointment.status.not_in(NON_BLOCKING_STATUSES),
        models.Appointment.start_time < end_time,
        models.Appointment.end_time > start_time,
    )
    if exclude_id is not None:
        stmt = stmt.where(models.Appointment.id != exclude_id)
    return (db.scalar(stmt) or 0) > 0


def _get_studio(db: Session, studio_id: int, *, for_update: bool = False) -> models.Studio:
    stmt = select(models.Studio).where(models.Studio.id == studio_id)
    if for_update:
        stmt = stmt.with_for_update()
    studio = db.execute(stmt).scalar_one_or_none()
    if studio is None:
        raise errors.NotFound("Studio not found")
    return studio


def _check_appointment_type(db: Session, studio_id: int, appointment_type_id: int | None) -> None:
    if appointment_type_id is None:
        return
    appointment_type = db.get(models.AppointmentType, appointment_type_id)
    if appointment_type is None or appointment_type.studio_id != studio_id:
        raise errors.ValidationError("Appointment type does not belong to this studio")


def _ensure_transition(appointment: models.Appointment, target: AppointmentStatus) -> None:
    if target not in STATUS_TRANSITIONS[appointment.status]:
        raise errors.InvalidTransition(
            f"Cannot change appointment status from {appointment.status.value} to {target.value}"
        )


def _check_cancellation_notice(
    db: Session, appointment: models.Appointment, starts_at: datetime, now: datetime
) -> None:
    studio = appointment.studio or _get_studio(db, appointment.studio_id)
    required = studio.cancellation_advance_hours
    if required is None:
        required = get_settings().default_cancellation_advance_hours
    hours_left = (starts_at - now).total_seconds() / 3600
    if hours_left < required:
        raise errors.CancellationTooLate(required, round(required - hours_left, 2))


def get_appointment(db: Session, appointment_id: int) -> models.Appointment:
    appointment = db.execute(
        select(models.Appointment)
        .options(
            selectinload(models.Appointment.customer),
            selectinload(models.Appointment.studio),
            selectinload(models.Appointment.appointment_type),
        )
        .where(models.Appointment.id == appointment_id)
    ).scalar_one_or_none()
    if appointment is None:
        raise errors.NotFound("Appointment not found")
    return appointment


def create_appointment(
    db: Session,
    *,
    actor: Actor,
    studio_id: int,
    customer_id: int,
    appointment_date: Any,
    start_time: Any,
    end_time: Any,
    appointment_type_id: int | None = None,
    notes: str | None = None,
    status: Any = None,
    now: datetime | None = None,
) -> models.Appointment:
    now = now or local_now()
    appointment_date, start, end = validate_schedule(
        appointment_date, start_time, end_time, is_new=True, today=now.date()
    )
    problems: list[str] = []
    requested = _parse_status_value(status, problems)
    if problems:
        raise errors.ValidationError(problems)
    if requested is None:
        requested = (
            AppointmentStatus.confirmed
            if actor.role == models.UserRole.studio_owner
            else AppointmentStatus.pending
        )
    if requested not in (AppointmentStatus.pending, AppointmentStatus.confirmed):
        raise errors.InvalidTransition("New appointments must be pending or confirmed")
    if actor.is_customer:
        requested = AppointmentStatus.pending

    with atomic(db):
        studio = _get_studio(db, studio_id, for_update=True)
        if db.get(models.User, customer_id) is None:
            raise errors.NotFound("Customer not found")
        _check_appointment_type(db, studio_id, appointment_type_id)
        if actor.is_customer and studio.max_advance_booking_days:
            latest = now.date() + timedelta(days=studio.max_advance_booking_days)
            if appointment_date > latest:
                raise errors.ValidationError(
                    f"Appointments can be booked at most {studio.max_advance_booking_days} days in advance"
                )
        if check_conflicts(db, studio_id, appointment_date, start, end):
            raise errors.Conflict("Time conflict detected. Another appointment exists at this time.")
        appointment = models.Appointment(
            studio_id=studio_id,
            customer_id=customer_id,
            appointment_type_id=appointment_type_id,
            appointment_date=appointment_date,
            start_time=start,
            end_time=end,
            status=requested,
            notes=notes,
            created_by_user_id=actor.user_id,
        )
        db.add(appointment)
        db.flush()
    db.commit()
    logger.info(
        "Appointment created",
        extra={"appointment_id": appointment.id, "studio_id": studio_id, "status": requested.value},
    )
    return appointment


def update_appointment(
    db: Session,
    appointment: models.Appointment,
    *,
    actor: Actor,
    changes: dict[str, Any],
    now: datetime | None = None,
) -> LifecycleResult:
    now = now or local_now()
    problems: list[str] = []
    requested_status = _parse_status_value(changes.get("status"), problems)
    if problems:
        raise errors.ValidationError(problems)

    new_date, new_start, new_end = validate_schedule(
        changes.get("appointment_date") or appointment.appointment_date,
        changes.get("start_time") or appointment.start_time,
        changes.get("end_time") or appointment.end_time,
        is_new=False,
    )
    moved = (
        new_date != appointment.appointment_date
        or new_start != appointment.start_time
        or new_end != appointment.end_time
    )
    target = requested_status if requested_status != appointment.status else None
    if target is not None:
        # Nothing is written when the requested status would be refused.
        _ensure_transition(appointment, target)
        if target == AppointmentStatus.cancelled and actor.is_customer:
            _check_cancellation_notice(
                db, appointment, datetime.combine(new_date, new_start), now
            )

    with atomic(db):
        if moved:
            if not STATUS_TRANSITIONS[appointment.status]:
                raise errors.InvalidTransition(
                    f"Cannot reschedule a {appointment.status.value} appointment"
                )
            studio = _get_studio(db, appointment.studio_id, for_update=True)
            if actor.is_customer:
                required = studio.postponement_advance_hours or 0
                hours_left = (appointment.starts_at - now).total_seconds() / 3600
                if hours_left < required:
                    raise errors.ValidationError(
                        f"Appointments must be moved at least {required} hours in advance"
                    )
            if check_conflicts(
                db, appointment.studio_id, new_date, new_start, new_end, exclude_id=appointment.id
            ):
                raise errors.Conflict("Time conflict detected. Another appointment exists at this time.")
            appointment.appointment_date = new_date
            appointment.start_time = new_start
            appointment.end_time = new_end
        if "appointment_type_id" in changes and changes["appointment_type_id"]:
            _check_appointment_type(db, appointment.studio_id, changes["appointment_type_id"])
            appointment.appointment_type_id = changes["appointment_type_id"]
        if "notes" in changes:
            appointment.notes = changes["notes"]

    if target is None:
        db.commit()
        return LifecycleResult(appointment=appointment)
    try:
        return set_status(db, appointment, target, actor=actor, now=now)
    except errors.StudioError:
        db.rollback()
        raise


def confirm_appointment(db: Session, appointment: models.Appointment) -> LifecycleResult:
    _ensure_transition(appointment, AppointmentStatus.confirmed)
    appointment.status = AppointmentStatus.confirmed
    db.commit()
    return LifecycleResult(appointment=appointment)


def mark_no_show(db: Session, appointment: models.Appointment) -> LifecycleResult:
    _ensure_transition(appointment, AppointmentStatus.no_show)
    appointment.status = AppointmentStatus.no_show
    db.commit()
    return LifecycleResult(appointment=appointment)


def _consumes_session(appointment: models.Appointment) -> bool:
    appointment_type = appointment.appointment_type
    return appointment_type is None or bool(appointment_type.consumes_session)


def complete_appointment(
    db: Session,
    appointment: models.Appointment,
    *,
    actor: Actor | None,
    notes: str | None = None,
) -> LifecycleResult:
    """Mark a confirmed appointment completed and charge one session.

    The completion stands even when the ledger refuses the deduction; the
    result then carries ``session_deducted=False`` and the reason.
    """

    _ensure_transition(appointment, AppointmentStatus.completed)
    appointment.status = AppointmentStatus.completed
    db.flush()
    result = LifecycleResult(appointment=appointment)
    if _consumes_session(appointment):
        try:
            ledger = session_service.deduct_session(
                db,
                customer_id=appointment.customer_id,
                studio_id=appointment.studio_id,
                appointment_id=appointment.id,
                actor_id=actor.user_id if actor else appointment.created_by_user_id,
                notes=notes or COMPLETION_DEDUCTION_NOTE,
            )
        except errors.LEDGER_ERRORS as exc:
            logger.warning(
                "Session deduction failed for completed appointment",
                extra={"appointment_id": appointment.id, "reason": str(exc)},
            )
            result.session_deducted = False
            result.error = str(exc)
        else:
            result.session_deducted = True
            result.remaining_sessions = ledger.remaining_sessions
    db.commit()
    return result


def cancel_appointment(
    db: Session,
    appointment: models.Appointment,
    *,
    actor: Actor,
    reason: str | None = None,
    now: datetime | None = None,
) -> LifecycleResult:
    _ensure_transition(appointment, AppointmentStatus.cancelled)
    now = now or local_now()
    if actor.is_customer:
        _check_cancellation_notice(db, appointment, appointment.starts_at, now)

    was_confirmed = appointment.status == AppointmentStatus.confirmed
    appointment.status = AppointmentStatus.cancelled
    if reason:
        appointment.notes = f"{appointment.notes}\n{reason}" if appointment.notes else reason
    db.flush()
    result = LifecycleResult(appointment=appointment)
    if was_confirmed:
        try:
            ledger = session_service.refund_session(
                db,
                customer_id=appointment.customer_id,
                studio_id=appointment.studio_id,
                appointment_id=appointment.id,
                actor_id=actor.user_id,
                notes=CANCELLATION_REFUND_NOTE,
            )
        except errors.LEDGER_ERRORS as exc:
            logger.warning(
                "Session refund failed for cancelled appointment",
                extra={"appointment_id": appointment.id, "reason": str(exc)},
            )
            result.session_refunded = False
            result.error = str(exc)
        else:
            result.session_refunded = True
            result.remaining_sessions = ledger.remaining_sessions
    db.commit()
    logger.info(
        "Appointment cancelled",
        extra={"appointment_id": appointment.id, "actor_role": actor.role.value},
    )
    return result


def set_status(
    db: Session,
    appointment: models.Appointment,
    status: AppointmentStatus | str,
    *,
    actor: Actor,
    notes: str | None = None,
    now: datetime | None = None,
) -> LifecycleResult:
    try:
        target = parse_status(status)
    except ValueError as exc:
        raise errors.ValidationError(
            f"Invalid status. Must be one of: {', '.join(valid_status_values())}"
        ) from exc
    if target == appointment.status:
        return LifecycleResult(appointment=appointment)
    if target == AppointmentStatus.confirmed:
        return confirm_appointment(db, appointment)
    if target == AppointmentStatus.completed:
        return complete_appointment(db, appointment, actor=actor, notes=notes)
    if target == AppointmentStatus.cancelled:
        return cancel_appointment(db, appointment, actor=actor, reason=notes, now=now)
    if target == AppointmentStatus.no_show:
        return mark_no_show(db, appointment)
    raise errors.InvalidTransition(
        f"Cannot change appointment status from {appointment.status.value} to {target.value}"
    )


def delete_appointment(db: Session, appointment: models.Appointment) -> None:
    if appointment.status == AppointmentStatus.completed:
        raise errors.InvalidTransition("Completed appointments cannot be deleted")
    db.delete(appointment)
    db.commit()


def sweep_past_confirmed(db: Session, today: date | None = None) -> SweepSummary:
    """Complete every confirmed appointment dated before ``today``."""

    today = today or local_now().date()
    summary = SweepSummary()
    appointments = (
        db.execute(
            select(models.Appointment)
            .options(selectinload(models.Appointment.appointment_type))
            .where(
                models.Appointment.appointment_date < today,
                models.Appointment.status == AppointmentStatus.confirmed,
            )
            .order_by(models.Appointment.appointment_date, models.Appointment.start_time)
        )
        .scalars()
        .all()
    )
    for appointment in appointments:
        appointment.status = AppointmentStatus.completed
        db.flush()
        summary.completed += 1
        if not _consumes_session(appointment):
            continue
        try:
            session_service.deduct_session(
                db,
                customer_id=appointment.customer_id,
                studio_id=appointment.studio_id,
                appointment_id=appointment.id,
                actor_id=appointment.created_by_user_id,
                notes=SWEEP_DEDUCTION_NOTE,
            )
        except errors.StudioError as exc:
            summary.failed.append(appointment.id)
            logger.warning(
                "Failed to deduct session for appointment",
                extra={"appointment_id": appointment.id, "reason": str(exc)},
            )
        else:
            summary.deducted += 1
    db.commit()
    if summary.completed:
        logger.info(
            "Updated past appointments to completed",
            extra={
                "completed": summary.completed,
                "deducted": summary.deducted,
                "failed": len(summary.failed),
            },
        )
    return summary


def list_appointments(
    db: Session,
    *,
    studio_id: int | None = None,
    customer_id: int | None = None,
    status: AppointmentStatus | None = None,
    on_date: date | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[models.Appointment]:
    stmt = select(models.Appointment).options(
        selectinload(models.Appointment.customer),
        selectinload(models.Appointment.studio),
        selectinload(models.Appointment.appointment_type),
    )
    if studio_id is not None:
        stmt = stmt.where(models.Appointment.studio_id == studio_id)
    if customer_id is not None:
        stmt = stmt.where(models.Appointment.customer_id == customer_id)
    if status is not None:
        stmt = stmt.where(models.Appointment.status == status)
    if on_date is not None:
        stmt = stmt.where(models.Appointment.appointment_date == on_date)
    if from_date is not None:
        stmt = stmt.where(models.Appointment.appointment_date >= from_date)
    if to_date is not None:
        stmt = stmt.where(models.Appointment.appointment_date <= to_date)
    stmt = stmt.order_by(models.Appointment.appointment_date, models.Appointment.start_time)
    return list(db.execute(stmt).scalars().all())


def appointment_stats(db: Session, studio_id: int, from_date: date, to_date: date) -> dict:
    def _count(status: AppointmentStatus):
        return func.coalesce(
            func.sum(case((models.Appointment.status == status, 1), else_=0)), 0
        )

    row = db.execute(
        select(
            func.count(models.Appointment.id),
            _count(AppointmentStatus.pending),
            _count(AppointmentStatus.confirmed),
            _count(AppointmentStatus.completed),
            _count(AppointmentStatus.cancelled),
            _count(AppointmentStatus.no_show),
        ).where(
            models.Appointment.studio_id == studio_id,
            models.Appointment.appointment_date.between(from_date, to_date),
        )
    ).one()
    return {
        "total_appointments": int(row[0]),
        "pending_appointments": int(row[1]),
        "confirmed_appointments": int(row[2]),
        "completed_appointments": int(row[3]),
        "cancelled_appointments": int(row[4]),
        "no_show_appointments": int(row[5]),
    }


__all__ = [
    "LifecycleResult",
    "SweepSummary",
    "local_now",
    "validate_schedule",
    "check_conflicts",
    "get_appointment",
    "create_appointment",
    "update_appointment",
    "confirm_appointment",
    "mark_no_show",
    "complete_appointment",
    "cancel_appointment",
    "set_status",
    "delete_appointment",
    "sweep_past_confirmed",
    "list_appointments",
    "appointment_stats",
]
