from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core import errors
from ...core.auth import Actor
from ...core.constants import parse_status
from ...db.session import get_db
from ...db import models, schemas
from ...services import appointment_service, notification_service

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _load(db: Session, appointment_id: int, actor: Actor) -> models.Appointment:
    appointment = appointment_service.get_appointment(db, appointment_id)
    deps.ensure_appointment_access(db, actor, appointment)
    return appointment


def _notify(background_tasks: BackgroundTasks, event: str, appointment: models.Appointment) -> None:
    notification = notification_service.build_appointment_notification(event, appointment)
    background_tasks.add_task(notification_service.notify_appointment_event, notification)


def _action_result(
    result: appointment_service.LifecycleResult, message: str
) -> schemas.AppointmentActionResult:
    return schemas.AppointmentActionResult(
        message=message,
        appointment=schemas.Appointment.model_validate(result.appointment),
        session_deducted=result.session_deducted,
        session_refunded=result.session_refunded,
        remaining_sessions=result.remaining_sessions,
        error=result.error,
    )


@router.get("", response_model=list[schemas.Appointment])
def list_appointments(
    studio_id: int | None = None,
    customer_id: int | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    on_date: date | None = Query(default=None, alias="date"),
    from_date: date | None = None,
    to_date: date | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    if actor.is_customer:
        customer_id = actor.user_id
    elif actor.role == models.UserRole.studio_owner:
        if studio_id is None:
            raise HTTPException(status_code=400, detail="studio_id is required")
        deps.ensure_studio_access(db, actor, studio_id)
    parsed_status = None
    if status_filter:
        try:
            parsed_status = parse_status(status_filter)
        except ValueError as exc:
            raise errors.ValidationError(f"Invalid status '{status_filter}'") from exc
    return appointment_service.list_appointments(
        db,
        studio_id=studio_id,
        customer_id=customer_id,
        status=parsed_status,
        on_date=on_date,
        from_date=from_date,
        to_date=to_date,
    )


@router.post("", response_model=schemas.Appointment, status_code=status.HTTP_201_CREATED)
def create_appointment(
    payload: schemas.AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    if actor.is_customer:
        customer_id = actor.user_id
    else:
        deps.ensure_studio_access(db, actor, payload.studio_id)
        if payload.customer_id is None:
            raise HTTPException(status_code=400, detail="customer_id is required")
        customer_id = payload.customer_id
    appointment = appointment_service.create_appointment(
        db,
        actor=actor,
        studio_id=payload.studio_id,
        customer_id=customer_id,
        appointment_type_id=payload.appointment_type_id,
        appointment_date=payload.appointment_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        notes=payload.notes,
        status=payload.status,
    )
    _notify(background_tasks, "appointment_created", appointment)
    return appointment


@router.post("/sweep", response_model=schemas.SweepResult)
def sweep_appointments(
    db: Session = Depends(get_db),
    _: Actor = Depends(deps.require_roles("manager")),
):
    summary = appointment_service.sweep_past_confirmed(db)
    return schemas.SweepResult(
        completed=summary.completed, deducted=summary.deducted, failed=summary.failed
    )


@router.get("/{appointment_id}", response_model=schemas.Appointment)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    return _load(db, appointment_id, actor)


@router.put("/{appointment_id}", response_model=schemas.AppointmentActionResult)
def update_appointment(
    appointment_id: int,
    payload: schemas.AppointmentUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    appointment = _load(db, appointment_id, actor)
    if actor.is_customer and payload.status not in (None, models.AppointmentStatus.cancelled):
        raise HTTPException(status_code=403, detail="Customers can only cancel appointments")
    result = appointment_service.update_appointment(
        db,
        appointment,
        actor=actor,
        changes=payload.model_dump(exclude_unset=True),
    )
    _notify(background_tasks, "appointment_updated", result.appointment)
    return _action_result(result, "Appointment updated successfully")


@router.delete("/{appointment_id}")
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.require_roles("manager", "studio_owner")),
):
    appointment = _load(db, appointment_id, actor)
    appointment_service.delete_appointment(db, appointment)
    return {"message": "Appointment deleted successfully"}


@router.patch("/{appointment_id}/status", response_model=schemas.AppointmentActionResult)
def update_appointment_status(
    appointment_id: int,
    payload: schemas.AppointmentStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    appointment = _load(db, appointment_id, actor)
    if actor.is_customer and payload.status != models.AppointmentStatus.cancelled:
        raise HTTPException(status_code=403, detail="Customers can only cancel appointments")
    result = appointment_service.set_status(
        db, appointment, payload.status, actor=actor, notes=payload.notes
    )
    _notify(background_tasks, "appointment_status_changed", result.appointment)
    return _action_result(result, "Appointment status updated successfully")


@router.post("/{appointment_id}/cancel", response_model=schemas.AppointmentActionResult)
def cancel_appointment(
    appointment_id: int,
    payload: schemas.AppointmentCancel,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.get_current_actor),
):
    appointment = _load(db, appointment_id, actor)
    result = appointment_service.cancel_appointment(
        db, appointment, actor=actor, reason=payload.reason
    )
    _notify(background_tasks, "appointment_cancelled", result.appointment)
    return _action_result(result, "Appointment cancelled successfully")


@router.patch("/{appointment_id}/complete", response_model=schemas.AppointmentActionResult)
def complete_appointment(
    appointment_id: int,
    payload: schemas.AppointmentComplete,
    db: Session = Depends(get_db),
    actor: Actor = Depends(deps.require_roles("manager", "studio_owner")),
):
    appointment = _load(db, appointment_id, actor)
    result = appointment_service.complete_appointment(
        db, appointment, actor=actor, notes=payload.notes
    )
    if result.session_deducted is False:
        message = "Appointment completed, but session deduction failed"
    elif result.session_deducted:
        message = "Appointment completed and session deducted successfully"
    else:
        message = "Appointment completed"
    return _action_result(result, message)
