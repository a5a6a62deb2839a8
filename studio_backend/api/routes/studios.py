from datetime import date, timedelta

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import Actor
from ...db.session import get_db
from ...db import schemas
from ...services import appointment_service, session_service, studio_service

router = APIRouter(prefix="/studios", tags=["studios"])

staff_only = deps.require_roles("manager", "studio_owner")


def _date_range(from_date: date | None, to_date: date | None) -> tuple[date, date]:
    to_date = to_date or appointment_service.local_now().date()
    from_date = from_date or to_date - timedelta(days=30)
    return from_date, to_date


@router.get("/{studio_id}/settings", response_model=schemas.StudioSettings)
def get_studio_settings(
    studio_id: int,
    db: Session = Depends(get_db),
    _: Actor = Depends(deps.get_current_actor),
):
    return studio_service.get_studio(db, studio_id)


@router.patch("/{studio_id}/settings", response_model=schemas.StudioSettings)
def update_studio_settings(
    studio_id: int,
    payload: schemas.StudioSettingsUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    studio = deps.ensure_studio_access(db, actor, studio_id)
    return studio_service.update_settings(db, studio, **payload.model_dump(exclude_unset=True))


@router.get("/{studio_id}/appointment-types", response_model=list[schemas.AppointmentType])
def list_appointment_types(
    studio_id: int,
    db: Session = Depends(get_db),
    _: Actor = Depends(deps.get_current_actor),
):
    studio_service.get_studio(db, studio_id)
    return studio_service.list_appointment_types(db, studio_id)


@router.post(
    "/{studio_id}/appointment-types",
    response_model=schemas.AppointmentType,
    status_code=status.HTTP_201_CREATED,
)
def create_appointment_type(
    studio_id: int,
    payload: schemas.AppointmentTypeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    deps.ensure_studio_access(db, actor, studio_id)
    return studio_service.create_appointment_type(
        db,
        studio_id,
        name=payload.name,
        duration=payload.duration,
        consumes_session=payload.consumes_session,
    )


@router.get("/{studio_id}/appointments/stats", response_model=schemas.AppointmentStats)
def appointment_stats(
    studio_id: int,
    from_date: date | None = None,
    to_date: date | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    deps.ensure_studio_access(db, actor, studio_id)
    from_date, to_date = _date_range(from_date, to_date)
    stats = appointment_service.appointment_stats(db, studio_id, from_date, to_date)
    return schemas.AppointmentStats(**stats, from_date=from_date, to_date=to_date)


@router.get("/{studio_id}/sessions/stats", response_model=schemas.SessionStats)
def session_stats(
    studio_id: int,
    from_date: date | None = None,
    to_date: date | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(staff_only),
):
    deps.ensure_studio_access(db, actor, studio_id)
    from_date, to_date = _date_range(from_date, to_date)
    stats = session_service.session_stats(db, studio_id, from_date, to_date)
    return schemas.SessionStats(**stats, from_date=from_date, to_date=to_date)
