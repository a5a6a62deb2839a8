from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..core import errors
from ..db import models


def get_studio(db: Session, studio_id: int) -> models.Studio:
    studio = db.get(models.Studio, studio_id)
    if studio is None:
        raise errors.NotFound("Studio not found")
    return studio


def update_settings(db: Session, studio: models.Studio, **changes) -> models.Studio:
    for key, value in changes.items():
        if value is not None:
            setattr(studio, key, value)
    studio.settings_updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(studio)
    return studio


def list_appointment_types(db: Session, studio_id: int) -> list[models.AppointmentType]:
    return (
        db.query(models.AppointmentType)
        .filter(models.AppointmentType.studio_id == studio_id)
        .filter(models.AppointmentType.is_active.is_(True))
        .order_by(models.AppointmentType.name)
        .all()
    )


def create_appointment_type(
    db: Session,
    studio_id: int,
    *,
    name: str,
    duration: int,
    consumes_session: bool = True,
) -> models.AppointmentType:
    appointment_type = models.AppointmentType(
        studio_id=studio_id,
        name=name.strip(),
        duration=duration,
        consumes_session=consumes_session,
        is_active=True,
    )
    db.add(appointment_type)
    db.commit()
    db.refresh(appointment_type)
    return appointment_type
