from datetime import datetime
from pydantic import BaseModel, Field


class StudioSettings(BaseModel):
    id: int
    name: str
    machine_count: int
    cancellation_advance_hours: int
    postponement_advance_hours: int
    max_advance_booking_days: int
    settings_updated_at: datetime | None = None

    class Config:
        from_attributes = True


class StudioSettingsUpdate(BaseModel):
    cancellation_advance_hours: int | None = Field(default=None, ge=0, le=168)
    postponement_advance_hours: int | None = Field(default=None, ge=0, le=168)
    max_advance_booking_days: int | None = Field(default=None, ge=1, le=365)


class AppointmentTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    duration: int = Field(default=60, gt=0)
    consumes_session: bool = True


class AppointmentType(BaseModel):
    id: int
    studio_id: int
    name: str
    duration: int
    consumes_session: bool
    is_active: bool

    class Config:
        from_attributes = True
