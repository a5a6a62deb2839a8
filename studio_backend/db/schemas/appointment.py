from datetime import date, datetime, time
from pydantic import BaseModel, computed_field, field_serializer, field_validator

from ...core.constants import parse_status, status_label
from ..models.appointment import AppointmentStatus


def _status_from_wire(value):
    if value is None:
        return None
    try:
        return parse_status(value)
    except ValueError as exc:
        raise ValueError(f"Unknown appointment status '{value}'") from exc


class AppointmentCreate(BaseModel):
    studio_id: int
    customer_id: int | None = None
    appointment_type_id: int | None = None
    appointment_date: str
    start_time: str
    end_time: str
    notes: str | None = None
    status: AppointmentStatus | None = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status_alias(cls, value):
        return _status_from_wire(value)


class AppointmentUpdate(BaseModel):
    appointment_type_id: int | None = None
    appointment_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status_alias(cls, value):
        return _status_from_wire(value)


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    notes: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status_alias(cls, value):
        return _status_from_wire(value)


class AppointmentCancel(BaseModel):
    reason: str | None = None


class AppointmentComplete(BaseModel):
    notes: str | None = None


class Appointment(BaseModel):
    id: int
    studio_id: int
    customer_id: int
    appointment_type_id: int | None = None
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    notes: str | None = None
    created_by_user_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    customer_name: str | None = None
    studio_name: str | None = None
    appointment_type_name: str | None = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def status_label(self) -> str:
        return status_label(self.status)

    @field_serializer("start_time", "end_time")
    def format_time(self, value: time) -> str:
        return value.strftime("%H:%M")


class AppointmentActionResult(BaseModel):
    message: str
    appointment: Appointment
    session_deducted: bool | None = None
    session_refunded: bool | None = None
    remaining_sessions: int | None = None
    error: str | None = None


class SweepResult(BaseModel):
    completed: int
    deducted: int
    failed: list[int]


class AppointmentStats(BaseModel):
    total_appointments: int
    pending_appointments: int
    confirmed_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    no_show_appointments: int
    from_date: date
    to_date: date
