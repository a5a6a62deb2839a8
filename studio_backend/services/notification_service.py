from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import httpx

from ..config import get_settings
from ..core.constants import status_label
from ..db import models

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AppointmentNotification:
    event: str
    appointment_id: int
    studio_id: int
    customer_id: int
    appointment_date: str
    start_time: str
    status: str
    status_label: str


def build_appointment_notification(
    event: str, appointment: models.Appointment
) -> AppointmentNotification:
    return AppointmentNotification(
        event=event,
        appointment_id=appointment.id,
        studio_id=appointment.studio_id,
        customer_id=appointment.customer_id,
        appointment_date=appointment.appointment_date.isoformat(),
        start_time=appointment.start_time.strftime("%H:%M"),
        status=appointment.status.value,
        status_label=status_label(appointment.status),
    )


def notify_appointment_event(notification: AppointmentNotification) -> None:
    """Deliver one notification to the configured webhook; failures are only logged."""

    settings = get_settings()
    url = settings.notification_webhook_url
    if not url:
        logger.debug(
            "Notification webhook is not configured; skipping",
            extra={"event": notification.event, "appointment_id": notification.appointment_id},
        )
        return
    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(url, json=asdict(notification))
            response.raise_for_status()
    except httpx.HTTPError:
        logger.exception(
            "Failed to send appointment notification",
            extra={"event": notification.event, "appointment_id": notification.appointment_id},
        )
