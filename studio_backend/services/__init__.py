from . import (
    appointment_service,
    notification_service,
    session_service,
    session_store,
    studio_service,
)
__all__ = [
    "appointment_service",
    "notification_service",
    "session_service",
    "session_store",
    "studio_service",
]
