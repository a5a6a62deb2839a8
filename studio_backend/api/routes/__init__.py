from . import (
    auth,
    appointments,
    sessions,
    studios,
    misc,
)

__all__ = [
    "auth",
    "appointments",
    "sessions",
    "studios",
    "misc",
]
