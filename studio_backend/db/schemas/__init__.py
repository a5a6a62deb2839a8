from .appointment import (
    Appointment,
    AppointmentActionResult,
    AppointmentCancel,
    AppointmentComplete,
    AppointmentCreate,
    AppointmentStats,
    AppointmentStatusUpdate,
    AppointmentUpdate,
    SweepResult,
)
from .session import (
    CustomerSessionInfo,
    LedgerResult,
    SessionBlock,
    SessionBlockCreate,
    SessionDeactivate,
    SessionEdit,
    SessionHistory,
    SessionRefund,
    SessionStats,
    SessionTopup,
    SessionTransaction,
)
from .studio import AppointmentType, AppointmentTypeCreate, StudioSettings, StudioSettingsUpdate
from .user import User
