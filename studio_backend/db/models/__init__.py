from .user import User, UserRole
from .studio import Studio
from .appointment_type import AppointmentType
from .appointment import Appointment, AppointmentStatus
from .session_block import SessionBlock
from .session_transaction import SessionTransaction, TransactionType
