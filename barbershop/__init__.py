"""
Barbershop booking client - session, availability negotiation, booking and
appointment views over the barbershop REST API.
"""
from .availability import AvailabilityNegotiator
from .booking_form import AppointmentForm
from .models import Appointment, AppointmentStatus, Haircut, Identity, PaymentStatus, User, UserRole
from .role_gate import GateState, RoleGate
from .session import FileTokenStorage, MemoryTokenStorage, SessionStore, decode_token

__version__ = "0.1.0"

__all__ = [
    # Models
    "Appointment",
    "AppointmentStatus",
    "Haircut",
    "Identity",
    "PaymentStatus",
    "User",
    "UserRole",
    # Session
    "FileTokenStorage",
    "MemoryTokenStorage",
    "SessionStore",
    "decode_token",
    "GateState",
    "RoleGate",
    # Booking
    "AppointmentForm",
    "AvailabilityNegotiator",
]
