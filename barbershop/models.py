"""
Domain models for the barbershop client.

Wire payloads use camelCase; models expose snake_case attributes and accept
either form when validating.

Status Flow:
    PENDING -> CONFIRMED -> COMPLETED
    PENDING | CONFIRMED -> CANCELED
    COMPLETED and CANCELED are terminal.

Payment status evolves independently: PENDING <-> PAID, PENDING <-> FAILED.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# ENUMS
# ============================================================================

class UserRole(IntEnum):
    """Role of a user, as encoded by the backend."""
    CLIENT = 1
    BARBER = 2
    ADMIN = 3

    @property
    def wire_name(self) -> str:
        return {1: "Client", 2: "Barber", 3: "Admin"}[self.value]

    @property
    def label(self) -> str:
        return {1: "Cliente", 2: "Barbero", 3: "Administrador"}[self.value]


ROLE_ALIASES = {
    "client": UserRole.CLIENT,
    "cliente": UserRole.CLIENT,
    "barber": UserRole.BARBER,
    "barbero": UserRole.BARBER,
    "admin": UserRole.ADMIN,
    "administrator": UserRole.ADMIN,
    "administrador": UserRole.ADMIN,
}


def normalize_role(value: Any) -> Optional[UserRole]:
    """
    Map any observed role encoding to UserRole.

    Tokens and profiles have carried the role as an int, a numeric string or
    a symbolic name. Unknown values map to None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, UserRole):
        return value
    if isinstance(value, (list, tuple)):
        # Multi-role claims: the first recognizable role wins.
        for item in value:
            role = normalize_role(item)
            if role is not None:
                return role
        return None
    if isinstance(value, int):
        try:
            return UserRole(value)
        except ValueError:
            return None
    if isinstance(value, str):
        text = value.strip().lower()
        if text.isdigit():
            return normalize_role(int(text))
        return ROLE_ALIASES.get(text)
    return None


class AppointmentStatus(IntEnum):
    """Lifecycle status of an appointment."""
    PENDING = 1
    CONFIRMED = 2
    COMPLETED = 3
    CANCELED = 4

    @property
    def label(self) -> str:
        return {1: "Pendiente", 2: "Confirmada", 3: "Completada", 4: "Cancelada"}[self.value]

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED)


class PaymentStatus(IntEnum):
    """Payment status, independent of the appointment lifecycle."""
    PENDING = 1
    PAID = 2
    FAILED = 3

    @property
    def label(self) -> str:
        return {1: "Pendiente", 2: "Pagado", 3: "Fallido"}[self.value]


STATUS_ALIASES = {
    "pending": 1,
    "pendiente": 1,
    "confirmed": 2,
    "confirmada": 2,
    "completed": 3,
    "completada": 3,
    "canceled": 4,
    "cancelled": 4,
    "cancelada": 4,
}

PAYMENT_ALIASES = {
    "pending": 1,
    "pendiente": 1,
    "paid": 2,
    "pagado": 2,
    "failed": 3,
    "fallido": 3,
}


def _coerce_enum_value(value: Any, aliases: dict[str, int], default: int) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text.isdigit():
            return int(text)
        if text in aliases:
            return aliases[text]
    return value


# ============================================================================
# API MODELS
# ============================================================================

class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class User(ApiModel):
    """A user profile as returned by /users and /users/profile."""
    id: int
    full_name: str = ""
    email: str = ""
    phone_number: Optional[str] = None
    role: Optional[UserRole] = None
    profile_photo_url: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Optional[UserRole]:
        return normalize_role(value)


class Haircut(ApiModel):
    """A bookable service. Read-only reference data."""
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal = Decimal("0")
    duration_minutes: int = 0
    is_active: bool = True

    @property
    def option_label(self) -> str:
        return f"{self.name} - ${self.price} ({self.duration_minutes} min)"


class PersonRef(ApiModel):
    """Display view of a client or barber attached to an appointment."""
    id: int
    full_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "PersonRef":
        return cls(id=user.id, full_name=user.full_name or None, email=user.email or None)


class ServiceRef(ApiModel):
    """Display view of the service attached to an appointment."""
    id: int
    name: Optional[str] = None
    price: Optional[Decimal] = None
    duration_minutes: Optional[int] = None

    @classmethod
    def from_haircut(cls, haircut: Haircut) -> "ServiceRef":
        return cls(
            id=haircut.id,
            name=haircut.name,
            price=haircut.price,
            duration_minutes=haircut.duration_minutes,
        )


class Appointment(ApiModel):
    """
    An appointment in the UI's shape.

    ``client``, ``barber`` and ``haircut`` are filled by the enrichment join;
    they are a derived view and never sent back to the backend.
    """
    id: int
    client_id: int
    barber_id: int
    haircut_id: int
    appointment_date: date
    appointment_time: str  # HH:MM, shop local
    status: AppointmentStatus = AppointmentStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    client: Optional[PersonRef] = None
    barber: Optional[PersonRef] = None
    haircut: Optional[ServiceRef] = None

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        return _coerce_enum_value(value, STATUS_ALIASES, AppointmentStatus.PENDING)

    @field_validator("payment_status", mode="before")
    @classmethod
    def _coerce_payment_status(cls, value: Any) -> Any:
        return _coerce_enum_value(value, PAYMENT_ALIASES, PaymentStatus.PENDING)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def starts_at(self) -> datetime:
        hour, minute = (int(part) for part in self.appointment_time.split(":")[:2])
        return datetime(
            self.appointment_date.year,
            self.appointment_date.month,
            self.appointment_date.day,
            hour,
            minute,
        )


# ============================================================================
# SESSION
# ============================================================================

@dataclass
class Identity:
    """
    Who the current user is, decoded from the stored credential.

    The decoded claims stay authoritative for id, role, email and name;
    ``profile`` is attached later and may stay None.
    """
    id: int
    role: UserRole
    email: str = ""
    full_name: str = ""
    profile: Optional[User] = None

    @property
    def display_name(self) -> str:
        if self.profile and self.profile.full_name:
            return self.profile.full_name
        return self.full_name or self.email
