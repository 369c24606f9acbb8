"""
Appointment state machine and the per-action role/ownership matrix.

| Action                | Client     | Barber        | Admin | Precondition  |
|-----------------------|------------|---------------|-------|---------------|
| Edit                  | owner only | assigned only | any   | not terminal  |
| Cancel                | owner only | -             | any   | not terminal  |
| Complete              | -          | assigned only | any   | not terminal  |
| Change payment status | owner only | -             | any   | not terminal  |

This only decides which controls to offer. The backend enforces the same
rules independently.
"""

from enum import Enum
from typing import Optional

from .core.errors import ErrorCodes, PreconditionError
from .models import Appointment, AppointmentStatus, Identity, UserRole

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELED: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


class AppointmentAction(str, Enum):
    EDIT = "edit"
    CANCEL = "cancel"
    COMPLETE = "complete"
    CHANGE_PAYMENT = "change_payment"

    @property
    def label(self) -> str:
        return {
            "edit": "Editar",
            "cancel": "Cancelar",
            "complete": "Completar",
            "change_payment": "Cambiar pago",
        }[self.value]


def _is_owner(appointment: Appointment, identity: Identity) -> bool:
    return appointment.client_id == identity.id


def _is_assigned(appointment: Appointment, identity: Identity) -> bool:
    return appointment.barber_id == identity.id


def is_action_allowed(
    action: AppointmentAction,
    appointment: Appointment,
    identity: Optional[Identity],
) -> bool:
    if identity is None or appointment.is_terminal:
        return False

    role = identity.role
    if role == UserRole.ADMIN:
        return True
    if action == AppointmentAction.EDIT:
        if role == UserRole.CLIENT:
            return _is_owner(appointment, identity)
        return role == UserRole.BARBER and _is_assigned(appointment, identity)
    if action in (AppointmentAction.CANCEL, AppointmentAction.CHANGE_PAYMENT):
        return role == UserRole.CLIENT and _is_owner(appointment, identity)
    if action == AppointmentAction.COMPLETE:
        return role == UserRole.BARBER and _is_assigned(appointment, identity)
    return False


def allowed_actions(appointment: Appointment, identity: Optional[Identity]) -> list[AppointmentAction]:
    """Actions to offer for ``appointment``, in display order."""
    return [action for action in AppointmentAction if is_action_allowed(action, appointment, identity)]


def ensure_action_allowed(
    action: AppointmentAction,
    appointment: Appointment,
    identity: Optional[Identity],
) -> None:
    """Raise PreconditionError when ``action`` must not be offered."""
    if is_action_allowed(action, appointment, identity):
        return
    if appointment.is_terminal:
        raise PreconditionError(
            f"La cita está {appointment.status.label.lower()} y no admite cambios",
            code=ErrorCodes.ACTION_NOT_ALLOWED,
        )
    raise PreconditionError(
        f"No tienes permiso para {action.label.lower()} esta cita",
        code=ErrorCodes.ACTION_NOT_ALLOWED,
    )
