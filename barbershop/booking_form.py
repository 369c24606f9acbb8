"""
Appointment Form - the five booking fields, their validation and submission.

Field dependencies:
    service, barber, date  ->  AvailabilityNegotiator  ->  time candidates
    time                   ->  must be a candidate when candidates are known
    notes                  ->  free text

The form creates an appointment, or updates one when constructed with an
existing appointment.
"""

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable, Optional, Union

from .availability import AvailabilityNegotiator
from .clients.appointments import AppointmentDraft, AppointmentsClient, is_calendar_date
from .clients.haircuts import HaircutsClient
from .clients.users import UsersClient
from .core.errors import ApiError, ErrorCodes, PreconditionError
from .models import Appointment, Haircut, User
from .notifications import Notifier
from .session import SessionStore

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[], Union[None, Awaitable[None]]]

FORM_INVALID_MESSAGE = "Por favor, completa todos los campos correctamente"
SAVE_ERROR_MESSAGE = "Error al guardar la cita"
MISSING_SESSION_MESSAGE = (
    "No se encontró información del usuario. Por favor, inicia sesión nuevamente."
)


class AppointmentForm:
    def __init__(
        self,
        appointments: AppointmentsClient,
        negotiator: AvailabilityNegotiator,
        session: SessionStore,
        notifier: Notifier,
        appointment: Optional[Appointment] = None,
        on_success: Optional[SuccessCallback] = None,
    ):
        self.appointments = appointments
        self.negotiator = negotiator
        self.session = session
        self.notifier = notifier
        self.appointment = appointment
        self.on_success = on_success

        self.notes: str = ""
        self.errors: dict[str, str] = {}
        self.submitting = False
        self.haircuts: list[Haircut] = []
        self.barbers: list[User] = []

        if appointment is not None:
            self.notes = appointment.notes or ""
            self.negotiator.select_time(appointment.appointment_time)
            self.negotiator.update(
                barber_id=appointment.barber_id,
                haircut_id=appointment.haircut_id,
                appointment_date=appointment.appointment_date.isoformat(),
            )

    @property
    def is_editing(self) -> bool:
        return self.appointment is not None

    # Fields

    @property
    def barber_id(self) -> Optional[int]:
        return self.negotiator.query.barber_id

    @property
    def haircut_id(self) -> Optional[int]:
        return self.negotiator.query.haircut_id

    @property
    def appointment_date(self) -> Optional[str]:
        return self.negotiator.query.appointment_date

    @property
    def appointment_time(self) -> Optional[str]:
        return self.negotiator.selected_time

    @property
    def available_times(self) -> list[str]:
        return self.negotiator.candidates

    def set_service(self, haircut_id: Optional[int]) -> None:
        self.negotiator.update(haircut_id=haircut_id)

    def set_barber(self, barber_id: Optional[int]) -> None:
        self.negotiator.update(barber_id=barber_id)

    def set_date(self, appointment_date: Union[date, str, None]) -> None:
        if isinstance(appointment_date, date):
            appointment_date = appointment_date.isoformat()
        self.negotiator.update(appointment_date=appointment_date)

    def set_time(self, appointment_time: Optional[str]) -> None:
        try:
            self.negotiator.select_time(appointment_time)
        except PreconditionError:
            self.negotiator.selected_time = None
            self.errors["appointment_time"] = "Hora inválida"

    def set_notes(self, notes: Optional[str]) -> None:
        self.notes = notes or ""

    async def load_options(self, users: UsersClient, haircuts: HaircutsClient) -> bool:
        """Fetch the service catalog and the barbers to choose from."""
        try:
            self.haircuts, self.barbers = await asyncio.gather(
                haircuts.list_haircuts(active_only=True),
                users.list_barbers(),
            )
        except (ApiError, PreconditionError) as e:
            logger.error(f"Could not load booking options: {e.message}")
            self.notifier.error("No se pudieron cargar los datos necesarios")
            return False
        return True

    # Validation

    def validate(self, today: Optional[date] = None) -> dict[str, str]:
        """
        Check every field independently. Errors are kept on the form, keyed
        by field, until the next validation.
        """
        today = today or date.today()
        errors: dict[str, str] = {}

        if not self.barber_id:
            errors["barber_id"] = "Debes seleccionar un barbero"

        if not self.haircut_id:
            errors["haircut_id"] = "Debes seleccionar un servicio"

        if not self.appointment_date:
            errors["appointment_date"] = "Debes seleccionar una fecha"
        elif not is_calendar_date(self.appointment_date):
            errors["appointment_date"] = "Fecha inválida"
        elif date.fromisoformat(self.appointment_date) < today:
            errors["appointment_date"] = "No puedes seleccionar una fecha pasada"

        if not self.appointment_time:
            errors["appointment_time"] = "Debes seleccionar una hora"
        elif self.available_times and self.appointment_time not in self.available_times:
            errors["appointment_time"] = "La hora seleccionada no está disponible"

        self.errors = errors
        return errors

    # Submission

    def _draft(self) -> AppointmentDraft:
        return AppointmentDraft(
            barber_id=self.barber_id,
            haircut_id=self.haircut_id,
            appointment_date=self.appointment_date,
            appointment_time=self.appointment_time,
            notes=self.notes or None,
        )

    def _client_id(self) -> int:
        identity = self.session.identity
        if identity is None or not identity.id or identity.id <= 0:
            raise PreconditionError(MISSING_SESSION_MESSAGE, code=ErrorCodes.AUTHENTICATION_REQUIRED)
        return identity.id

    async def submit(self, today: Optional[date] = None) -> bool:
        """
        Validate and send. Returns True on success; on failure the form keeps
        its values so the user can correct them and resubmit.
        """
        if self.validate(today):
            self.notifier.error(FORM_INVALID_MESSAGE)
            return False

        self.submitting = True
        try:
            draft = self._draft()
            if self.is_editing:
                await self.appointments.update(self.appointment.id, draft)
                self.notifier.success("Cita actualizada correctamente")
            else:
                await self.appointments.create(draft, self._client_id())
                self.notifier.success("Cita creada correctamente")
        except (ApiError, PreconditionError) as e:
            logger.warning(f"Saving appointment failed: {e.message}")
            self.notifier.error(e.message or SAVE_ERROR_MESSAGE)
            return False
        finally:
            self.submitting = False

        if self.on_success is not None:
            result = self.on_success()
            if asyncio.iscoroutine(result):
                await result
        return True
