"""
Appointment Views - table, calendar and cards over one appointment collection.

AppointmentCollection owns the fetched list. Views only read it; actions ask
the collection to reload after a successful mutation instead of patching it
locally, so server-side effects (such as a released slot) are always
reflected.
"""

import calendar
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Awaitable, Callable, Iterable, Optional

from .clients.appointments import AppointmentsClient
from .core.errors import ApiError, PreconditionError
from .enrichment import EnrichmentService
from .models import Appointment, AppointmentStatus, Identity, PaymentStatus
from .notifications import Confirmer, Notifier
from .permissions import AppointmentAction, allowed_actions, ensure_action_allowed

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"

MONTH_NAMES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)
WEEKDAY_NAMES = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")


# ────────────────────────────────────────────────────────────────
# Formatting
# ────────────────────────────────────────────────────────────────

def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def format_date_time(appointment: Appointment) -> str:
    """'07/03/2025 a las 14:30'"""
    return f"{format_date(appointment.appointment_date)} a las {appointment.appointment_time}"


def format_long_date(value: date) -> str:
    """'viernes, 7 de marzo de 2025'"""
    return (
        f"{WEEKDAY_NAMES[value.weekday()]}, {value.day} de "
        f"{MONTH_NAMES[value.month - 1]} de {value.year}"
    )


def _person_name(appointment: Appointment, attr: str) -> str:
    person = getattr(appointment, attr)
    return person.full_name if person and person.full_name else NOT_AVAILABLE


def _service_name(appointment: Appointment) -> str:
    return appointment.haircut.name if appointment.haircut and appointment.haircut.name else NOT_AVAILABLE


# ────────────────────────────────────────────────────────────────
# Table and cards
# ────────────────────────────────────────────────────────────────

@dataclass
class AppointmentRow:
    id: int
    when: str
    service: str
    client: str
    barber: str
    status_label: str
    payment_label: str
    payment_editable: bool
    actions: list[AppointmentAction] = field(default_factory=list)
    notes: Optional[str] = None
    price: Optional[str] = None
    duration: Optional[str] = None


def build_row(appointment: Appointment, identity: Optional[Identity]) -> AppointmentRow:
    actions = allowed_actions(appointment, identity)
    haircut = appointment.haircut
    return AppointmentRow(
        id=appointment.id,
        when=format_date_time(appointment),
        service=_service_name(appointment),
        client=_person_name(appointment, "client"),
        barber=_person_name(appointment, "barber"),
        status_label=appointment.status.label,
        payment_label=appointment.payment_status.label,
        payment_editable=AppointmentAction.CHANGE_PAYMENT in actions,
        actions=actions,
        notes=appointment.notes,
        price=f"${haircut.price}" if haircut and haircut.price is not None else None,
        duration=f"{haircut.duration_minutes} min" if haircut and haircut.duration_minutes else None,
    )


def build_table(appointments: Iterable[Appointment], identity: Optional[Identity]) -> list[AppointmentRow]:
    """One row per appointment, soonest first."""
    ordered = sorted(appointments, key=lambda a: (a.starts_at, a.id))
    return [build_row(appointment, identity) for appointment in ordered]


def build_cards(appointments: Iterable[Appointment], identity: Optional[Identity]) -> list[AppointmentRow]:
    # Cards show the same data as rows, newest first.
    ordered = sorted(appointments, key=lambda a: (a.starts_at, a.id), reverse=True)
    return [build_row(appointment, identity) for appointment in ordered]


def render_table(rows: list[AppointmentRow]) -> str:
    if not rows:
        return "No hay citas registradas"
    headers = ("#", "Fecha y Hora", "Servicio", "Cliente", "Barbero", "Estado", "Pago", "Acciones")
    lines = [
        (
            str(row.id),
            row.when,
            row.service,
            row.client,
            row.barber,
            row.status_label,
            row.payment_label + (" *" if row.payment_editable else ""),
            ", ".join(action.label for action in row.actions) or "-",
        )
        for row in rows
    ]
    widths = [max(len(h), *(len(line[i]) for line in lines)) for i, h in enumerate(headers)]
    out = ["  ".join(h.ljust(w) for h, w in zip(headers, widths))]
    out.append("  ".join("-" * w for w in widths))
    out.extend("  ".join(cell.ljust(w) for cell, w in zip(line, widths)) for line in lines)
    return "\n".join(out)


def render_cards(rows: list[AppointmentRow]) -> str:
    if not rows:
        return "No hay citas registradas"
    blocks = []
    for row in rows:
        block = [
            f"Cita #{row.id} · {row.status_label}",
            f"  {row.when}",
            f"  Servicio: {row.service}" + (f" ({row.price}, {row.duration})" if row.price else ""),
            f"  Cliente: {row.client}",
            f"  Barbero: {row.barber}",
            f"  Pago: {row.payment_label}",
        ]
        if row.notes:
            block.append(f"  Notas: {row.notes}")
        if row.actions:
            block.append("  Acciones: " + ", ".join(action.label for action in row.actions))
        blocks.append("\n".join(block))
    return "\n\n".join(blocks)


# ────────────────────────────────────────────────────────────────
# Calendar
# ────────────────────────────────────────────────────────────────

def group_by_date(appointments: Iterable[Appointment]) -> dict[date, list[Appointment]]:
    grouped: dict[date, list[Appointment]] = defaultdict(list)
    for appointment in appointments:
        grouped[appointment.appointment_date].append(appointment)
    for day_appointments in grouped.values():
        day_appointments.sort(key=lambda a: (a.appointment_time, a.id))
    return dict(grouped)


class AppointmentCalendar:
    """Month, week (Sunday to Saturday) and day views with navigation."""

    VIEWS = ("month", "week", "day")

    def __init__(self, appointments: Iterable[Appointment], current: Optional[date] = None, view: str = "month"):
        if view not in self.VIEWS:
            raise ValueError(f"Unknown calendar view: {view}")
        self.by_date = group_by_date(appointments)
        self.current = current or date.today()
        self.view = view

    def appointments_on(self, day: date) -> list[Appointment]:
        return self.by_date.get(day, [])

    def visible_days(self) -> list[date]:
        if self.view == "day":
            return [self.current]
        if self.view == "week":
            # date.weekday(): Monday=0 ... Sunday=6
            start = self.current - timedelta(days=(self.current.weekday() + 1) % 7)
            return [start + timedelta(days=offset) for offset in range(7)]
        days_in_month = calendar.monthrange(self.current.year, self.current.month)[1]
        return [self.current.replace(day=day) for day in range(1, days_in_month + 1)]

    def title(self) -> str:
        if self.view == "month":
            return f"{MONTH_NAMES[self.current.month - 1]} {self.current.year}"
        if self.view == "week":
            days = self.visible_days()
            return f"{format_date(days[0])} - {format_date(days[-1])}"
        return format_long_date(self.current)

    def navigate(self, direction: int) -> date:
        """Move one month, week or day forward (+1) or backward (-1)."""
        step = 1 if direction >= 0 else -1
        if self.view == "day":
            self.current += timedelta(days=step)
        elif self.view == "week":
            self.current += timedelta(days=7 * step)
        else:
            month_index = self.current.year * 12 + self.current.month - 1 + step
            year, month = divmod(month_index, 12)
            last_day = calendar.monthrange(year, month + 1)[1]
            self.current = date(year, month + 1, min(self.current.day, last_day))
        return self.current

    def render(self) -> str:
        lines = [self.title().capitalize()]
        for day in self.visible_days():
            day_appointments = self.appointments_on(day)
            if self.view == "month" and not day_appointments:
                continue
            lines.append(f"{format_long_date(day)}:")
            if not day_appointments:
                lines.append("  (sin citas)")
            for appointment in day_appointments:
                lines.append(
                    f"  {appointment.appointment_time}  {_service_name(appointment)}"
                    f"  · {_person_name(appointment, 'client')}"
                    f" con {_person_name(appointment, 'barber')}"
                    f"  [{appointment.status.label}]"
                )
        if len(lines) == 1:
            lines.append("No hay citas en este periodo")
        return "\n".join(lines)


# ────────────────────────────────────────────────────────────────
# Dashboard summary
# ────────────────────────────────────────────────────────────────

@dataclass
class DashboardSummary:
    total: int
    by_status: dict[AppointmentStatus, int]
    by_payment_status: dict[PaymentStatus, int]
    today: list[Appointment]


def summarize(appointments: Iterable[Appointment], today: Optional[date] = None) -> DashboardSummary:
    appointments = list(appointments)
    today = today or date.today()
    status_counts = Counter(a.status for a in appointments)
    payment_counts = Counter(a.payment_status for a in appointments)
    return DashboardSummary(
        total=len(appointments),
        by_status={status: status_counts.get(status, 0) for status in AppointmentStatus},
        by_payment_status={status: payment_counts.get(status, 0) for status in PaymentStatus},
        today=sorted(
            (a for a in appointments if a.appointment_date == today),
            key=lambda a: (a.appointment_time, a.id),
        ),
    )


def render_summary(summary: DashboardSummary) -> str:
    lines = [f"Total de citas: {summary.total}"]
    lines.append(
        "Estados: " + ", ".join(f"{s.label} {n}" for s, n in summary.by_status.items())
    )
    lines.append(
        "Pagos: " + ", ".join(f"{s.label} {n}" for s, n in summary.by_payment_status.items())
    )
    lines.append(f"Citas de hoy: {len(summary.today)}")
    for appointment in summary.today:
        lines.append(
            f"  {appointment.appointment_time}  {_service_name(appointment)}"
            f"  · {_person_name(appointment, 'client')}  [{appointment.status.label}]"
        )
    return "\n".join(lines)


# ────────────────────────────────────────────────────────────────
# Collection and actions
# ────────────────────────────────────────────────────────────────

class AppointmentCollection:
    """The page-owned list of appointments. Only reload() changes it."""

    def __init__(self, appointments: AppointmentsClient, enrichment: EnrichmentService, notifier: Notifier):
        self.client = appointments
        self.enrichment = enrichment
        self.notifier = notifier
        self.items: list[Appointment] = []
        self.loading = False
        self.error: Optional[str] = None

    def find(self, appointment_id: int) -> Optional[Appointment]:
        return next((a for a in self.items if a.id == appointment_id), None)

    async def reload(self) -> list[Appointment]:
        self.loading = True
        self.error = None
        try:
            raw = await self.client.list_all()
            self.items = await self.enrichment.enrich(raw)
        except (ApiError, PreconditionError) as e:
            message = e.message
            if isinstance(e, ApiError) and e.is_unauthorized:
                message = "Sesión expirada. Por favor, inicia sesión nuevamente."
            logger.error(f"Loading appointments failed: {e.message}")
            self.error = message
            self.notifier.error(message)
        finally:
            self.loading = False
        return self.items


Reload = Callable[[], Awaitable[object]]


class AppointmentActions:
    """
    Row actions. Each one is checked against the action matrix, confirmed
    interactively, sent once, and followed by a full reload on success.
    """

    def __init__(
        self,
        appointments: AppointmentsClient,
        identity: Optional[Identity],
        notifier: Notifier,
        confirmer: Confirmer,
        on_refresh: Reload,
    ):
        self.client = appointments
        self.identity = identity
        self.notifier = notifier
        self.confirmer = confirmer
        self.on_refresh = on_refresh
        self.in_progress: dict[int, str] = {}

    async def _perform(
        self,
        appointment: Appointment,
        action: AppointmentAction,
        title: str,
        text: str,
        send: Callable[[], Awaitable[object]],
        success_message: str,
        failure_message: str,
    ) -> bool:
        try:
            ensure_action_allowed(action, appointment, self.identity)
        except PreconditionError as e:
            self.notifier.error(e.message)
            return False

        if not await self.confirmer.confirm(title, text):
            return False

        self.in_progress[appointment.id] = action.value
        try:
            await send()
        except (ApiError, PreconditionError) as e:
            logger.warning(f"{action.value} on appointment {appointment.id} failed: {e.message}")
            self.notifier.error(e.message or failure_message)
            return False
        finally:
            self.in_progress.pop(appointment.id, None)

        self.notifier.success(success_message)
        await self.on_refresh()
        return True

    async def cancel(self, appointment: Appointment) -> bool:
        return await self._perform(
            appointment,
            AppointmentAction.CANCEL,
            "¿Cancelar cita?",
            f"¿Estás seguro de que deseas cancelar tu cita del {format_date_time(appointment)}?",
            lambda: self.client.cancel(appointment.id),
            "Cita cancelada correctamente",
            "Error al cancelar la cita",
        )

    async def complete(self, appointment: Appointment) -> bool:
        return await self._perform(
            appointment,
            AppointmentAction.COMPLETE,
            "Completar cita",
            f"¿Estás seguro de que deseas marcar como completada la cita del {format_date_time(appointment)}?",
            lambda: self.client.complete(appointment.id),
            "Cita completada correctamente",
            "Error al completar la cita",
        )

    async def change_payment_status(self, appointment: Appointment, payment_status: PaymentStatus) -> bool:
        payment_status = PaymentStatus(payment_status)
        return await self._perform(
            appointment,
            AppointmentAction.CHANGE_PAYMENT,
            "Actualizar pago",
            f"¿Cambiar el estado de pago a {payment_status.label}?",
            lambda: self.client.update_payment_status(appointment.id, payment_status),
            "Estado de pago actualizado",
            "Error al actualizar el estado de pago",
        )

    async def confirm_edit(self, appointment: Appointment) -> bool:
        """Gate for opening the edit form; the form itself sends the update."""
        try:
            ensure_action_allowed(AppointmentAction.EDIT, appointment, self.identity)
        except PreconditionError as e:
            self.notifier.error(e.message)
            return False
        return await self.confirmer.confirm(
            "Editar cita", f"¿Guardar cambios en la cita del {format_date_time(appointment)}?"
        )
