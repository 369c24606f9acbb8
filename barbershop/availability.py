"""
Availability Negotiator - the bookable times for one (barber, service, date).

Every change of barber, service or date schedules a debounced query. Only
the newest query may update the candidate set: each query carries a
generation number and results for an older generation are dropped.

Usage:
    negotiator = AvailabilityNegotiator(appointments_client, notifier)
    negotiator.update(barber_id=5, haircut_id=2, appointment_date="2025-06-10")
    await negotiator.settle()
    negotiator.candidates  # ["09:00", "09:30", ...]
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Optional

from .clients.appointments import (
    AppointmentsClient,
    is_calendar_date,
    normalize_time,
    parse_timestamp,
    to_local,
)
from .core.errors import ApiError, PreconditionError
from .notifications import Notifier

logger = logging.getLogger(__name__)

SERVICE_REQUIRED_HINT = "Selecciona un servicio para ver los horarios disponibles"
LOAD_ERROR_MESSAGE = "No se pudo cargar la disponibilidad"
INVALID_SERVICE_MESSAGE = "El servicio seleccionado no es válido"

_UNSET: Any = object()


def _time_of_day(value: Any, tz_name: Optional[str]) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return normalize_time(value)
    except PreconditionError:
        pass
    try:
        local = to_local(parse_timestamp(value), tz_name)
    except ValueError:
        return None
    return f"{local.hour:02d}:{local.minute:02d}"


def normalize_available_times(items: Iterable[Any], tz_name: Optional[str] = None) -> list[str]:
    """
    Reduce either response shape to ordered, distinct HH:MM strings.

    Items are plain time strings, or interval objects whose start instant is
    read in shop-local time (never converted to UTC).
    """
    times: list[str] = []
    for item in items or []:
        if isinstance(item, dict):
            start = item.get("start") or item.get("startTime") or item.get("time")
        else:
            start = item
        value = _time_of_day(start, tz_name)
        if value is None:
            logger.debug(f"Ignoring unrecognized availability item: {item!r}")
            continue
        if value not in times:
            times.append(value)
    return times


@dataclass(frozen=True)
class AvailabilityQuery:
    barber_id: Optional[int] = None
    haircut_id: Optional[int] = None
    appointment_date: Optional[str] = None


Listener = Callable[["AvailabilityNegotiator"], None]


class AvailabilityNegotiator:
    def __init__(
        self,
        appointments: AppointmentsClient,
        notifier: Optional[Notifier] = None,
        debounce_seconds: float = 0.3,
        tz_name: Optional[str] = None,
    ):
        self.appointments = appointments
        self.notifier = notifier
        self.debounce_seconds = debounce_seconds
        self.tz_name = tz_name

        self.query = AvailabilityQuery()
        self.candidates: list[str] = []
        self.selected_time: Optional[str] = None
        self.hint: Optional[str] = None
        self.warning: Optional[str] = None
        self.loading = False

        self._generation = 0
        self._pending: Optional[asyncio.Task] = None
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def select_time(self, value: Optional[str]) -> None:
        self.selected_time = normalize_time(value) if value else None

    def update(
        self,
        *,
        barber_id: Optional[int] = _UNSET,
        haircut_id: Optional[int] = _UNSET,
        appointment_date: Optional[str] = _UNSET,
    ) -> None:
        """Change one or more inputs; re-runs the negotiation when any changed."""
        changes = {}
        if barber_id is not _UNSET:
            changes["barber_id"] = barber_id or None
        if haircut_id is not _UNSET:
            changes["haircut_id"] = haircut_id or None
        if appointment_date is not _UNSET:
            changes["appointment_date"] = appointment_date or None
        query = replace(self.query, **changes)
        if query == self.query:
            return
        self.query = query
        self._schedule()

    def _schedule(self) -> None:
        self._generation += 1
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

        query = self.query
        self.warning = None
        self.hint = None

        if not query.barber_id or not query.appointment_date:
            self._clear(clear_selection=True)
            return
        if not is_calendar_date(query.appointment_date):
            self._clear(clear_selection=True)
            return
        if not query.haircut_id:
            # The endpoint needs a service to give a meaningful answer.
            self.hint = SERVICE_REQUIRED_HINT
            self._clear(clear_selection=True)
            return

        self.loading = True
        self._pending = asyncio.create_task(self._debounced(self._generation, query))

    def _clear(self, clear_selection: bool) -> None:
        self.loading = False
        self.candidates = []
        if clear_selection:
            self.selected_time = None
        self._emit()

    async def _debounced(self, generation: int, query: AvailabilityQuery) -> None:
        await asyncio.sleep(self.debounce_seconds)
        await self._negotiate(generation, query)

    async def _negotiate(self, generation: int, query: AvailabilityQuery) -> None:
        try:
            response = await self.appointments.get_availability(
                query.barber_id, query.appointment_date, query.haircut_id
            )
        except (ApiError, PreconditionError) as e:
            if generation != self._generation:
                return
            logger.warning(
                f"Availability failed for barber={query.barber_id} "
                f"date={query.appointment_date} haircut={query.haircut_id}: {e.message}"
            )
            self.warning = self._warning_for(e)
            if self.notifier:
                self.notifier.error(self.warning)
            self._clear(clear_selection=False)
            return

        if generation != self._generation:
            logger.debug(f"Discarding stale availability for {query}")
            return

        self.loading = False
        self.candidates = normalize_available_times(response.available_times, self.tz_name)
        if self.selected_time and self.candidates and self.selected_time not in self.candidates:
            logger.info(f"Selected time {self.selected_time} no longer available, clearing it")
            self.selected_time = None
        self._emit()

    @staticmethod
    def _warning_for(error: Exception) -> str:
        message = getattr(error, "message", "") or ""
        if isinstance(error, ApiError) and error.status_code == 500 and "servicio" in message.lower():
            return INVALID_SERVICE_MESSAGE
        return LOAD_ERROR_MESSAGE

    async def settle(self) -> list[str]:
        """Wait for the pending query, if any, and return the candidates."""
        while self._pending is not None and not self._pending.done():
            task = self._pending
            await asyncio.wait({task})
        return self.candidates

    async def refresh(self) -> list[str]:
        """Re-run the current query now, skipping the debounce."""
        self._schedule()
        if self._pending is not None:
            self._pending.cancel()
            self._pending = asyncio.create_task(self._negotiate(self._generation, self.query))
        return await self.settle()

    async def aclose(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            await asyncio.gather(self._pending, return_exceptions=True)
        self._pending = None
