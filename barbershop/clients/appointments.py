"""
Appointments resource.

The booking UI and the backend disagree on field names and date formats:

    UI (AppointmentDraft)           wire
    ---------------------           ----
    haircut_id                      hairCutId
    appointment_date + _time        startTime  "YYYY-MM-DDTHH:MM:00" (local, no zone)
    availability date "YYYY-MM-DD"  date       "YYYY/MM/DD"

Every write translates UI -> wire and every read translates wire -> UI.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone, timedelta
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import Field, ValidationError, field_validator

from ..core.errors import ApiError, ErrorCodes, PreconditionError
from ..core.http import ApiClient
from ..models import ApiModel, Appointment, PaymentStatus, PersonRef, ServiceRef
from .users import require_positive_id

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100

UNEXPECTED_RESPONSE_MESSAGE = "Respuesta inesperada del servidor"

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SLASH_DATE_PATTERN = re.compile(r"^\d{4}/\d{2}/\d{2}$")
TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")
TIMESTAMP_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2})(?::(\d{2})(?:[.,]\d+)?)?"
    r"(Z|[+-]\d{2}:?\d{2})?$"
)


# ────────────────────────────────────────────────────────────────
# Date / time translation
# ────────────────────────────────────────────────────────────────

DateLike = Union[date, str]


def is_calendar_date(value: Any) -> bool:
    """True for a real date written strictly as YYYY-MM-DD."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_form_date(value: DateLike) -> date:
    """Parse the form's YYYY-MM-DD date, or raise PreconditionError."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not is_calendar_date(value):
        raise PreconditionError("Fecha inválida", code=ErrorCodes.INVALID_DATE)
    return date.fromisoformat(value)


def normalize_time(value: str) -> str:
    """Return ``value`` as HH:MM, accepting H:MM, HH:MM and HH:MM:SS."""
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise PreconditionError("Hora inválida", code=ErrorCodes.INVALID_INPUT)
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise PreconditionError("Hora inválida", code=ErrorCodes.INVALID_INPUT)
    return f"{hour:02d}:{minute:02d}"


def combine_start_time(appointment_date: DateLike, appointment_time: str) -> str:
    """
    Combine split date and time into the wire ``startTime``.

    >>> combine_start_time("2025-03-07", "14:30")
    '2025-03-07T14:30:00'
    """
    day = parse_form_date(appointment_date)
    hhmm = normalize_time(appointment_time)
    return f"{day.isoformat()}T{hhmm}:00"


def to_local(moment: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Shop-local wall time for ``moment``.

    Naive timestamps are already local. Aware ones are converted to the shop
    timezone, or to the system timezone when none is configured.
    """
    if moment.tzinfo is None:
        return moment
    if tz_name:
        return moment.astimezone(ZoneInfo(tz_name))
    return moment.astimezone()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; fractional seconds are dropped."""
    match = TIMESTAMP_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Not an ISO-8601 timestamp: {value!r}")
    year, month, day, hour, minute = (int(match.group(i)) for i in range(1, 6))
    second = int(match.group(6) or 0)
    zone = match.group(7)
    tzinfo = None
    if zone == "Z":
        tzinfo = timezone.utc
    elif zone:
        sign = -1 if zone[0] == "-" else 1
        digits = zone[1:].replace(":", "")
        offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
        tzinfo = timezone(sign * offset)
    return datetime(year, month, day, hour, minute, second, tzinfo=tzinfo)


def split_start_time(value: str, tz_name: Optional[str] = None) -> tuple[date, str]:
    """Split a wire ``startTime`` into a local date and an HH:MM time."""
    local = to_local(parse_timestamp(value), tz_name)
    return local.date(), f"{local.hour:02d}:{local.minute:02d}"


def to_availability_date(value: Union[date, datetime, str]) -> str:
    """
    Rewrite a date into the availability endpoint's YYYY/MM/DD form.

    Raises PreconditionError for unparseable dates and for years outside
    [2000, 2100].
    """
    if isinstance(value, datetime):
        day = value.date()
    elif isinstance(value, date):
        day = value
    elif isinstance(value, str):
        text = value.strip()
        if DATE_PATTERN.match(text) or SLASH_DATE_PATTERN.match(text):
            year = int(text[:4])
            if year < MIN_YEAR or year > MAX_YEAR:
                raise PreconditionError(
                    f"Año inválido: {year}. Debe estar entre {MIN_YEAR} y {MAX_YEAR}",
                    code=ErrorCodes.INVALID_DATE,
                )
            try:
                day = date(year, int(text[5:7]), int(text[8:10]))
            except ValueError:
                raise PreconditionError(
                    f"Formato de fecha inválido: {value}", code=ErrorCodes.INVALID_DATE
                )
        else:
            try:
                day = parse_timestamp(text).date()
            except ValueError:
                raise PreconditionError(
                    f"Formato de fecha inválido: {value}. Se espera YYYY/MM/DD",
                    code=ErrorCodes.INVALID_DATE,
                )
    else:
        raise PreconditionError(f"Formato de fecha inválido: {value!r}", code=ErrorCodes.INVALID_DATE)

    if day.year < MIN_YEAR or day.year > MAX_YEAR:
        raise PreconditionError(
            f"Año inválido: {day.year}. Debe estar entre {MIN_YEAR} y {MAX_YEAR}",
            code=ErrorCodes.INVALID_DATE,
        )
    return day.strftime("%Y/%m/%d")


# ────────────────────────────────────────────────────────────────
# Request / response shapes
# ────────────────────────────────────────────────────────────────

@dataclass
class AppointmentDraft:
    """The booking form's fields, in the UI's shape."""
    barber_id: Optional[int] = None
    haircut_id: Optional[int] = None
    appointment_date: Optional[str] = None  # YYYY-MM-DD
    appointment_time: Optional[str] = None  # HH:MM
    notes: Optional[str] = None


class AvailabilityResponse(ApiModel):
    """Raw availability answer; items are normalized by the negotiator."""
    date: Optional[str] = None
    available_times: list[Any] = Field(default_factory=list)

    @field_validator("available_times", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> list[Any]:
        return value if isinstance(value, list) else []


def build_create_payload(draft: AppointmentDraft, client_id: int) -> dict[str, Any]:
    if not draft.appointment_date or not draft.appointment_time:
        raise PreconditionError("Fecha y hora inválidas", code=ErrorCodes.INVALID_DATE)
    payload: dict[str, Any] = {
        "clientId": require_positive_id(client_id, "clientId"),
        "barberId": require_positive_id(draft.barber_id, "barberId"),
        "hairCutId": require_positive_id(draft.haircut_id, "haircutId"),
        "startTime": combine_start_time(draft.appointment_date, draft.appointment_time),
    }
    if draft.notes and draft.notes.strip():
        payload["notes"] = draft.notes.strip()
    return payload


def build_update_payload(draft: AppointmentDraft) -> dict[str, Any]:
    """Partial update body; ``startTime`` only when both date and time are set."""
    payload: dict[str, Any] = {}
    if draft.barber_id is not None:
        payload["barberId"] = require_positive_id(draft.barber_id, "barberId")
    if draft.haircut_id is not None:
        payload["hairCutId"] = require_positive_id(draft.haircut_id, "haircutId")
    if draft.appointment_date and draft.appointment_time:
        payload["startTime"] = combine_start_time(draft.appointment_date, draft.appointment_time)
    if draft.notes and draft.notes.strip():
        payload["notes"] = draft.notes.strip()
    return payload


def _nested_id(raw: dict, *keys: str) -> Optional[int]:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, dict):
            value = value.get("id")
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                continue
    return None


def _partial(raw: dict, key: str) -> Optional[dict]:
    value = raw.get(key)
    if isinstance(value, dict) and value.get("id") is not None:
        return value
    return None


def parse_appointment(raw: dict, tz_name: Optional[str] = None) -> Appointment:
    """Translate one wire appointment into the UI's shape."""
    data = dict(raw)
    data["clientId"] = _nested_id(raw, "clientId", "client")
    data["barberId"] = _nested_id(raw, "barberId", "barber")
    data["haircutId"] = _nested_id(raw, "haircutId", "hairCutId", "haircut", "hairCut")

    if raw.get("appointmentDate") and raw.get("appointmentTime"):
        data["appointmentDate"] = str(raw["appointmentDate"]).split("T")[0]
        data["appointmentTime"] = normalize_time(str(raw["appointmentTime"]))
    elif raw.get("startTime"):
        appointment_date, appointment_time = split_start_time(raw["startTime"], tz_name)
        data["appointmentDate"] = appointment_date
        data["appointmentTime"] = appointment_time

    client = _partial(raw, "client")
    barber = _partial(raw, "barber")
    haircut = _partial(raw, "haircut") or _partial(raw, "hairCut")
    data["client"] = PersonRef.model_validate(client) if client else None
    data["barber"] = PersonRef.model_validate(barber) if barber else None
    data["haircut"] = ServiceRef.model_validate(haircut) if haircut else None
    data.pop("hairCut", None)

    return Appointment.model_validate(data)


# ────────────────────────────────────────────────────────────────
# Client
# ────────────────────────────────────────────────────────────────

class AppointmentsClient:
    def __init__(self, api: ApiClient):
        self.api = api

    @property
    def _tz(self) -> Optional[str]:
        return self.api.settings.shop_timezone

    def _parse(self, data: Any) -> Appointment:
        try:
            return parse_appointment(data, self._tz)
        except (ValidationError, ValueError, TypeError, PreconditionError) as e:
            logger.warning(f"Unexpected appointment payload: {e}")
            raise ApiError(UNEXPECTED_RESPONSE_MESSAGE, payload=data)

    def _parse_optional(self, data: Any) -> Optional[Appointment]:
        if isinstance(data, dict) and data.get("id") is not None:
            return self._parse(data)
        return None

    async def list_all(self) -> list[Appointment]:
        """GET /appointments/all. The backend filters by the caller's role."""
        data = await self.api.request(
            "GET", "/appointments/all", auth=True, fallback_message="Error al cargar las citas"
        )
        appointments = []
        for item in data or []:
            try:
                appointments.append(self._parse(item))
            except ApiError:
                # Malformed rows are skipped.
                continue
        return appointments

    async def get(self, appointment_id: int) -> Appointment:
        appointment_id = require_positive_id(appointment_id, "appointmentId")
        data = await self.api.request(
            "GET",
            f"/appointments/{appointment_id}",
            auth=True,
            fallback_message="Error al obtener la cita",
        )
        return self._parse(data)

    async def create(self, draft: AppointmentDraft, client_id: int) -> Optional[Appointment]:
        payload = build_create_payload(draft, client_id)
        data = await self.api.request(
            "POST",
            "/appointments",
            auth=True,
            json=payload,
            fallback_message="Error al crear la cita",
        )
        logger.info(
            f"Created appointment for client {payload['clientId']} "
            f"with barber {payload['barberId']} at {payload['startTime']}"
        )
        return self._parse_optional(data)

    async def update(self, appointment_id: int, draft: AppointmentDraft) -> Optional[Appointment]:
        appointment_id = require_positive_id(appointment_id, "appointmentId")
        payload = build_update_payload(draft)
        data = await self.api.request(
            "PUT",
            f"/appointments/{appointment_id}",
            auth=True,
            json=payload,
            fallback_message="Error al actualizar la cita",
        )
        logger.info(f"Updated appointment {appointment_id}: {sorted(payload)}")
        return self._parse_optional(data)

    async def cancel(self, appointment_id: int) -> None:
        appointment_id = require_positive_id(appointment_id, "appointmentId")
        await self.api.request(
            "DELETE",
            f"/appointments/{appointment_id}",
            auth=True,
            fallback_message="Error al cancelar la cita",
        )
        logger.info(f"Canceled appointment {appointment_id}")

    async def complete(self, appointment_id: int) -> Optional[Appointment]:
        appointment_id = require_positive_id(appointment_id, "appointmentId")
        data = await self.api.request(
            "PUT",
            f"/appointments/{appointment_id}/complete",
            auth=True,
            fallback_message="Error al completar la cita",
        )
        logger.info(f"Completed appointment {appointment_id}")
        return self._parse_optional(data)

    async def update_payment_status(
        self, appointment_id: int, payment_status: PaymentStatus
    ) -> Optional[Appointment]:
        appointment_id = require_positive_id(appointment_id, "appointmentId")
        payment_status = PaymentStatus(payment_status)
        data = await self.api.request(
            "PUT",
            f"/appointments/{appointment_id}/payment-status",
            auth=True,
            json={"paymentStatus": int(payment_status)},
            fallback_message="Error al actualizar el estado de pago",
        )
        logger.info(f"Payment status of appointment {appointment_id} set to {payment_status.name}")
        return self._parse_optional(data)

    async def get_availability(
        self,
        barber_id: int,
        appointment_date: Union[date, str],
        haircut_id: Optional[int] = None,
    ) -> AvailabilityResponse:
        """
        GET /appointments/availability (public).

        The date is validated and rewritten to YYYY/MM/DD before anything is
        sent.
        """
        barber_id = require_positive_id(barber_id, "barberId")
        params: dict[str, Any] = {
            "barberId": barber_id,
            "date": to_availability_date(appointment_date),
        }
        if haircut_id and haircut_id > 0:
            params["haircutId"] = haircut_id

        data = await self.api.request(
            "GET",
            "/appointments/availability",
            params=params,
            fallback_message="No se pudo cargar la disponibilidad",
        )
        if isinstance(data, list):
            return AvailabilityResponse(date=params["date"], available_times=data)
        if isinstance(data, dict):
            try:
                return AvailabilityResponse.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Unexpected availability payload: {e}")
                raise ApiError(UNEXPECTED_RESPONSE_MESSAGE, payload=data)
        return AvailabilityResponse(date=params["date"])
