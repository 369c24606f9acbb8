"""
Tests for the appointments client and the UI <-> wire translation.

Run with: pytest tests/test_appointments_client.py -v
"""

from datetime import date, datetime

import pytest

from barbershop.clients.appointments import (
    AppointmentDraft,
    build_create_payload,
    build_update_payload,
    combine_start_time,
    normalize_time,
    parse_appointment,
    split_start_time,
    to_availability_date,
)
from barbershop.core.errors import ApiError, ErrorCodes, PreconditionError
from barbershop.models import AppointmentStatus, PaymentStatus

from conftest import FakeBackend


# ============================================================================
# TRANSLATION
# ============================================================================

class TestDateTimeTranslation:
    def test_combine_start_time_has_no_zone(self):
        assert combine_start_time("2025-06-10", "10:00") == "2025-06-10T10:00:00"
        assert combine_start_time(date(2025, 3, 7), "9:05") == "2025-03-07T09:05:00"

    def test_normalize_time(self):
        assert normalize_time("9:30") == "09:30"
        assert normalize_time("14:30:00") == "14:30"
        with pytest.raises(PreconditionError):
            normalize_time("25:00")

    def test_split_naive_start_time_is_verbatim(self):
        assert split_start_time("2025-06-10T10:00:00") == (date(2025, 6, 10), "10:00")

    def test_split_zoned_start_time_uses_shop_timezone(self):
        # 15:30 UTC is 10:30 in Bogotá (UTC-5, no DST)
        assert split_start_time("2025-06-10T15:30:00Z", "America/Bogota") == (date(2025, 6, 10), "10:30")

    def test_split_drops_fractional_seconds(self):
        assert split_start_time("2025-06-10T10:00:00.1234567") == (date(2025, 6, 10), "10:00")


class TestAvailabilityDate:
    @pytest.mark.parametrize(
        "value",
        ["2025-06-10", "2025/06/10", date(2025, 6, 10), datetime(2025, 6, 10, 8, 0), "2025-06-10T08:00:00"],
    )
    def test_accepted_forms(self, value):
        assert to_availability_date(value) == "2025/06/10"

    @pytest.mark.parametrize("value", ["1999-12-31", "2101-01-01", "10/06/2025", "2025-02-30", ""])
    def test_rejected(self, value):
        with pytest.raises(PreconditionError) as exc_info:
            to_availability_date(value)
        assert exc_info.value.code == ErrorCodes.INVALID_DATE


class TestPayloads:
    def test_create_payload(self):
        draft = AppointmentDraft(barber_id=5, haircut_id=2, appointment_date="2025-06-10", appointment_time="10:00")

        assert build_create_payload(draft, client_id=7) == {
            "clientId": 7,
            "barberId": 5,
            "hairCutId": 2,
            "startTime": "2025-06-10T10:00:00",
        }

    def test_notes_only_when_not_blank(self):
        draft = AppointmentDraft(5, 2, "2025-06-10", "10:00", notes="  barba también ")
        assert build_create_payload(draft, 7)["notes"] == "barba también"

        draft.notes = "   "
        assert "notes" not in build_create_payload(draft, 7)

    def test_update_payload_is_partial(self):
        assert build_update_payload(AppointmentDraft(haircut_id=3)) == {"hairCutId": 3}
        assert build_update_payload(AppointmentDraft(appointment_date="2025-06-10")) == {}

    def test_missing_client_id(self):
        draft = AppointmentDraft(5, 2, "2025-06-10", "10:00")
        with pytest.raises(PreconditionError) as exc_info:
            build_create_payload(draft, client_id=0)
        assert exc_info.value.code == ErrorCodes.INVALID_ID


class TestParseAppointment:
    def test_start_time_is_split(self):
        appointment = parse_appointment(
            {
                "id": 42,
                "clientId": 7,
                "barberId": 5,
                "hairCutId": 2,
                "startTime": "2025-06-10T10:00:00",
                "status": 2,
                "paymentStatus": "Paid",
            }
        )

        assert appointment.haircut_id == 2
        assert appointment.appointment_date == date(2025, 6, 10)
        assert appointment.appointment_time == "10:00"
        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.payment_status == PaymentStatus.PAID
        assert appointment.client is None

    def test_split_fields_used_as_is(self):
        appointment = parse_appointment(
            {
                "id": 1,
                "clientId": 7,
                "barberId": 5,
                "haircutId": 2,
                "appointmentDate": "2025-06-10T00:00:00",
                "appointmentTime": "09:30:00",
                "startTime": "2030-01-01T00:00:00",
            }
        )

        assert appointment.appointment_date == date(2025, 6, 10)
        assert appointment.appointment_time == "09:30"

    def test_partial_nested_objects_are_kept(self):
        appointment = parse_appointment(
            {
                "id": 1,
                "client": {"id": 7, "fullName": "Ana Pérez"},
                "barber": {"id": 5},
                "hairCut": {"id": 2, "name": "Degradado"},
                "startTime": "2025-06-10T10:00:00",
            }
        )

        assert (appointment.client_id, appointment.barber_id, appointment.haircut_id) == (7, 5, 2)
        assert appointment.client.full_name == "Ana Pérez"
        assert appointment.barber.full_name is None
        assert appointment.haircut.name == "Degradado"


# ============================================================================
# CLIENT
# ============================================================================

RAW = {
    "id": 42,
    "clientId": 7,
    "barberId": 5,
    "hairCutId": 2,
    "startTime": "2025-06-10T10:00:00",
    "status": 1,
    "paymentStatus": 1,
}


class TestAppointmentsClient:
    @pytest.mark.asyncio
    async def test_create_sends_wire_body_with_bearer(self, appointments, backend, storage):
        storage.write("a.b.c")
        backend.add("POST", "/appointments", RAW)
        draft = AppointmentDraft(barber_id=5, haircut_id=2, appointment_date="2025-06-10", appointment_time="10:00")

        created = await appointments.create(draft, client_id=7)

        request = backend.calls("POST", "/appointments")[0]
        assert FakeBackend.body(request) == {
            "clientId": 7,
            "barberId": 5,
            "hairCutId": 2,
            "startTime": "2025-06-10T10:00:00",
        }
        assert request.headers["Authorization"] == "Bearer a.b.c"
        assert created.id == 42

    @pytest.mark.asyncio
    async def test_create_with_empty_response(self, appointments, backend):
        backend.add("POST", "/appointments", None, status=201)
        draft = AppointmentDraft(5, 2, "2025-06-10", "10:00")

        assert await appointments.create(draft, client_id=7) is None

    @pytest.mark.asyncio
    async def test_list_all(self, appointments, backend):
        backend.add("GET", "/appointments/all", [RAW, {**RAW, "id": 43, "status": 3}])

        items = await appointments.list_all()

        assert [a.id for a in items] == [42, 43]
        assert items[1].is_terminal

    @pytest.mark.asyncio
    async def test_list_all_tolerates_odd_rows(self, appointments, backend):
        without_service = {k: v for k, v in RAW.items() if k != "hairCutId"}
        backend.add(
            "GET",
            "/appointments/all",
            [{**RAW, "status": None, "paymentStatus": None}, {**without_service, "id": 43}],
        )

        items = await appointments.list_all()

        assert [a.id for a in items] == [42]
        assert items[0].status == AppointmentStatus.PENDING
        assert items[0].payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_get_malformed_appointment(self, appointments, backend):
        backend.add("GET", "/appointments/42", {**RAW, "startTime": "mañana"})

        with pytest.raises(ApiError) as exc:
            await appointments.get(42)

        assert exc.value.message == "Respuesta inesperada del servidor"
        assert exc.value.payload["startTime"] == "mañana"

    @pytest.mark.asyncio
    async def test_cancel_complete_and_payment(self, appointments, backend):
        backend.add("DELETE", "/appointments/42", None, status=204)
        backend.add("PUT", "/appointments/42/complete", {**RAW, "status": 3})
        backend.add("PUT", "/appointments/42/payment-status", {**RAW, "paymentStatus": 2})

        await appointments.cancel(42)
        completed = await appointments.complete(42)
        paid = await appointments.update_payment_status(42, PaymentStatus.PAID)

        assert completed.status == AppointmentStatus.COMPLETED
        assert paid.payment_status == PaymentStatus.PAID
        body = FakeBackend.body(backend.calls("PUT", "/appointments/42/payment-status")[0])
        assert body == {"paymentStatus": 2}

    @pytest.mark.asyncio
    async def test_update_is_partial(self, appointments, backend):
        backend.add("PUT", "/appointments/42", None, status=204)

        await appointments.update(42, AppointmentDraft(appointment_date="2025-06-11", appointment_time="11:00"))

        body = FakeBackend.body(backend.calls("PUT", "/appointments/42")[0])
        assert body == {"startTime": "2025-06-11T11:00:00"}

    @pytest.mark.asyncio
    async def test_availability_params(self, appointments, backend):
        backend.add("GET", "/appointments/availability", {"date": "2025/06/10", "availableTimes": ["09:00"]})

        response = await appointments.get_availability(5, "2025-06-10", haircut_id=2)

        request = backend.requests[0]
        assert request.url.params["barberId"] == "5"
        assert request.url.params["date"] == "2025/06/10"
        assert request.url.params["haircutId"] == "2"
        assert "Authorization" not in request.headers
        assert response.available_times == ["09:00"]

    @pytest.mark.asyncio
    async def test_availability_without_service_omits_param(self, appointments, backend):
        backend.add("GET", "/appointments/availability", ["09:00", "09:30"])

        response = await appointments.get_availability(5, date(2025, 6, 10))

        assert "haircutId" not in backend.requests[0].url.params
        assert response.available_times == ["09:00", "09:30"]

    @pytest.mark.asyncio
    async def test_availability_bad_year_sends_nothing(self, appointments, backend):
        with pytest.raises(PreconditionError):
            await appointments.get_availability(5, "1990-01-01", haircut_id=2)
        assert backend.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("times", [None, "09:00", {"start": "09:00"}])
    async def test_availability_non_list_times_are_empty(self, appointments, backend, times):
        backend.add("GET", "/appointments/availability", {"date": "2025/06/10", "availableTimes": times})

        response = await appointments.get_availability(5, "2025-06-10", haircut_id=2)

        assert response.available_times == []

    @pytest.mark.asyncio
    async def test_availability_malformed_body(self, appointments, backend):
        backend.add("GET", "/appointments/availability", {"date": 20250610, "availableTimes": []})

        with pytest.raises(ApiError) as exc:
            await appointments.get_availability(5, "2025-06-10", haircut_id=2)

        assert exc.value.status_code is None
        assert exc.value.message == "Respuesta inesperada del servidor"
