"""
Tests for the users, haircuts, auth and AI resource clients.

Run with: pytest tests/test_clients.py -v
"""

from decimal import Decimal

import httpx
import pytest

from barbershop.clients import AiClient, AuthClient
from barbershop.core.errors import ApiError, ErrorCodes, PreconditionError
from barbershop.core.http import ApiClient
from barbershop.models import UserRole

from conftest import FakeBackend

USERS = [
    {"id": 1, "fullName": "Ana Pérez", "email": "ana@example.com", "role": 1},
    {"id": 5, "fullName": "Luis Gómez", "email": "luis@example.com", "role": "Barber"},
    {"id": 6, "fullName": "Marta Ruiz", "email": "marta@example.com", "role": "2"},
    {"id": 9, "fullName": "Admin", "email": "admin@example.com", "role": "Admin"},
]


class TestUsersClient:
    @pytest.mark.asyncio
    async def test_list_barbers_normalizes_roles(self, users, backend):
        backend.add("GET", "/users", USERS)

        barbers = await users.list_barbers()

        assert [b.id for b in barbers] == [5, 6]
        assert all(b.role == UserRole.BARBER for b in barbers)

    @pytest.mark.asyncio
    async def test_missing_users_endpoint_is_empty_list(self, users, backend):
        assert await users.list_users() == []

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, users, backend):
        backend.add("GET", "/users", {"message": "Error interno"}, status=500)

        with pytest.raises(ApiError):
            await users.list_users()

    @pytest.mark.asyncio
    async def test_invalid_id_never_reaches_backend(self, users, backend):
        with pytest.raises(PreconditionError) as exc_info:
            await users.get_user(0)

        assert exc_info.value.code == ErrorCodes.INVALID_ID
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_update_user_sends_name_and_phone(self, users, backend, storage):
        storage.write("a.b.c")
        backend.add(
            "PUT",
            "/users/1",
            {"id": 1, "fullName": "Ana María", "email": "ana@example.com", "phoneNumber": "600123123"},
        )

        user = await users.update_user(1, full_name=" Ana María ", phone_number="600123123")

        request = backend.calls("PUT", "/users/1")[0]
        assert FakeBackend.body(request) == {"fullName": "Ana María", "phoneNumber": "600123123"}
        assert request.headers["Authorization"] == "Bearer a.b.c"
        assert user.full_name == "Ana María"

    @pytest.mark.asyncio
    async def test_update_user_refetches_when_response_is_empty(self, users, backend):
        backend.add("PUT", "/users/1", None, status=204)
        backend.add("GET", "/users/1", {"id": 1, "fullName": "Ana María"})

        user = await users.update_user(1, full_name="Ana María")

        assert user.full_name == "Ana María"

    @pytest.mark.asyncio
    async def test_update_user_without_changes(self, users, backend):
        with pytest.raises(PreconditionError):
            await users.update_user(1)
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_upload_profile_photo_is_multipart(self, users, backend):
        backend.add("PUT", "/users/1/upload-photo", {"url": "https://cdn.test/1.jpg"})

        url = await users.upload_profile_photo(1, "me.jpg", b"\xff\xd8jpeg")

        request = backend.calls("PUT", "/users/1/upload-photo")[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="file"' in request.content
        assert url == "https://cdn.test/1.jpg"

    @pytest.mark.asyncio
    async def test_create_staff_sends_symbolic_role(self, users, backend):
        backend.add("POST", "/users/create-staff", {"id": 12})

        await users.create_staff("Luis Gómez", "luis@example.com", "secreto", "barber")

        body = FakeBackend.body(backend.calls("POST", "/users/create-staff")[0])
        assert body["role"] == "Barber"
        assert body["fullName"] == "Luis Gómez"

    @pytest.mark.asyncio
    async def test_create_staff_rejects_client_role(self, users, backend):
        with pytest.raises(PreconditionError):
            await users.create_staff("Ana", "ana@example.com", "secreto", UserRole.CLIENT)
        assert backend.requests == []


class TestHaircutsClient:
    @pytest.mark.asyncio
    async def test_active_only(self, haircuts, backend):
        backend.add(
            "GET",
            "/haircuts",
            [
                {"id": 1, "name": "Corte clásico", "price": 15, "durationMinutes": 30},
                {"id": 2, "name": "Degradado", "price": 20, "durationMinutes": 30, "isActive": True},
                {"id": 3, "name": "Navaja", "price": 25, "durationMinutes": 45, "isActive": False},
            ],
        )

        active = await haircuts.list_haircuts(active_only=True)

        assert [h.id for h in active] == [1, 2]
        assert active[1].price == Decimal("20")
        assert active[1].option_label == "Degradado - $20 (30 min)"


class TestAuthClient:
    @pytest.mark.asyncio
    async def test_login_returns_token(self, api, backend):
        backend.add("POST", "/auth/login", {"token": "x.y.z"})

        token = await AuthClient(api).login("ana@example.com", "secreto")

        assert token == "x.y.z"
        request = backend.calls("POST", "/auth/login")[0]
        assert "Authorization" not in request.headers
        assert FakeBackend.body(request) == {"email": "ana@example.com", "password": "secreto"}

    @pytest.mark.asyncio
    async def test_login_bad_credentials(self, api, backend):
        backend.add("POST", "/auth/login", None, status=401)

        with pytest.raises(ApiError) as exc_info:
            await AuthClient(api).login("ana@example.com", "mal")

        assert exc_info.value.message == "Usuario o contraseña incorrectos."

    @pytest.mark.asyncio
    async def test_login_without_token_in_response(self, api, backend):
        backend.add("POST", "/auth/login", {"ok": True})

        with pytest.raises(ApiError):
            await AuthClient(api).login("ana@example.com", "secreto")

    @pytest.mark.asyncio
    async def test_register_without_auto_login(self, api, backend):
        backend.add("POST", "/auth/register", {"id": 20})

        assert await AuthClient(api).register("Ana", "ana@example.com", "secreto") is None

    @pytest.mark.asyncio
    async def test_google_login(self, api, backend):
        backend.add("POST", "/auth/google/login", {"accessToken": "g.o.o"})

        assert await AuthClient(api).google_login("google-id-token") == "g.o.o"
        assert FakeBackend.body(backend.requests[0]) == {"idToken": "google-id-token"}


class TestAiClient:
    @pytest.fixture
    def ai(self, settings, backend):
        api = ApiClient(settings, base_url="http://ai.test/", transport=backend.transport())
        return AiClient(settings, api=api)

    @pytest.mark.asyncio
    async def test_chat(self, ai, backend):
        backend.add("POST", "/api/chat/ask", {"reply": "Te recomiendo un degradado bajo"})

        reply = await ai.chat("¿Qué corte me queda bien?", context="cara ovalada")

        request = backend.requests[0]
        assert request.url.host == "ai.test"
        assert FakeBackend.body(request) == {
            "userMessage": "¿Qué corte me queda bien?",
            "recommendationContext": "cara ovalada",
        }
        assert reply == "Te recomiendo un degradado bajo"

    @pytest.mark.asyncio
    async def test_analyze_haircut_image(self, ai, backend):
        backend.add(
            "POST",
            "/api/haircut/analyze",
            {"recommendedStyle": "Pompadour", "confidenceLevel": "alta", "analysisReport": "..."},
        )

        analysis = await ai.analyze_haircut_image("foto.png", b"png", user_id="7", content_type="image/png")

        assert analysis.recommended_style == "Pompadour"
        assert b'name="userId"' in backend.requests[0].content

    @pytest.mark.asyncio
    async def test_empty_message_is_rejected(self, ai, backend):
        with pytest.raises(PreconditionError):
            await ai.chat("   ")
        assert backend.requests == []


@pytest.mark.asyncio
async def test_unreachable_backend(settings):
    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    api = ApiClient(settings, transport=httpx.MockTransport(refuse))
    with pytest.raises(ApiError) as exc_info:
        await AuthClient(api).login("ana@example.com", "secreto")
    assert exc_info.value.status_code is None
