"""
Pytest configuration and fixtures.

The backend is replaced by an in-process httpx.MockTransport, so no test
touches the network or the real token file.
"""
import json

import httpx
import jwt
import pytest

from barbershop.clients import AppointmentsClient, HaircutsClient, UsersClient
from barbershop.core.config import Settings
from barbershop.core.http import ApiClient
from barbershop.notifications import MemoryNotifier, Navigator
from barbershop.session import MemoryTokenStorage, SessionStore

ROLE_CLAIM = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"
SIGNING_KEY = "test-signing-key-with-at-least-32-bytes!"


def make_token(user_id=7, role="Client", email="ana@example.com", name="Ana Pérez", **extra):
    """Signed like the backend's tokens; the client never verifies the signature."""
    claims = {"nameid": str(user_id), "email": email, "unique_name": name, **extra}
    if role is not None:
        claims[ROLE_CLAIM] = role
    return jwt.encode(claims, SIGNING_KEY, algorithm="HS256")


class FakeBackend:
    """
    Route table for httpx.MockTransport.

    Routes map (method, path) to either a (status, body) pair or a callable
    taking the request and returning an httpx.Response. Unknown routes
    answer 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    def add(self, method, path, body=None, status=200):
        self.routes[(method, path)] = (status, body)

    def add_handler(self, method, path, handler):
        self.routes[(method, path)] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(route):
            return route(request)
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method, path) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request):
        return json.loads(request.content)


@pytest.fixture
def settings():
    return Settings(API_URL="http://api.test", AVAILABILITY_DEBOUNCE_MS=0)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def storage():
    return MemoryTokenStorage()


@pytest.fixture
def api(settings, backend, storage):
    return ApiClient(settings, token_provider=storage.read, transport=backend.transport())


@pytest.fixture
def users(api):
    return UsersClient(api)


@pytest.fixture
def haircuts(api):
    return HaircutsClient(api)


@pytest.fixture
def appointments(api):
    return AppointmentsClient(api)


@pytest.fixture
def notifier():
    return MemoryNotifier()


@pytest.fixture
def navigator():
    return Navigator()


@pytest.fixture
def session(storage, users, navigator, notifier):
    return SessionStore(storage, users, navigator, notifier)
