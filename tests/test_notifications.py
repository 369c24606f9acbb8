"""
Tests for configuration and the console side-effect adapters.

Run with: pytest tests/test_notifications.py -v
"""

import io
from pathlib import Path

import pytest

from barbershop.core.config import Settings
from barbershop.notifications import ConsoleConfirmer, ConsoleNotifier, Navigator


class TestSettings:
    def test_derived_values(self):
        settings = Settings(API_URL=" http://api.test/ ", AVAILABILITY_DEBOUNCE_MS=250, TOKEN_PATH="~/tok")

        assert settings.api_base_url == "http://api.test"
        assert settings.availability_debounce_seconds == 0.25
        assert settings.token_file == Path("~/tok").expanduser()

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("SHOP_TIMEZONE", "Europe/Madrid")
        monkeypatch.setenv("REQUEST_TIMEOUT_SECONDS", "3")

        settings = Settings()

        assert settings.shop_timezone == "Europe/Madrid"
        assert settings.request_timeout_seconds == 3.0


def test_console_notifier_prefixes():
    stream = io.StringIO()
    notifier = ConsoleNotifier(stream)

    notifier.success("Cita creada correctamente")
    notifier.error("Error al crear la cita")

    assert stream.getvalue().splitlines() == [
        "[ok] Cita creada correctamente",
        "[error] Error al crear la cita",
    ]


class TestConsoleConfirmer:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer, expected", [("s", True), ("Sí", True), ("yes", True), ("", False), ("no", False)])
    async def test_answers(self, answer, expected):
        prompts = []

        def fake_input(prompt):
            prompts.append(prompt)
            return answer

        confirmer = ConsoleConfirmer(input_func=fake_input)

        assert await confirmer.confirm("¿Cancelar cita?", "¿Seguro?") is expected
        assert prompts == ["¿Cancelar cita?\n¿Seguro? [s/N] "]

    @pytest.mark.asyncio
    async def test_assume_yes_never_asks(self):
        def fail(prompt):
            raise AssertionError("should not prompt")

        assert await ConsoleConfirmer(assume_yes=True, input_func=fail).confirm("t", "x")


def test_navigator_history():
    navigator = Navigator()
    navigator.navigate("/login")
    navigator.navigate("/appointments")

    assert navigator.current_route == "/appointments"
    assert navigator.history == ["/login", "/appointments"]
