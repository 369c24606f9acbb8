"""
User-facing side effects: transient notifications, confirmation prompts and
navigation.

The application core only talks to these three small interfaces, so a
terminal, a test or any other front end can supply its own.
"""

import asyncio
import logging
import sys
from typing import Callable, Optional, TextIO

logger = logging.getLogger(__name__)


class Notifier:
    """Transient, non-blocking messages (success, error, info, warning)."""

    def notify(self, level: str, message: str) -> None:
        raise NotImplementedError

    def success(self, message: str) -> None:
        self.notify("success", message)

    def error(self, message: str) -> None:
        self.notify("error", message)

    def info(self, message: str) -> None:
        self.notify("info", message)

    def warning(self, message: str) -> None:
        self.notify("warning", message)


class ConsoleNotifier(Notifier):
    """Writes one line per notification to a stream (stderr by default)."""

    PREFIXES = {
        "success": "[ok]",
        "error": "[error]",
        "info": "[info]",
        "warning": "[aviso]",
    }

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stderr

    def notify(self, level: str, message: str) -> None:
        prefix = self.PREFIXES.get(level, "[info]")
        print(f"{prefix} {message}", file=self.stream)


class MemoryNotifier(Notifier):
    """Keeps notifications in a list."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def notify(self, level: str, message: str) -> None:
        logger.debug(f"Notification ({level}): {message}")
        self.messages.append((level, message))

    def of_level(self, level: str) -> list[str]:
        return [message for kind, message in self.messages if kind == level]


class Confirmer:
    """Interactive confirmation before a mutating action is sent."""

    async def confirm(self, title: str, text: str) -> bool:
        raise NotImplementedError


class ConsoleConfirmer(Confirmer):
    """Asks on the terminal; only an explicit yes confirms."""

    def __init__(self, assume_yes: bool = False, input_func: Callable[[str], str] = input):
        self.assume_yes = assume_yes
        self._input = input_func

    async def confirm(self, title: str, text: str) -> bool:
        if self.assume_yes:
            return True
        answer = await asyncio.to_thread(self._input, f"{title}\n{text} [s/N] ")
        return answer.strip().lower() in ("s", "si", "sí", "y", "yes")


class Navigator:
    """
    Records route changes.

    There are no pages in a terminal; the current route tells the front end
    which view to show next.
    """

    def __init__(self, initial_route: str = "/"):
        self.current_route = initial_route
        self.history: list[str] = []

    def navigate(self, route: str) -> None:
        logger.info(f"Navigating to {route}")
        self.current_route = route
        self.history.append(route)
