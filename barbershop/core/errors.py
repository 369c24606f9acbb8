"""
Error taxonomy and server message extraction.

Three kinds of failure reach callers:

    PreconditionError  raised locally before any request is sent
                       (missing configuration, invalid input, no session id)
    ApiError           the backend answered with a non-2xx status, or could
                       not be reached at all (status_code is None then)
    SessionError       a credential handed to login() could not be decoded

Stored credentials that fail to decode are not errors: the session simply
resolves to "unauthenticated".
"""

from typing import Any, Optional

import httpx


class ErrorCodes:
    """Codes carried by PreconditionError."""

    # Configuration
    CONFIG_ERROR = "CONFIG_ERROR"

    # Input
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_DATE = "INVALID_DATE"
    INVALID_ID = "INVALID_ID"

    # Session
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"

    # Appointment rules
    ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"


class BarbershopError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PreconditionError(BarbershopError):
    """Raised before any network call when a request cannot be built."""

    def __init__(self, message: str, code: str = ErrorCodes.INVALID_INPUT):
        self.code = code
        super().__init__(message)


class SessionError(BarbershopError):
    """Raised when login() receives a credential it cannot decode."""


class ApiError(BarbershopError):
    """
    The backend rejected a request, or could not be reached.

    The server-supplied message is kept intact so that callers can show it.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        payload: Any = None,
    ):
        self.status_code = status_code
        self.details = details
        self.payload = payload
        super().__init__(message)

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @classmethod
    def from_response(cls, response: httpx.Response, fallback: Optional[str] = None) -> "ApiError":
        try:
            payload = response.json()
        except ValueError:
            payload = response.text or None
        message = extract_error_message(payload, response.status_code, fallback)
        details = None
        if isinstance(payload, dict) and isinstance(payload.get("errors"), dict):
            details = payload["errors"]
        return cls(message, status_code=response.status_code, details=details, payload=payload)


def flatten_validation_errors(errors: Any) -> Optional[str]:
    """
    Reduce a ``{field: [messages]}`` mapping to one message.

    The first field's first message wins. Lists of plain strings are also
    accepted.
    """
    if isinstance(errors, dict):
        for messages in errors.values():
            if isinstance(messages, (list, tuple)):
                for message in messages:
                    if isinstance(message, str) and message.strip():
                        return message.strip()
            elif isinstance(messages, str) and messages.strip():
                return messages.strip()
    elif isinstance(errors, (list, tuple)):
        for message in errors:
            if isinstance(message, str) and message.strip():
                return message.strip()
            if isinstance(message, dict):
                text = message.get("message") or message.get("msg")
                if isinstance(text, str) and text.strip():
                    return text.strip()
    return None


def extract_error_message(
    payload: Any,
    status_code: Optional[int] = None,
    fallback: Optional[str] = None,
) -> str:
    """
    Pick the message to show for a failed request.

    Order: the server's ``message`` field, flattened validation errors, the
    ``error``/``title``/``detail`` fields, the caller's fallback, and finally
    the bare status code.
    """
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()

        flattened = flatten_validation_errors(payload.get("errors"))
        if flattened:
            return flattened

        for key in ("error", "title", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    elif isinstance(payload, str) and payload.strip() and len(payload) < 300:
        return payload.strip()

    if fallback:
        return fallback
    if status_code is not None:
        return f"Request failed with status code {status_code}"
    return "Request failed"


def user_message(error: Exception, fallback: str) -> str:
    """Message for a notification about ``error``."""
    if isinstance(error, BarbershopError) and error.message:
        return error.message
    return fallback
