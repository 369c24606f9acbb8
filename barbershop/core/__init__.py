"""
Core module - configuration, errors and the shared HTTP transport.
"""
from .config import Settings, get_settings
from .errors import (
    ApiError,
    BarbershopError,
    ErrorCodes,
    PreconditionError,
    SessionError,
    extract_error_message,
    flatten_validation_errors,
    user_message,
)
from .http import ApiClient, BearerAuth

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Errors
    "ApiError",
    "BarbershopError",
    "ErrorCodes",
    "PreconditionError",
    "SessionError",
    "extract_error_message",
    "flatten_validation_errors",
    "user_message",
    # HTTP
    "ApiClient",
    "BearerAuth",
]
