"""
Auth resource: exchanges credentials for a bearer token.

None of these calls carries a token.
"""

import logging
from typing import Any, Optional

from ..core.errors import ApiError, PreconditionError
from ..core.http import ApiClient

logger = logging.getLogger(__name__)


def _token_from(data: Any) -> Optional[str]:
    if isinstance(data, str) and data.strip():
        return data.strip()
    if isinstance(data, dict):
        for key in ("token", "accessToken", "access_token", "jwt"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class AuthClient:
    def __init__(self, api: ApiClient):
        self.api = api

    async def login(self, email: str, password: str) -> str:
        if not email or not email.strip() or not password:
            raise PreconditionError("Email y contraseña son obligatorios")
        data = await self.api.request(
            "POST",
            "/auth/login",
            json={"email": email.strip(), "password": password},
            fallback_message="Usuario o contraseña incorrectos.",
        )
        token = _token_from(data)
        if not token:
            raise ApiError("El servidor no devolvió un token", payload=data)
        logger.info(f"Login succeeded for {email.strip()}")
        return token

    async def register(self, full_name: str, email: str, password: str) -> Optional[str]:
        """
        Register a client account.

        Returns the token when the backend logs the new user in directly,
        None when it only creates the account.
        """
        if not full_name.strip() or not email.strip() or not password:
            raise PreconditionError("Nombre, email y contraseña son obligatorios")
        data = await self.api.request(
            "POST",
            "/auth/register",
            json={"fullName": full_name.strip(), "email": email.strip(), "password": password},
            fallback_message="No se pudo registrar",
        )
        logger.info(f"Registered client account {email.strip()}")
        return _token_from(data)

    async def google_login(self, id_token: str) -> str:
        """Exchange a Google identity credential for a backend token."""
        if not id_token or not id_token.strip():
            raise PreconditionError("Credencial de Google vacía")
        data = await self.api.request(
            "POST",
            "/auth/google/login",
            json={"idToken": id_token.strip()},
            fallback_message="Error al iniciar sesión con Google",
        )
        token = _token_from(data)
        if not token:
            raise ApiError("El servidor no devolvió un token", payload=data)
        logger.info("Google login succeeded")
        return token
