"""
Users resource: profiles, barbers and staff registration.
"""

import logging
from typing import Any, Optional

from ..core.errors import ApiError, ErrorCodes, PreconditionError
from ..core.http import ApiClient
from ..models import User, UserRole, normalize_role

logger = logging.getLogger(__name__)


def require_positive_id(value: Any, name: str = "id") -> int:
    """Validate an entity id before it is put in a URL."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise PreconditionError(f"{name} inválido: {value!r}", code=ErrorCodes.INVALID_ID)
    if number <= 0 or isinstance(value, bool):
        raise PreconditionError(f"{name} inválido: {value!r}", code=ErrorCodes.INVALID_ID)
    return number


class UsersClient:
    def __init__(self, api: ApiClient):
        self.api = api

    async def list_users(self) -> list[User]:
        """GET /users. A missing endpoint (404) yields an empty list."""
        try:
            data = await self.api.request(
                "GET", "/users", fallback_message="Error al obtener usuarios"
            )
        except ApiError as e:
            if e.is_not_found:
                logger.warning("Endpoint /users not available, returning empty list")
                return []
            raise
        return [User.model_validate(item) for item in data or []]

    async def list_barbers(self) -> list[User]:
        users = await self.list_users()
        return [user for user in users if user.role == UserRole.BARBER]

    async def get_user(self, user_id: int) -> User:
        user_id = require_positive_id(user_id, "userId")
        data = await self.api.request(
            "GET", f"/users/{user_id}", fallback_message="Error al obtener usuario"
        )
        return User.model_validate(data)

    async def get_profile(self) -> User:
        data = await self.api.request(
            "GET", "/users/profile", auth=True, fallback_message="Error al obtener el perfil"
        )
        return User.model_validate(data)

    async def update_user(
        self,
        user_id: int,
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> User:
        """PUT /users/{id}. Only the name and phone number can change."""
        user_id = require_positive_id(user_id, "userId")
        body: dict[str, Any] = {}
        if full_name is not None:
            if not full_name.strip():
                raise PreconditionError("El nombre no puede estar vacío")
            body["fullName"] = full_name.strip()
        if phone_number is not None:
            body["phoneNumber"] = phone_number.strip() or None
        if not body:
            raise PreconditionError("No hay cambios para guardar")

        data = await self.api.request(
            "PUT",
            f"/users/{user_id}",
            auth=True,
            json=body,
            fallback_message="Error al actualizar el perfil",
        )
        logger.info(f"Updated profile for user {user_id}")
        if isinstance(data, dict) and "id" in data:
            return User.model_validate(data)
        return await self.get_user(user_id)

    async def upload_profile_photo(
        self,
        user_id: int,
        filename: str,
        content: bytes,
        content_type: str = "image/jpeg",
    ) -> str:
        """PUT /users/{id}/upload-photo (multipart). Returns the photo URL."""
        user_id = require_positive_id(user_id, "userId")
        if not content:
            raise PreconditionError("La imagen está vacía")

        data = await self.api.request(
            "PUT",
            f"/users/{user_id}/upload-photo",
            auth=True,
            files={"file": (filename, content, content_type)},
            fallback_message="Error al subir la foto de perfil",
        )
        if isinstance(data, dict):
            url = data.get("url") or data.get("profilePhotoUrl") or data.get("photoUrl")
        else:
            url = data
        if not isinstance(url, str) or not url:
            raise ApiError("Respuesta inesperada al subir la foto de perfil", payload=data)
        logger.info(f"Uploaded profile photo for user {user_id}")
        return url

    async def create_staff(
        self,
        full_name: str,
        email: str,
        password: str,
        role: Any,
    ) -> Any:
        """POST /users/create-staff. The role travels as its symbolic name."""
        staff_role = normalize_role(role)
        if staff_role not in (UserRole.BARBER, UserRole.ADMIN):
            raise PreconditionError("El rol del personal debe ser Barbero o Administrador")
        if not full_name.strip() or not email.strip() or not password:
            raise PreconditionError("Nombre, email y contraseña son obligatorios")

        data = await self.api.request(
            "POST",
            "/users/create-staff",
            json={
                "fullName": full_name.strip(),
                "email": email.strip(),
                "password": password,
                "role": staff_role.wire_name,
            },
            fallback_message="Error al registrar el personal",
        )
        logger.info(f"Created staff member {email.strip()} with role {staff_role.wire_name}")
        return data
