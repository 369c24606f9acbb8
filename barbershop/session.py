"""
Session Store - who the current user is.

The identity is derived from one persisted bearer credential. The token is
decoded WITHOUT verifying its signature: the backend is the only authority,
the decoded claims are only used to pick views and landing routes.

Usage:
    store = SessionStore(FileTokenStorage(settings.token_file), users, navigator)
    await store.load_from_storage()
    if store.is_authenticated:
        print(store.identity.display_name)
"""

import asyncio
import logging
import os
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

import jwt

from .clients.users import UsersClient
from .core.errors import ApiError, PreconditionError, SessionError
from .models import Identity, UserRole, normalize_role
from .notifications import Navigator, Notifier

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────
# Routes
# ────────────────────────────────────────────────────────────────

HOME_ROUTE = "/"
LOGIN_ROUTE = "/login"

ROLE_LANDING_ROUTES = {
    UserRole.CLIENT: "/appointments",
    UserRole.BARBER: "/dashboard-barber",
    UserRole.ADMIN: "/dashboard-admin",
}


def landing_route(role: Optional[UserRole]) -> str:
    """Default route for a role; unknown roles land on the home page."""
    return ROLE_LANDING_ROUTES.get(role, HOME_ROUTE)


# ────────────────────────────────────────────────────────────────
# Token decoding
# ────────────────────────────────────────────────────────────────

ROLE_CLAIM = "http://schemas.microsoft.com/ws/2008/06/identity/claims/role"
EMAIL_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/emailaddress"
NAME_ID_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier"
NAME_CLAIM = "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name"

ID_CLAIMS = ("nameid", NAME_ID_CLAIM, "id", "userId", "sub")
EMAIL_CLAIMS = ("email", EMAIL_CLAIM, "Email", "EmailAddress")
ROLE_CLAIMS = (ROLE_CLAIM, "role", "Role", "roleid", "RoleId", "roleId", "userRole", "UserRole")
NAME_CLAIMS = ("fullName", "FullName", "name", "unique_name", "Name", NAME_CLAIM)


def _first_claim(claims: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = claims.get(key)
        if value not in (None, ""):
            return value
    return None


def decode_token(token: Optional[str]) -> Optional[Identity]:
    """
    Best-effort structural decode of a bearer credential.

    Returns None (never raises) when the token does not have three
    dot-separated segments, does not parse, or lacks a numeric id or a
    recognizable role.
    """
    if not token or not isinstance(token, str):
        return None
    token = token.strip()
    if len(token.split(".")) != 3:
        logger.debug("Token does not have three segments")
        return None

    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.debug(f"Could not decode token: {e}")
        return None

    raw_id = _first_claim(claims, ID_CLAIMS)
    try:
        user_id = int(raw_id)
    except (TypeError, ValueError):
        logger.debug(f"Token has no usable id claim: {raw_id!r}")
        return None
    if user_id <= 0:
        return None

    role = normalize_role(_first_claim(claims, ROLE_CLAIMS))
    if role is None:
        logger.debug("Token has no recognizable role claim")
        return None

    return Identity(
        id=user_id,
        role=role,
        email=str(_first_claim(claims, EMAIL_CLAIMS) or ""),
        full_name=str(_first_claim(claims, NAME_CLAIMS) or ""),
    )


# ────────────────────────────────────────────────────────────────
# Token storage
# ────────────────────────────────────────────────────────────────

class TokenStorage:
    """Where the one persisted credential lives."""

    def read(self) -> Optional[str]:
        raise NotImplementedError

    def write(self, token: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryTokenStorage(TokenStorage):
    def __init__(self, token: Optional[str] = None):
        self.token = token

    def read(self) -> Optional[str]:
        return self.token

    def write(self, token: str) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = None


class FileTokenStorage(TokenStorage):
    """
    Token kept in a file readable only by the current user.

    Several processes may share the file; SessionStore.watch() notices when
    another one logs in or out.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[str]:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return token or None

    def write(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token)
        # O_TRUNC keeps the mode of an existing file.
        self.path.chmod(0o600)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


# ────────────────────────────────────────────────────────────────
# Session store
# ────────────────────────────────────────────────────────────────

class SessionStatus(str, Enum):
    RESOLVING = "resolving"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


Listener = Callable[["SessionStore"], None]


class SessionStore:
    """
    Single source of truth for the current user.

    Read access through ``identity``/``status``; mutation only through
    load_from_storage(), login(), logout(), refresh() and sync_from_storage().
    """

    def __init__(
        self,
        storage: TokenStorage,
        users: UsersClient,
        navigator: Navigator,
        notifier: Optional[Notifier] = None,
    ):
        self.storage = storage
        self.users = users
        self.navigator = navigator
        self.notifier = notifier
        self.status = SessionStatus.RESOLVING
        self._identity: Optional[Identity] = None
        self._token: Optional[str] = None
        self._resolved = asyncio.Event()
        self._profile_task: Optional[asyncio.Task] = None
        self._listeners: list[Listener] = []
        self._watch_task: Optional[asyncio.Task] = None

    # Read access

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_loading(self) -> bool:
        return self.status == SessionStatus.RESOLVING

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def role(self) -> Optional[UserRole]:
        return self._identity.role if self._identity else None

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    @property
    def is_barber(self) -> bool:
        return self.role == UserRole.BARBER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_until_resolved(self) -> None:
        await self._resolved.wait()

    async def wait_for_profile(self) -> None:
        """Wait for the background profile fetch, if one is running."""
        task = self._profile_task
        if task is not None and not task.done():
            await asyncio.wait({task})

    # Mutation

    def _commit(self, identity: Optional[Identity], token: Optional[str]) -> None:
        self._identity = identity
        self._token = token
        self.status = SessionStatus.AUTHENTICATED if identity else SessionStatus.UNAUTHENTICATED
        self._resolved.set()
        for listener in list(self._listeners):
            listener(self)

    def _start_profile_fetch(self) -> None:
        self._cancel_profile_fetch()
        self._profile_task = asyncio.create_task(self._attach_profile(self._token))

    def _cancel_profile_fetch(self) -> None:
        if self._profile_task is not None and not self._profile_task.done():
            self._profile_task.cancel()
        self._profile_task = None

    async def _attach_profile(self, token: Optional[str]) -> None:
        try:
            profile = await self.users.get_profile()
        except (ApiError, PreconditionError) as e:
            # The decoded claims remain authoritative.
            logger.warning(f"Could not load full profile: {e.message}")
            return
        if self._identity is None or self._token != token:
            return
        self._commit(replace(self._identity, profile=profile), token)
        logger.debug(f"Profile attached for user {profile.id}")

    async def load_from_storage(self) -> Optional[Identity]:
        """Resolve the session from the persisted credential."""
        token = self.storage.read()
        if not token:
            self._commit(None, None)
            return None

        identity = decode_token(token)
        if identity is None:
            logger.warning("Stored token could not be decoded, clearing it")
            self.storage.clear()
            self._commit(None, None)
            return None

        self._commit(identity, token)
        logger.info(f"Session restored for user {identity.id} ({identity.role.name})")
        self._start_profile_fetch()
        return identity

    async def login(self, token: str) -> str:
        """
        Persist ``token``, commit the decoded identity and navigate to the
        role's landing route. Returns that route.
        """
        identity = decode_token(token)
        if identity is None:
            if self.notifier:
                self.notifier.error("Error al iniciar sesión")
            raise SessionError("Error al decodificar el token")

        token = token.strip()
        self.storage.write(token)
        self._commit(identity, token)
        route = landing_route(identity.role)
        logger.info(f"User {identity.id} logged in as {identity.role.name}")
        self.navigator.navigate(route)
        self._start_profile_fetch()
        return route

    def logout(self) -> None:
        self._cancel_profile_fetch()
        self.storage.clear()
        self._commit(None, None)
        if self.notifier:
            self.notifier.info("Sesión cerrada correctamente")
        logger.info("Session closed")
        self.navigator.navigate(HOME_ROUTE)

    async def refresh(self) -> None:
        """Re-fetch the profile; a failure counts as an implicit logout."""
        token = self.storage.read()
        identity = decode_token(token)
        if identity is None:
            self._commit(None, None)
            return

        try:
            profile = await self.users.get_profile()
        except (ApiError, PreconditionError) as e:
            logger.warning(f"Profile refresh failed, logging out: {e.message}")
            self.logout()
            return
        self._commit(replace(identity, profile=profile), token)

    def sync_from_storage(self) -> bool:
        """
        Reflect a credential change made by another process.

        Returns True when the session changed.
        """
        token = self.storage.read()
        if token == self._token:
            return False

        if not token:
            logger.info("Token removed elsewhere, clearing session")
            self._cancel_profile_fetch()
            self._commit(None, None)
            return True

        identity = decode_token(token)
        if identity is None:
            self._cancel_profile_fetch()
            self._commit(None, None)
            return True

        logger.info(f"Token replaced elsewhere, session is now user {identity.id}")
        self._commit(identity, token)
        self._start_profile_fetch()
        return True

    async def watch(self, interval: float = 2.0) -> None:
        """Poll storage until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.sync_from_storage()

    def start_watching(self, interval: float = 2.0) -> None:
        """Run watch() in the background until aclose()."""
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.create_task(self.watch(interval))

    async def aclose(self) -> None:
        watcher, self._watch_task = self._watch_task, None
        if watcher is not None:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
        task = self._profile_task
        self._cancel_profile_fetch()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
