"""
Role Gate - blocks a view until the session is known, then lets it through,
or sends the user elsewhere.

States:
    RESOLVING    session not resolved yet; show a loading indicator, no redirect
    REDIRECTING  not authenticated; navigate to the login route
    FORBIDDEN    authenticated with a role outside the allow-list; navigate to
                 the role's default route
    AUTHORIZED   render the guarded view

Navigation is a one-time effect of entering REDIRECTING or FORBIDDEN; re-
evaluating in the same state does not navigate again.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from .models import UserRole, normalize_role
from .session import LOGIN_ROUTE, SessionStore, landing_route

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GateState(str, Enum):
    RESOLVING = "resolving"
    REDIRECTING = "redirecting"
    AUTHORIZED = "authorized"
    FORBIDDEN = "forbidden"


LOADING_TEXT = "Verificando autenticación..."


class RoleGate:
    def __init__(
        self,
        session: SessionStore,
        allowed_roles: Optional[Iterable[Any]] = None,
        redirect_to: str = LOGIN_ROUTE,
    ):
        self.session = session
        self.redirect_to = redirect_to
        self.allowed_roles: Optional[frozenset[UserRole]] = None
        if allowed_roles is not None:
            roles = set()
            for value in allowed_roles:
                role = normalize_role(value)
                if role is None:
                    raise ValueError(f"Unknown role in allow-list: {value!r}")
                roles.add(role)
            self.allowed_roles = frozenset(roles)
        self.state = GateState.RESOLVING
        self.redirect_target: Optional[str] = None

    def _target_state(self) -> GateState:
        if self.session.is_loading:
            return GateState.RESOLVING
        identity = self.session.identity
        if identity is None:
            return GateState.REDIRECTING
        if self.allowed_roles is not None and identity.role not in self.allowed_roles:
            return GateState.FORBIDDEN
        return GateState.AUTHORIZED

    def evaluate(self) -> GateState:
        """Recompute the state; navigate only on entering a redirect state."""
        new_state = self._target_state()
        if new_state == self.state:
            return self.state

        previous, self.state = self.state, new_state
        self.redirect_target = None
        if new_state == GateState.REDIRECTING:
            self.redirect_target = self.redirect_to
        elif new_state == GateState.FORBIDDEN:
            self.redirect_target = landing_route(self.session.role)

        logger.debug(f"Role gate {previous.value} -> {new_state.value}")
        if self.redirect_target is not None:
            self.session.navigator.navigate(self.redirect_target)
        return self.state

    def render(self, view: Callable[[], T]) -> Optional[Any]:
        """
        Synchronous render: the loading text while resolving, nothing while
        redirecting or forbidden, otherwise ``view()``.
        """
        state = self.evaluate()
        if state == GateState.RESOLVING:
            return LOADING_TEXT
        if state != GateState.AUTHORIZED:
            return None
        return view()

    async def run(self, action: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Wait for the session to resolve, then run ``action`` if authorized."""
        await self.session.wait_until_resolved()
        if self.evaluate() != GateState.AUTHORIZED:
            return None
        return await action()
