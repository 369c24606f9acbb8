"""
Shared HTTP transport for the backend API.

Every resource client goes through ApiClient.request(). It resolves the base
URL from settings, attaches the bearer credential through BearerAuth when the
operation requires it, and turns non-2xx responses into ApiError.

Usage:
    api = ApiClient(settings, token_provider=storage.read)
    data = await api.request("GET", "/appointments/all", auth=True)
"""

import logging
from typing import Any, Callable, Generator, Optional

import httpx

from .config import Settings
from .errors import ApiError, ErrorCodes, PreconditionError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]

CONNECTION_ERROR_MESSAGE = "No se pudo conectar con el servidor"


class BearerAuth(httpx.Auth):
    """Attaches ``Authorization: Bearer <token>`` when a token is available."""

    def __init__(self, token_provider: TokenProvider):
        self._token_provider = token_provider

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._token_provider()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


async def log_unauthorized(response: httpx.Response) -> None:
    # Redirecting is left to the role gate.
    if response.status_code == 401:
        logger.warning(
            f"Unauthorized: token invalid or expired ({response.request.method} {response.request.url.path})"
        )


class ApiClient:
    """Thin wrapper around one httpx.AsyncClient bound to a base URL."""

    def __init__(
        self,
        settings: Settings,
        token_provider: Optional[TokenProvider] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._base_url = base_url
        self._auth = BearerAuth(token_provider or (lambda: None))
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        base = self._base_url if self._base_url is not None else self.settings.api_base_url
        return base.strip().rstrip("/")

    def _get_client(self) -> httpx.AsyncClient:
        base_url = self.base_url
        if not base_url:
            logger.error("API_URL not configured")
            raise PreconditionError("API_URL no está configurado", code=ErrorCodes.CONFIG_ERROR)
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=base_url,
                timeout=self.settings.request_timeout_seconds,
                transport=self._transport,
                event_hooks={"response": [log_unauthorized]},
            )
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        auth: bool = False,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        files: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        fallback_message: Optional[str] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Returns None for empty bodies. Raises PreconditionError when the base
        URL is missing and ApiError for any transport or HTTP failure.
        """
        client = self._get_client()
        try:
            response = await client.request(
                method,
                path,
                params=params,
                json=json,
                files=files,
                data=data,
                auth=self._auth if auth else None,
            )
        except httpx.RequestError as e:
            logger.error(f"Request error {method} {path}: {e}")
            raise ApiError(fallback_message or CONNECTION_ERROR_MESSAGE) from e

        if response.is_error:
            error = ApiError.from_response(response, fallback=fallback_message)
            logger.error(f"HTTP {response.status_code} from {method} {path}: {error.message}")
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
