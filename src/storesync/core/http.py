"""Shared async HTTP plumbing for the external CRM and accounting APIs.

ExternalAPIClient owns the cross-cutting concerns every outbound call needs:
- bearer-style authorization with a token fetched per request from the
  TokenManager (so a refresh between calls is picked up transparently)
- a bounded timeout on every request
- translation of non-2xx responses, timeouts and transport failures into
  AdapterError carrying the upstream status and message

Requests are never retried here; retry policy belongs to the
sync queue.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from src.storesync.errors import AdapterError

logger = structlog.get_logger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


def error_message_from(response: httpx.Response) -> str:
    """Extract the upstream machine-readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or response.text or "Unknown error"

    if isinstance(body, dict):
        for key in ("message", "error", "error_description"):
            if body.get(key):
                return str(body[key])
        # CRM style: {"data": [{"code": "INVALID_DATA", "message": "..."}]}
        data = body.get("data")
        if isinstance(data, list) and data and isinstance(data[0], dict):
            first = data[0]
            if first.get("message"):
                return f"{first.get('code', '')} {first['message']}".strip()
    return response.reason_phrase or "Unknown error"


class ExternalAPIClient:
    """Base async client for a bearer-authenticated external REST API.

    Args:
        base_url: API root, e.g. ``https://www.zohoapis.in/crm/v6``.
        token_provider: Async callable returning a valid access token.
        service: Service label used in errors and logs ("crm", "accounting").
        timeout: Per-request timeout in seconds.
        token_prefix: Authorization scheme prefix.
        transport: Optional httpx transport (tests inject httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        service: str,
        timeout: float = 30.0,
        token_prefix: str = "Bearer",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._service = service
        self._timeout = timeout
        self._token_prefix = token_prefix
        self._transport = transport

    def _default_params(self) -> dict[str, str]:
        """Query parameters appended to every request (none by default)."""
        return {}

    async def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client with a fresh authorization header."""
        token = await self._token_provider()
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"{self._token_prefix} {token}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """Perform a request and return the decoded JSON body.

        Returns an empty dict for 204 No Content.

        Raises:
            AdapterError: On non-2xx status (status preserved) or on timeout /
                transport failure (status 0).
        """
        merged_params = {**self._default_params(), **(params or {})}

        async with await self._client() as client:
            try:
                response = await client.request(
                    method,
                    path,
                    params=merged_params or None,
                    json=json,
                )
            except httpx.TimeoutException as exc:
                logger.warning(
                    "external_api.timeout",
                    service=self._service,
                    method=method,
                    path=path,
                    timeout=self._timeout,
                )
                raise AdapterError(0, f"Request timed out after {self._timeout}s", self._service) from exc
            except httpx.TransportError as exc:
                logger.warning(
                    "external_api.transport_error",
                    service=self._service,
                    method=method,
                    path=path,
                    error=str(exc),
                )
                raise AdapterError(0, str(exc) or exc.__class__.__name__, self._service) from exc

        if response.status_code == 204:
            return {}

        if response.is_error:
            message = error_message_from(response)
            logger.warning(
                "external_api.error_response",
                service=self._service,
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise AdapterError(response.status_code, message, self._service)

        try:
            return response.json()
        except ValueError as exc:
            raise AdapterError(response.status_code, "Invalid JSON in response", self._service) from exc
