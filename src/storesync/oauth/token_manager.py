"""OAuth 2.0 token lifecycle manager for the external services.

Responsibilities:
- Build the authorization URL (response_type=code, offline access, state)
- Exchange a one-time authorization code for a credential
- Hand out valid access tokens, refreshing within a 5-minute safety window
- Persist every credential change through CredentialRepository (upsert)
- Revoke (forget) a credential

Refreshes are single-flight per service: concurrent callers that find the
token near expiry wait on one asyncio.Lock and the ones that enter after the
first refresh see the fresh cached credential instead of refreshing again.
"""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from src.storesync.core.http import error_message_from
from src.storesync.core.monitoring import oauth_token_refresh_total
from src.storesync.errors import AdapterError, AuthUnavailable
from src.storesync.oauth.repository import CredentialRepository
from src.storesync.oauth.schemas import Credential, ExternalService, OAuthClientConfig

logger = structlog.get_logger(__name__)

REFRESH_WINDOW = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Owns OAuth credentials for every external service.

    Args:
        repository: CredentialRepository used as the persisted copy.
        clients: Registered OAuth client per external service.
        accounts_domain: Identity domain hosting /oauth/v2/auth and /oauth/v2/token.
        timeout: Timeout in seconds for token endpoint calls.
        clock: Returns the current UTC time (injectable for tests).
        transport: Optional httpx transport (tests inject httpx.MockTransport).
    """

    def __init__(
        self,
        repository: CredentialRepository,
        clients: dict[ExternalService, OAuthClientConfig],
        accounts_domain: str,
        timeout: float = 30.0,
        clock: Callable[[], datetime] = _utcnow,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._repository = repository
        self._clients = clients
        self._accounts_domain = accounts_domain.rstrip("/")
        self._timeout = timeout
        self._clock = clock
        self._transport = transport
        self._cache: dict[ExternalService, Credential] = {}
        self._locks: dict[ExternalService, asyncio.Lock] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        repository: CredentialRepository,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> TokenManager:
        """Build a TokenManager from application Settings."""
        clients = {
            service: OAuthClientConfig(**settings.oauth_client(service.value))
            for service in ExternalService
        }
        return cls(
            repository=repository,
            clients=clients,
            accounts_domain=settings.OAUTH_ACCOUNTS_DOMAIN,
            timeout=settings.EXTERNAL_API_TIMEOUT,
            transport=transport,
        )

    def _client_config(self, service: ExternalService) -> OAuthClientConfig:
        try:
            return self._clients[service]
        except KeyError:
            raise AuthUnavailable(service.value, "no OAuth client configured") from None

    def _lock(self, service: ExternalService) -> asyncio.Lock:
        lock = self._locks.get(service)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[service] = lock
        return lock

    # ── Authorization-code flow ─────────────────────────────────────────────

    def authorization_url(self, service: ExternalService, state: str | None = None) -> str:
        """Build the URL an operator visits to grant offline access.

        Args:
            service: External service to authorize.
            state: Anti-forgery token echoed back on the callback. A random
                one is generated when omitted.
        """
        config = self._client_config(service)
        params = {
            "response_type": "code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_uri,
            "scope": config.scope,
            "access_type": "offline",
            "prompt": "consent",
            "state": state or secrets.token_urlsafe(24),
        }
        return f"{self._accounts_domain}/oauth/v2/auth?{urlencode(params)}"

    async def exchange_code(self, service: ExternalService, code: str) -> Credential:
        """Exchange a one-time authorization code, then persist and cache it."""
        config = self._client_config(service)
        data = await self._post_token(
            service,
            {
                "grant_type": "authorization_code",
                "client_id": config.client_id,
                "client_secret": config.client_secret,
                "redirect_uri": config.redirect_uri,
                "code": code,
            },
        )
        if "error" in data:
            raise AdapterError(400, str(data["error"]), "oauth")

        credential = self._credential_from(data, fallback_refresh_token=None)
        if not credential.refresh_token:
            logger.warning("oauth.exchange_without_refresh_token", service=service.value)

        await self._repository.upsert(service, credential)
        self._cache[service] = credential
        logger.info("oauth.code_exchanged", service=service.value, scope=credential.scope)
        return credential

    # ── Token access ────────────────────────────────────────────────────────

    async def get_valid_token(self, service: ExternalService) -> str:
        """Return an access token valid for at least the refresh window.

        Raises:
            AuthUnavailable: No credential or no refresh token to renew it.
            AdapterError: The token endpoint failed.
        """
        credential = self._cache.get(service)
        if credential is not None and not credential.expires_within(REFRESH_WINDOW, self._clock()):
            return credential.access_token

        async with self._lock(service):
            # Another caller may have refreshed while we waited.
            credential = self._cache.get(service)
            if credential is None:
                credential = await self._repository.get(service)
                if credential is None:
                    raise AuthUnavailable(service.value, "no credential stored; complete the authorization flow")
                self._cache[service] = credential

            if credential.expires_within(REFRESH_WINDOW, self._clock()):
                logger.info("oauth.token_expiring", service=service.value)
                credential = await self._refresh(service, credential)

            return credential.access_token

    def token_provider(self, service: ExternalService) -> Callable[[], Any]:
        """Return a zero-arg async callable bound to ``service``.

        Used by the API clients so every request asks for a fresh token.
        """

        async def provide() -> str:
            return await self.get_valid_token(service)

        return provide

    async def is_configured(self, service: ExternalService) -> bool:
        """True if a valid token can currently be obtained."""
        try:
            await self.get_valid_token(service)
        except (AuthUnavailable, AdapterError):
            return False
        return True

    async def revoke(self, service: ExternalService) -> None:
        """Forget the cached and persisted credential."""
        self._cache.pop(service, None)
        await self._repository.delete(service)
        logger.info("oauth.credential_revoked", service=service.value)

    # ── Internals ───────────────────────────────────────────────────────────

    async def _refresh(self, service: ExternalService, credential: Credential) -> Credential:
        if not credential.refresh_token:
            oauth_token_refresh_total.labels(service=service.value, status="unavailable").inc()
            raise AuthUnavailable(service.value)

        config = self._client_config(service)
        try:
            data = await self._post_token(
                service,
                {
                    "grant_type": "refresh_token",
                    "client_id": config.client_id,
                    "client_secret": config.client_secret,
                    "refresh_token": credential.refresh_token,
                },
            )
        except AdapterError as exc:
            oauth_token_refresh_total.labels(service=service.value, status="error").inc()
            if exc.status in (400, 401):
                raise AuthUnavailable(service.value, f"refresh rejected: {exc.message}") from exc
            raise

        if "error" in data:
            # The identity domain reports a revoked refresh token with HTTP 200
            oauth_token_refresh_total.labels(service=service.value, status="rejected").inc()
            raise AuthUnavailable(service.value, f"refresh rejected: {data['error']}")

        refreshed = self._credential_from(data, fallback_refresh_token=credential.refresh_token)
        await self._repository.upsert(service, refreshed)
        self._cache[service] = refreshed
        oauth_token_refresh_total.labels(service=service.value, status="success").inc()
        logger.info("oauth.token_refreshed", service=service.value, expires_at=refreshed.expires_at.isoformat())
        return refreshed

    def _credential_from(self, data: dict[str, Any], fallback_refresh_token: str | None) -> Credential:
        expires_in = int(data.get("expires_in", 3600))
        return Credential(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or fallback_refresh_token,
            expires_at=self._clock() + timedelta(seconds=expires_in),
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
        )

    async def _post_token(self, service: ExternalService, form: dict[str, str]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(f"{self._accounts_domain}/oauth/v2/token", data=form)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.warning("oauth.token_endpoint_unreachable", service=service.value, error=str(exc))
            raise AdapterError(0, str(exc) or exc.__class__.__name__, "oauth") from exc

        if response.is_error:
            raise AdapterError(response.status_code, error_message_from(response), "oauth")
        return response.json()
