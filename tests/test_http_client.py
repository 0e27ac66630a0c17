"""Unit tests for ExternalAPIClient error translation."""

from __future__ import annotations

import httpx
import pytest

from src.storesync.core.http import ExternalAPIClient
from src.storesync.errors import AdapterError


# ── Helpers ──────────────────────────────────────────────────────────────────


def _client(handler, **overrides) -> ExternalAPIClient:
    async def token() -> str:
        return "tok-1"

    defaults = {
        "base_url": "https://api.example.com/v1/",
        "token_provider": token,
        "service": "crm",
        "token_prefix": "Zoho-oauthtoken",
        "transport": httpx.MockTransport(handler),
    }
    defaults.update(overrides)
    return ExternalAPIClient(**defaults)


class TestRequest:
    async def test_sends_authorization_and_returns_json(self):
        """Token prefix and per-request token end up in the header."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        body = await _client(handler).request("GET", "/Contacts", params={"page": 1})

        assert body == {"ok": True}
        assert seen[0].headers["Authorization"] == "Zoho-oauthtoken tok-1"
        assert seen[0].url.path == "/v1/Contacts"
        assert seen[0].url.params["page"] == "1"

    async def test_token_fetched_per_request(self):
        """A refresh between calls is picked up by the next request."""
        tokens = iter(["first", "second"])
        headers: list[str] = []

        async def provider() -> str:
            return next(tokens)

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers["Authorization"])
            return httpx.Response(200, json={})

        client = _client(handler, token_provider=provider, token_prefix="Bearer")
        await client.request("GET", "/a")
        await client.request("GET", "/b")

        assert headers == ["Bearer first", "Bearer second"]

    async def test_no_content(self):
        client = _client(lambda request: httpx.Response(204))

        assert await client.request("GET", "/Contacts/search") == {}

    async def test_error_status_preserved(self):
        """Non-2xx -> AdapterError with upstream status and message."""
        client = _client(lambda request: httpx.Response(400, json={"code": "INVALID_DATA", "message": "bad email"}))

        with pytest.raises(AdapterError) as exc_info:
            await client.request("POST", "/Leads", json={})

        assert exc_info.value.status == 400
        assert exc_info.value.message == "bad email"
        assert exc_info.value.service == "crm"
        assert not exc_info.value.is_transport

    async def test_crm_style_error_body(self):
        body = {"data": [{"code": "DUPLICATE_DATA", "message": "duplicate data", "status": "error"}]}
        client = _client(lambda request: httpx.Response(409, json=body))

        with pytest.raises(AdapterError, match="DUPLICATE_DATA duplicate data"):
            await client.request("POST", "/Contacts", json={})

    async def test_server_error_without_json(self):
        client = _client(lambda request: httpx.Response(503, text="upstream down"))

        with pytest.raises(AdapterError) as exc_info:
            await client.request("GET", "/items")

        assert exc_info.value.status == 503

    async def test_timeout_maps_to_status_zero(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(AdapterError) as exc_info:
            await _client(handler, timeout=2.5).request("GET", "/items")

        assert exc_info.value.status == 0
        assert exc_info.value.is_transport
        assert "2.5" in exc_info.value.message

    async def test_connection_error_maps_to_status_zero(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AdapterError) as exc_info:
            await _client(handler).request("GET", "/items")

        assert exc_info.value.status == 0

    async def test_invalid_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(AdapterError, match="Invalid JSON"):
            await client.request("GET", "/items")
