"""API tests for operator, OAuth and webhook endpoints.

Services are mocked on app.state; the lifespan (database, scheduler) is
not run.
"""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.storesync.config import get_settings
from src.storesync.core.security import compute_signature
from src.storesync.errors import AdapterError
from src.storesync.main import create_app
from src.storesync.oauth.schemas import Credential, ExternalService
from src.storesync.queue.schemas import SyncTaskPage
from src.storesync.queue.service import TaskNotRetryable
from tests.factories import T0, make_variant

ADMIN = {"X-Admin-Key": "admin-secret"}


# ── Helpers ──────────────────────────────────────────────────────────────────


def _mock_services(settings) -> MagicMock:
    services = MagicMock()
    services.settings = settings
    services.queue.list_tasks = AsyncMock(return_value=SyncTaskPage())
    services.queue.enqueue = AsyncMock(return_value="task-123")
    services.queue.get_task = AsyncMock(return_value=None)
    services.queue.retry_task = AsyncMock(return_value=None)
    services.inventory.apply_remote_item = AsyncMock(return_value=make_variant())
    services.token_manager.authorization_url = MagicMock(return_value="https://accounts.example.com/oauth/v2/auth?x=1")
    services.token_manager.exchange_code = AsyncMock(
        return_value=Credential(access_token="a", refresh_token="r", expires_at=T0 + timedelta(hours=1))
    )
    return services


@pytest_asyncio.fixture
async def client_and_services(settings):
    app = create_app()
    services = _mock_services(settings)
    app.state.services = services
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, services


def _signed(payload: object, secret: str = "hook-secret") -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode()
    return body, {"X-Webhook-Signature": compute_signature(body, secret), "Content-Type": "application/json"}


# ── Admin guard ──────────────────────────────────────────────────────────────


class TestAdminGuard:
    async def test_missing_key(self, client_and_services):
        client, _ = client_and_services

        response = await client.get("/sync/tasks")

        assert response.status_code == 401

    async def test_wrong_key(self, client_and_services):
        client, _ = client_and_services

        response = await client.get("/sync/tasks", headers={"X-Admin-Key": "nope"})

        assert response.status_code == 401

    async def test_unconfigured_key(self, client_and_services, settings):
        """No admin key configured -> operator routes are unavailable."""
        client, _ = client_and_services
        settings.ADMIN_API_KEY = ""

        response = await client.get("/sync/tasks", headers=ADMIN)

        assert response.status_code == 503

    async def test_services_not_initialized(self, settings):
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: settings

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/sync/tasks", headers=ADMIN)

        assert response.status_code == 503


# ── Sync endpoints ───────────────────────────────────────────────────────────


class TestSyncEndpoints:
    async def test_list_tasks_with_filters(self, client_and_services):
        client, services = client_and_services

        response = await client.get(
            "/sync/tasks",
            params={"status": "failed", "entity_type": "order", "page": 2},
            headers=ADMIN,
        )

        assert response.status_code == 200
        filters = services.queue.list_tasks.await_args.args[0]
        assert filters.status.value == "failed"
        assert filters.entity_type.value == "order"
        assert filters.page == 2

    async def test_enqueue(self, client_and_services):
        client, services = client_and_services

        response = await client.post(
            "/sync/tasks",
            json={"entity_type": "user", "entity_id": "user-1", "target_service": "crm"},
            headers=ADMIN,
        )

        assert response.status_code == 201
        assert response.json() == {"task_id": "task-123"}
        created = services.queue.enqueue.await_args.args[0]
        assert created.operation.value == "create"

    async def test_enqueue_rejects_unknown_entity(self, client_and_services):
        client, _ = client_and_services

        response = await client.post(
            "/sync/tasks",
            json={"entity_type": "invoice", "entity_id": "1", "target_service": "crm"},
            headers=ADMIN,
        )

        assert response.status_code == 422

    async def test_get_missing_task(self, client_and_services):
        client, _ = client_and_services

        response = await client.get("/sync/tasks/abc", headers=ADMIN)

        assert response.status_code == 404

    async def test_retry_conflict(self, client_and_services):
        client, services = client_and_services
        services.queue.retry_task.side_effect = TaskNotRetryable("Task abc is success")

        response = await client.post("/sync/tasks/abc/retry", headers=ADMIN)

        assert response.status_code == 409

    async def test_retry_missing(self, client_and_services):
        client, _ = client_and_services

        response = await client.post("/sync/tasks/abc/retry", headers=ADMIN)

        assert response.status_code == 404


# ── Inventory webhook ────────────────────────────────────────────────────────


class TestInventoryWebhook:
    async def test_applies_item_update(self, client_and_services):
        client, services = client_and_services
        item = {"item_id": "item-3", "sku": "BIO-NPK-1KG", "stock_on_hand": 7}
        body, headers = _signed({"event_type": "item.updated", "data": {"item": item}})

        response = await client.post("/webhooks/inventory", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "applied"
        assert response.json()["variant_id"] == "var-1"
        services.inventory.apply_remote_item.assert_awaited_once_with(item)

    async def test_bad_signature(self, client_and_services):
        client, services = client_and_services
        body, _ = _signed({"event_type": "item.updated", "data": {}})

        response = await client.post("/webhooks/inventory", content=body, headers={"X-Webhook-Signature": "00"})

        assert response.status_code == 401
        services.inventory.apply_remote_item.assert_not_awaited()

    async def test_unrelated_event_ignored(self, client_and_services):
        client, services = client_and_services
        body, headers = _signed({"eventType": "invoice.paid", "data": {}})

        response = await client.post("/webhooks/inventory", content=body, headers=headers)

        assert response.json() == {"status": "ignored", "event_type": "invoice.paid", "variant_id": None}
        services.inventory.apply_remote_item.assert_not_awaited()

    async def test_unmatched_sku(self, client_and_services):
        client, services = client_and_services
        services.inventory.apply_remote_item.return_value = None
        body, headers = _signed({"event_type": "item.created", "data": {"sku": "X"}})

        response = await client.post("/webhooks/inventory", content=body, headers=headers)

        assert response.json()["status"] == "unmatched"

    async def test_invalid_json(self, client_and_services):
        client, _ = client_and_services
        body = b"not json"
        headers = {"X-Webhook-Signature": compute_signature(body, "hook-secret")}

        response = await client.post("/webhooks/inventory", content=body, headers=headers)

        assert response.status_code == 400

    async def test_non_object_body(self, client_and_services):
        client, services = client_and_services
        body, headers = _signed([{"event_type": "item.updated"}])

        response = await client.post("/webhooks/inventory", content=body, headers=headers)

        assert response.status_code == 400
        services.inventory.apply_remote_item.assert_not_awaited()

    @pytest.mark.parametrize("data", [["BIO-NPK-1KG"], {"item": "BIO-NPK-1KG"}])
    async def test_non_object_item(self, client_and_services, data):
        client, services = client_and_services
        body, headers = _signed({"event_type": "item.updated", "data": data})

        response = await client.post("/webhooks/inventory", content=body, headers=headers)

        assert response.status_code == 400
        services.inventory.apply_remote_item.assert_not_awaited()

    async def test_non_numeric_stock(self, client_and_services):
        client, services = client_and_services
        services.inventory.apply_remote_item.side_effect = AdapterError(200, "Invalid stock_on_hand: 'abc'", "accounting")
        body, headers = _signed({"event_type": "item.updated", "data": {"sku": "BIO-NPK-1KG", "stock_on_hand": "abc"}})

        response = await client.post("/webhooks/inventory", content=body, headers=headers)

        assert response.status_code == 400
        assert "stock_on_hand" in response.json()["detail"]


# ── OAuth flow ───────────────────────────────────────────────────────────────


class TestOAuthFlow:
    async def test_authorize_then_callback(self, client_and_services):
        client, services = client_and_services

        authorize = await client.get("/oauth/crm/authorize", headers=ADMIN)
        state = authorize.json()["state"]
        callback = await client.get("/oauth/crm/callback", params={"code": "c0de", "state": state})

        assert authorize.status_code == 200
        assert callback.status_code == 200
        assert callback.json()["configured"] is True
        services.token_manager.exchange_code.assert_awaited_once_with(ExternalService.CRM, "c0de")

    async def test_state_is_single_use(self, client_and_services):
        client, _ = client_and_services
        state = (await client.get("/oauth/crm/authorize", headers=ADMIN)).json()["state"]

        await client.get("/oauth/crm/callback", params={"code": "c0de", "state": state})
        replay = await client.get("/oauth/crm/callback", params={"code": "c0de", "state": state})

        assert replay.status_code == 400

    async def test_state_bound_to_service(self, client_and_services):
        client, _ = client_and_services
        state = (await client.get("/oauth/crm/authorize", headers=ADMIN)).json()["state"]

        response = await client.get("/oauth/accounting/callback", params={"code": "c0de", "state": state})

        assert response.status_code == 400

    async def test_exchange_failure_is_bad_gateway(self, client_and_services):
        client, services = client_and_services
        services.token_manager.exchange_code.side_effect = AdapterError(400, "invalid_code", "oauth")
        state = (await client.get("/oauth/crm/authorize", headers=ADMIN)).json()["state"]

        response = await client.get("/oauth/crm/callback", params={"code": "c0de", "state": state})

        assert response.status_code == 502

    async def test_authorize_requires_admin(self, client_and_services):
        client, _ = client_and_services

        response = await client.get("/oauth/crm/authorize")

        assert response.status_code == 401


class TestHealth:
    async def test_liveness(self, client_and_services):
        client, _ = client_and_services

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
