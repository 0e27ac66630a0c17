"""Async client for the external accounting/inventory API.

Every call carries the ``organization_id`` query parameter. The API wraps
results in ``{"code": 0, "message": ..., "<resource>": {...}}``; a non-zero
code on a 2xx response is treated as a rejection.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.storesync.core.http import ExternalAPIClient, TokenProvider
from src.storesync.core.logging import mask_email
from src.storesync.errors import AdapterError

logger = structlog.get_logger(__name__)


class AccountingClient(ExternalAPIClient):
    """Accounting API client.

    Args:
        organization_id: Tenant organization sent with every request.
        Remaining arguments as for ExternalAPIClient.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        organization_id: str,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("service", "accounting")
        super().__init__(base_url, token_provider, **kwargs)
        self._organization_id = organization_id

    def _default_params(self) -> dict[str, str]:
        return {"organization_id": self._organization_id} if self._organization_id else {}

    async def _call(
        self,
        method: str,
        path: str,
        key: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        body = await self.request(method, path, params=params, json=json)
        code = body.get("code", 0)
        if code != 0:
            raise AdapterError(200, f"{code} {body.get('message', 'Request rejected')}", self._service)
        if key not in body:
            raise AdapterError(200, f"Response missing '{key}'", self._service)
        return body[key]

    # ── Contacts ────────────────────────────────────────────────────────────

    async def find_contact_by_email(self, email: str) -> dict[str, Any] | None:
        contacts = await self._call("GET", "/contacts", "contacts", params={"email": email})
        if not contacts:
            logger.debug("accounting.contact_not_found", email=mask_email(email))
            return None
        return contacts[0]

    async def create_contact(self, contact: dict[str, Any]) -> dict[str, Any]:
        created = await self._call("POST", "/contacts", "contact", json=contact)
        logger.info("accounting.contact_created", contact_id=created.get("contact_id"))
        return created

    # ── Sales documents ─────────────────────────────────────────────────────

    async def create_invoice(self, invoice: dict[str, Any]) -> dict[str, Any]:
        created = await self._call("POST", "/invoices", "invoice", json=invoice)
        logger.info("accounting.invoice_created", invoice_id=created.get("invoice_id"))
        return created

    async def create_estimate(self, estimate: dict[str, Any]) -> dict[str, Any]:
        created = await self._call("POST", "/estimates", "estimate", json=estimate)
        logger.info("accounting.estimate_created", estimate_id=created.get("estimate_id"))
        return created

    # ── Items ───────────────────────────────────────────────────────────────

    async def find_item_by_sku(self, sku: str) -> dict[str, Any] | None:
        items = await self._call("GET", "/items", "items", params={"sku": sku})
        # The search is a prefix match upstream; keep exact SKU hits only.
        for item in items or []:
            if item.get("sku") == sku:
                return item
        return None

    async def get_item(self, item_id: str) -> dict[str, Any]:
        return await self._call("GET", f"/items/{item_id}", "item")

    async def create_item(self, item: dict[str, Any]) -> dict[str, Any]:
        created = await self._call("POST", "/items", "item", json=item)
        logger.info("accounting.item_created", item_id=created.get("item_id"), sku=item.get("sku"))
        return created

    async def update_item(self, item_id: str, item: dict[str, Any]) -> dict[str, Any]:
        updated = await self._call("PUT", f"/items/{item_id}", "item", json=item)
        logger.info("accounting.item_updated", item_id=item_id, sku=item.get("sku"))
        return updated
