"""Async client for the external CRM's record API (Contacts, Leads).

Write calls send ``{"data": [record], "trigger": ["workflow"]}`` and read the
new record id from ``data[0].details.id``. A 2xx response whose first record
reports a non-success status is surfaced as an AdapterError as well.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.storesync.core.http import ExternalAPIClient
from src.storesync.core.logging import mask_email
from src.storesync.errors import AdapterError

logger = structlog.get_logger(__name__)


class CRMClient(ExternalAPIClient):
    """CRM API client; see ExternalAPIClient for constructor arguments."""

    def _record_id(self, body: dict[str, Any], action: str) -> tuple[str, dict[str, Any]]:
        data = body.get("data") or []
        if not data:
            raise AdapterError(200, body.get("message") or f"Failed to {action}", self._service)
        record = data[0]
        status = str(record.get("status", "success")).lower()
        record_id = (record.get("details") or {}).get("id")
        if status != "success" or not record_id:
            raise AdapterError(
                200,
                f"{record.get('code', 'UNKNOWN')} {record.get('message', f'Failed to {action}')}".strip(),
                self._service,
            )
        return str(record_id), record

    async def search_contact_by_email(self, email: str) -> dict[str, Any] | None:
        """Exact-email contact lookup; None when the CRM has no match."""
        body = await self.request("GET", "/Contacts/search", params={"email": email})
        data = body.get("data") or []
        if not data:
            logger.debug("crm.contact_not_found", email=mask_email(email))
            return None
        return data[0]

    async def create_contact(self, contact: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        body = await self.request("POST", "/Contacts", json={"data": [contact], "trigger": ["workflow"]})
        contact_id, record = self._record_id(body, "create contact")
        logger.info("crm.contact_created", contact_id=contact_id)
        return contact_id, record

    async def update_contact(self, contact_id: str, contact: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        body = await self.request(
            "PUT",
            f"/Contacts/{contact_id}",
            json={"data": [{**contact, "id": contact_id}], "trigger": ["workflow"]},
        )
        updated_id, record = self._record_id(body, "update contact")
        logger.info("crm.contact_updated", contact_id=updated_id)
        return updated_id, record

    async def create_lead(self, lead: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        body = await self.request("POST", "/Leads", json={"data": [lead], "trigger": ["workflow"]})
        lead_id, record = self._record_id(body, "create lead")
        logger.info("crm.lead_created", lead_id=lead_id, lead_source=lead.get("Lead_Source"))
        return lead_id, record
