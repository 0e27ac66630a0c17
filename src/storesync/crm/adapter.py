"""CRM sync adapter -- maps storefront users, quotes and contact-form
submissions onto CRM Contacts and Leads.

Contact sync is idempotent by email: an existing contact is updated in place
and its id is written back to the local user on every run. Leads are always
created; the queue guarantees a lead task succeeds at most once.

The adapter never retries. Upstream rejections surface as AdapterError and
the sync queue owns the retry schedule.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.storesync.core.logging import mask_email, mask_pii
from src.storesync.crm.client import CRMClient
from src.storesync.errors import RecordNotFound
from src.storesync.schemas import AdapterResult
from src.storesync.storefront.repository import StorefrontRepository
from src.storesync.storefront.schemas import ContactSubmissionRecord, QuoteRecord, UserRecord

logger = structlog.get_logger(__name__)

LEAD_SOURCE_REGISTRATION = "Website Registration"
LEAD_SOURCE_QUOTE = "B2B Quote Request"
LEAD_SOURCE_CONTACT_FORM = "Contact Form"


def _compact(record: dict[str, Any]) -> dict[str, Any]:
    """Drop unset fields so the CRM keeps its existing values."""
    return {key: value for key, value in record.items() if value is not None}


def split_name(name: str) -> tuple[str, str]:
    """First whitespace token is the first name; the remainder is the last name."""
    parts = name.strip().split(None, 1)
    if not parts:
        return "", ""
    return parts[0], parts[1] if len(parts) > 1 else ""


def contact_from_user(user: UserRecord) -> dict[str, Any]:
    return _compact({
        "First_Name": user.first_name,
        "Last_Name": user.last_name,
        "Email": user.email,
        "Phone": user.phone,
        "Company": user.company_name,
        "GST_No": user.gst_number,
        "Lead_Source": LEAD_SOURCE_REGISTRATION,
    })


def lead_from_quote(quote: QuoteRecord) -> dict[str, Any]:
    user = quote.user
    return _compact({
        "First_Name": user.first_name,
        "Last_Name": user.last_name,
        "Email": user.email,
        "Phone": user.phone,
        "Company": user.company_name,
        "Description": quote.notes or f"B2B Quote Request from {user.company_name or 'Individual'}",
        "Lead_Source": LEAD_SOURCE_QUOTE,
    })


def lead_from_submission(submission: ContactSubmissionRecord) -> dict[str, Any]:
    first_name, last_name = split_name(submission.name)
    return _compact({
        "First_Name": first_name,
        "Last_Name": last_name,
        "Email": submission.email,
        "Phone": submission.phone,
        "Company": submission.company,
        "Description": f"{submission.subject or ''}\n\n{submission.message or ''}",
        "Lead_Source": LEAD_SOURCE_CONTACT_FORM,
    })


class CRMSyncAdapter:
    """Sync operations against the external CRM.

    Args:
        client: CRM API client.
        storefront: Repository used to load records and write back CRM ids.
    """

    def __init__(self, client: CRMClient, storefront: StorefrontRepository) -> None:
        self._client = client
        self._storefront = storefront

    # ── Core operations ─────────────────────────────────────────────────────

    async def sync_user_to_contact(self, user_id: str, user_data: UserRecord) -> AdapterResult:
        """Upsert a CRM contact for the user, keyed by exact email.

        Returns:
            AdapterResult whose external_id is the CRM contact id.
        """
        contact = contact_from_user(user_data)
        existing = await self._client.search_contact_by_email(user_data.email)

        if existing is not None and existing.get("id"):
            operation = "update"
            contact_id, response = await self._client.update_contact(str(existing["id"]), contact)
        else:
            operation = "create"
            contact_id, response = await self._client.create_contact(contact)

        await self._storefront.set_user_crm_id(user_id, contact_id)

        logger.info(
            "crm.user_synced",
            user_id=user_id,
            email=mask_email(user_data.email),
            contact_id=contact_id,
            operation=operation,
        )
        return AdapterResult(
            external_id=contact_id,
            operation=operation,
            request_payload=mask_pii(contact),
            response_payload=mask_pii(response),
        )

    async def create_lead_from_quote(self, quote_data: QuoteRecord) -> AdapterResult:
        """Create a CRM lead for a B2B quote request."""
        lead = lead_from_quote(quote_data)
        lead_id, response = await self._client.create_lead(lead)
        logger.info("crm.quote_lead_created", quote_id=quote_data.id, lead_id=lead_id)
        return AdapterResult(
            external_id=lead_id,
            request_payload=mask_pii(lead),
            response_payload=mask_pii(response),
        )

    async def create_lead_from_submission(self, submission_data: ContactSubmissionRecord) -> AdapterResult:
        """Create a CRM lead for a contact-form submission."""
        lead = lead_from_submission(submission_data)
        lead_id, response = await self._client.create_lead(lead)
        logger.info("crm.submission_lead_created", submission_id=submission_data.id, lead_id=lead_id)
        return AdapterResult(
            external_id=lead_id,
            request_payload=mask_pii(lead),
            response_payload=mask_pii(response),
        )

    # ── Queue-facing loaders ────────────────────────────────────────────────

    async def sync_user_registration(self, user_id: str) -> AdapterResult:
        user = await self._storefront.get_user(user_id)
        if user is None:
            raise RecordNotFound("User", user_id)
        return await self.sync_user_to_contact(user_id, user)

    async def sync_contact_submission(self, submission_id: str) -> AdapterResult:
        """Create the lead and mark the submission processed."""
        submission = await self._storefront.get_contact_submission(submission_id)
        if submission is None:
            raise RecordNotFound("Contact submission", submission_id)
        result = await self.create_lead_from_submission(submission)
        await self._storefront.mark_submission_processed(submission_id, result.external_id)
        return result

    async def sync_quote_to_lead(self, quote_id: str) -> AdapterResult:
        """Create the lead and store its id on the quote."""
        quote = await self._storefront.get_quote(quote_id)
        if quote is None:
            raise RecordNotFound("B2B quote", quote_id)
        result = await self.create_lead_from_quote(quote)
        await self._storefront.set_quote_crm_id(quote_id, result.external_id)
        return result
