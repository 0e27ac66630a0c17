"""Accounting sync adapter -- paid orders become invoices, approved B2B
quotes become estimates.

Tax is recomputed from the line items on every attempt (see
accounting.tax) rather than trusted from the stored order totals.
Customers are matched to accounting contacts by email and created on first
use.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import structlog

from src.storesync.accounting.client import AccountingClient
from src.storesync.accounting.tax import TaxBreakdown, TaxLineItem, compute_b2b, compute_b2c
from src.storesync.core.logging import mask_email, mask_pii
from src.storesync.errors import AdapterError, RecordNotFound, SkippedNotQualifying
from src.storesync.schemas import AdapterResult
from src.storesync.storefront.repository import StorefrontRepository
from src.storesync.storefront.schemas import LineItemRecord, UserRecord

logger = structlog.get_logger(__name__)

INVOICE_PAYMENT_TERMS_DAYS = 15
ESTIMATE_PAYMENT_TERMS_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _amount(value: Decimal) -> float:
    return float(value)


def tax_items(items: list[LineItemRecord]) -> list[TaxLineItem]:
    return [
        TaxLineItem(quantity=item.quantity, unit_price=item.unit_price, tax_rate=item.tax_rate)
        for item in items
    ]


def contact_payload(user: UserRecord) -> dict[str, Any]:
    address = user.billing_address or {}
    payload: dict[str, Any] = {
        "contact_name": user.full_name or user.email,
        "contact_type": "customer",
        "email": user.email,
        "billing_address": {
            "address": address.get("address_line1", ""),
            "city": address.get("city", ""),
            "state": address.get("state", ""),
            "zip": address.get("postal_code", ""),
            "country": address.get("country") or "India",
        },
    }
    if user.company_name:
        payload["company_name"] = user.company_name
    if user.phone:
        payload["phone"] = user.phone
    if user.gst_number:
        payload["gst_no"] = user.gst_number
    return payload


def line_items_payload(items: list[LineItemRecord], description_prefix: str) -> list[dict[str, Any]]:
    return [
        {
            "name": item.product_name,
            "description": f"{description_prefix}{item.sku or item.product_name}",
            "rate": _amount(item.unit_price),
            "quantity": item.quantity,
            "item_total": _amount(item.unit_price * item.quantity),
        }
        for item in items
    ]


class AccountingSyncAdapter:
    """Creates invoices and estimates in the accounting service.

    Args:
        client: Accounting API client.
        storefront: Repository for loading orders/quotes and storing ids.
        company_tax_id: Seller GSTIN, used for the jurisdiction test.
        company_name: Seller name used in default estimate notes.
        currency_code: Currency for every document.
        clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        client: AccountingClient,
        storefront: StorefrontRepository,
        company_tax_id: str | None,
        company_name: str = "",
        currency_code: str = "INR",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._storefront = storefront
        self._company_tax_id = company_tax_id
        self._company_name = company_name
        self._currency_code = currency_code
        self._clock = clock

    async def _ensure_contact(self, user: UserRecord) -> str:
        """Find the accounting contact by email, creating it when absent."""
        existing = await self._client.find_contact_by_email(user.email)
        if existing is not None:
            return str(existing["contact_id"])

        created = await self._client.create_contact(contact_payload(user))
        contact_id = created.get("contact_id")
        if not contact_id:
            raise AdapterError(200, "Contact created without contact_id", "accounting")
        logger.info("accounting.customer_created", email=mask_email(user.email), contact_id=contact_id)
        return str(contact_id)

    # ── Orders -> invoices ──────────────────────────────────────────────────

    async def sync_order_to_invoice(self, order_id: str) -> AdapterResult:
        """Create an invoice for a paid order and store its id on the order.

        Raises:
            SkippedNotQualifying: The order is not paid or already invoiced.
            RecordNotFound: No such order.
        """
        order = await self._storefront.get_order(order_id)
        if order is None:
            raise RecordNotFound("Order", order_id)
        if order.payment_status != "paid":
            raise SkippedNotQualifying(f"Order {order.order_number} is not paid ({order.payment_status})")
        if order.accounting_id:
            raise SkippedNotQualifying(f"Order {order.order_number} already invoiced ({order.accounting_id})")

        customer_id = await self._ensure_contact(order.user)
        breakdown = compute_b2c(tax_items(order.items))

        today = self._clock().date()
        invoice_date = order.created_at.date() if order.created_at else today
        invoice = {
            "customer_id": customer_id,
            "date": invoice_date.isoformat(),
            "due_date": (today + timedelta(days=INVOICE_PAYMENT_TERMS_DAYS)).isoformat(),
            "payment_terms": INVOICE_PAYMENT_TERMS_DAYS,
            "payment_terms_label": f"Net {INVOICE_PAYMENT_TERMS_DAYS}",
            "is_inclusive_tax": False,
            "line_items": line_items_payload(order.items, "SKU: "),
            "sub_total": _amount(breakdown.subtotal),
            "tax_total": _amount(breakdown.tax_amount),
            "total": _amount(breakdown.total),
            "currency_code": self._currency_code,
            "notes": f"Order Number: {order.order_number}",
            "custom_fields": [
                {"label": "Order ID", "value": order.id},
                {"label": "Website Order", "value": "true"},
            ],
        }

        created = await self._client.create_invoice(invoice)
        invoice_id = str(created["invoice_id"])
        await self._storefront.set_order_accounting_id(order_id, invoice_id)

        logger.info(
            "accounting.order_invoiced",
            order_id=order_id,
            invoice_id=invoice_id,
            total=str(breakdown.total),
        )
        return AdapterResult(
            external_id=invoice_id,
            request_payload=mask_pii(invoice),
            response_payload=mask_pii(created),
            details=_breakdown_details(breakdown),
        )

    # ── Quotes -> estimates ─────────────────────────────────────────────────

    async def sync_quote_to_estimate(self, quote_id: str) -> AdapterResult:
        """Create an estimate for an approved quote and store its id on the quote.

        Raises:
            SkippedNotQualifying: The quote is not approved or already estimated.
            RecordNotFound: No such quote.
        """
        quote = await self._storefront.get_quote(quote_id)
        if quote is None:
            raise RecordNotFound("B2B quote", quote_id)
        if quote.status != "approved":
            raise SkippedNotQualifying(f"Quote {quote_id} is not approved ({quote.status})")
        if quote.accounting_id:
            raise SkippedNotQualifying(f"Quote {quote_id} already has estimate {quote.accounting_id}")

        customer_id = await self._ensure_contact(quote.user)
        breakdown = compute_b2b(tax_items(quote.items), self._company_tax_id, quote.user.gst_number)

        today = self._clock().date()
        expiry: date = (
            quote.valid_until.date()
            if quote.valid_until
            else today + timedelta(days=ESTIMATE_PAYMENT_TERMS_DAYS)
        )
        estimate = {
            "customer_id": customer_id,
            "date": today.isoformat(),
            "expiry_date": expiry.isoformat(),
            "payment_terms": ESTIMATE_PAYMENT_TERMS_DAYS,
            "payment_terms_label": f"Net {ESTIMATE_PAYMENT_TERMS_DAYS}",
            "is_inclusive_tax": False,
            "line_items": line_items_payload(quote.items, "Bulk pricing - "),
            "sub_total": _amount(breakdown.subtotal),
            "tax_total": _amount(breakdown.tax_amount),
            "total": _amount(breakdown.total),
            "currency_code": self._currency_code,
            "notes": quote.notes or f"B2B Quote from {self._company_name}".strip(),
            "status": "sent",
            "custom_fields": [
                {"label": "Quote ID", "value": quote.id},
                {"label": "B2B Quote", "value": "true"},
            ],
        }

        created = await self._client.create_estimate(estimate)
        estimate_id = str(created["estimate_id"])
        await self._storefront.set_quote_accounting_id(quote_id, estimate_id)

        logger.info(
            "accounting.quote_estimated",
            quote_id=quote_id,
            estimate_id=estimate_id,
            inter_state=breakdown.inter_state,
            total=str(breakdown.total),
        )
        return AdapterResult(
            external_id=estimate_id,
            request_payload=mask_pii(estimate),
            response_payload=mask_pii(created),
            details=_breakdown_details(breakdown),
        )


def _breakdown_details(breakdown: TaxBreakdown) -> dict[str, Any]:
    return {"tax": breakdown.model_dump(mode="json")}
