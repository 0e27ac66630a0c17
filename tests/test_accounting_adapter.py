"""Unit tests for the accounting client and AccountingSyncAdapter."""

from __future__ import annotations

import json

import httpx
import pytest

from src.storesync.accounting.adapter import AccountingSyncAdapter, contact_payload
from src.storesync.accounting.client import AccountingClient
from src.storesync.errors import AdapterError, RecordNotFound, SkippedNotQualifying
from tests.factories import make_item, make_order, make_quote, make_user

SELLER_GSTIN = "27AAACK1234A1Z5"


# ── Helpers ──────────────────────────────────────────────────────────────────


class FakeAccounting:
    """In-memory accounting API with contacts, invoices and estimates."""

    def __init__(self) -> None:
        self.contacts: list[dict] = []
        self.invoices: list[dict] = []
        self.estimates: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.fail_code: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_code is not None:
            return httpx.Response(200, json={"code": self.fail_code, "message": "Invalid value passed"})

        body = json.loads(request.content) if request.content else None
        path = request.url.path.removeprefix("/api/v3")
        if request.method == "GET" and path == "/contacts":
            email = request.url.params["email"]
            return httpx.Response(200, json={"code": 0, "contacts": [c for c in self.contacts if c["email"] == email]})
        if request.method == "POST" and path == "/contacts":
            contact = {**body, "contact_id": f"cust-{len(self.contacts) + 1}"}
            self.contacts.append(contact)
            return httpx.Response(201, json={"code": 0, "contact": contact})
        if request.method == "POST" and path == "/invoices":
            invoice = {**body, "invoice_id": f"inv-{len(self.invoices) + 1}"}
            self.invoices.append(invoice)
            return httpx.Response(201, json={"code": 0, "invoice": invoice})
        if request.method == "POST" and path == "/estimates":
            estimate = {**body, "estimate_id": f"est-{len(self.estimates) + 1}"}
            self.estimates.append(estimate)
            return httpx.Response(201, json={"code": 0, "estimate": estimate})
        return httpx.Response(404, json={"code": 1, "message": "not found"})


@pytest.fixture
def books() -> FakeAccounting:
    return FakeAccounting()


@pytest.fixture
def adapter(books, storefront, clock) -> AccountingSyncAdapter:
    async def token() -> str:
        return "tok"

    client = AccountingClient(
        "https://books.zoho.in/api/v3",
        token,
        organization_id="600123",
        transport=httpx.MockTransport(books),
    )
    return AccountingSyncAdapter(
        client,
        storefront,
        company_tax_id=SELLER_GSTIN,
        company_name="KN Biosciences",
        clock=clock,
    )


# ── Orders -> invoices ───────────────────────────────────────────────────────


class TestSyncOrderToInvoice:
    async def test_unpaid_order_is_skipped_without_calls(self, adapter, books, storefront):
        storefront.get_order.return_value = make_order(payment_status="pending")

        with pytest.raises(SkippedNotQualifying, match="not paid"):
            await adapter.sync_order_to_invoice("order-1")

        assert books.requests == []
        storefront.set_order_accounting_id.assert_not_awaited()

    async def test_already_invoiced_order_is_skipped(self, adapter, books, storefront):
        storefront.get_order.return_value = make_order(accounting_id="inv-9")

        with pytest.raises(SkippedNotQualifying):
            await adapter.sync_order_to_invoice("order-1")

        assert books.requests == []

    async def test_missing_order(self, adapter, storefront):
        storefront.get_order.return_value = None

        with pytest.raises(RecordNotFound):
            await adapter.sync_order_to_invoice("order-x")

    async def test_paid_order_creates_invoice(self, adapter, books, storefront):
        """2 x 500 at the default 18% -> 1000 / 180 / 1180, id written back."""
        storefront.get_order.return_value = make_order()

        result = await adapter.sync_order_to_invoice("order-1")

        invoice = books.invoices[0]
        assert invoice["sub_total"] == 1000.0
        assert invoice["tax_total"] == 180.0
        assert invoice["total"] == 1180.0
        assert invoice["customer_id"] == "cust-1"
        assert invoice["payment_terms"] == 15
        assert invoice["due_date"] == "2026-03-17"
        assert invoice["is_inclusive_tax"] is False
        assert invoice["notes"] == "Order Number: KN-1001"
        assert invoice["line_items"][0]["description"] == "SKU: BIO-NPK-1KG"
        assert {"label": "Order ID", "value": "order-1"} in invoice["custom_fields"]
        assert result.external_id == "inv-1"
        assert result.details["tax"]["total"] == "1180.00"
        storefront.set_order_accounting_id.assert_awaited_once_with("order-1", "inv-1")

    async def test_every_call_carries_organization(self, adapter, books, storefront):
        storefront.get_order.return_value = make_order()

        await adapter.sync_order_to_invoice("order-1")

        assert books.requests
        assert all(r.url.params["organization_id"] == "600123" for r in books.requests)

    async def test_existing_contact_is_reused(self, adapter, books, storefront):
        books.contacts.append({"contact_id": "cust-77", "email": "jane.doe@example.com"})
        storefront.get_order.return_value = make_order()

        await adapter.sync_order_to_invoice("order-1")

        assert books.invoices[0]["customer_id"] == "cust-77"
        assert len(books.contacts) == 1

    async def test_rejection_code_is_adapter_error(self, adapter, books, storefront):
        books.fail_code = 1001
        storefront.get_order.return_value = make_order()

        with pytest.raises(AdapterError, match="1001"):
            await adapter.sync_order_to_invoice("order-1")

        storefront.set_order_accounting_id.assert_not_awaited()


# ── Quotes -> estimates ──────────────────────────────────────────────────────


class TestSyncQuoteToEstimate:
    async def test_inter_state_quote_is_igst(self, adapter, books, storefront):
        """Seller 27 vs buyer 29: 2000 subtotal, IGST 360, total 2360."""
        storefront.get_quote.return_value = make_quote()

        result = await adapter.sync_quote_to_estimate("quote-1")

        estimate = books.estimates[0]
        assert estimate["sub_total"] == 2000.0
        assert estimate["tax_total"] == 360.0
        assert estimate["total"] == 2360.0
        assert estimate["expiry_date"] == "2026-04-01"
        assert estimate["status"] == "sent"
        assert estimate["notes"] == "B2B Quote from KN Biosciences"
        assert result.details["tax"]["igst"] == "360.00"
        assert result.details["tax"]["inter_state"] is True
        storefront.set_quote_accounting_id.assert_awaited_once_with("quote-1", "est-1")

    async def test_intra_state_quote_splits(self, adapter, storefront):
        buyer = make_user(gst_number="27BBBBB2222B1Z2")
        storefront.get_quote.return_value = make_quote(user=buyer, items=[make_item(1, "1000.00", "12")])

        result = await adapter.sync_quote_to_estimate("quote-1")

        assert result.details["tax"]["sgst"] == "60.00"
        assert result.details["tax"]["cgst"] == "60.00"
        assert result.details["tax"]["igst"] == "0.00"

    async def test_default_expiry(self, adapter, books, storefront):
        storefront.get_quote.return_value = make_quote(valid_until=None, notes="Urgent")

        await adapter.sync_quote_to_estimate("quote-1")

        assert books.estimates[0]["expiry_date"] == "2026-04-01"
        assert books.estimates[0]["notes"] == "Urgent"

    @pytest.mark.parametrize("status", ["pending", "rejected", "converted"])
    async def test_unapproved_quote_is_skipped(self, adapter, books, storefront, status):
        storefront.get_quote.return_value = make_quote(status=status)

        with pytest.raises(SkippedNotQualifying):
            await adapter.sync_quote_to_estimate("quote-1")

        assert books.requests == []


class TestContactPayload:
    def test_maps_address_and_gst(self):
        payload = contact_payload(make_user(gst_number="29ABCDE1234F1Z5"))

        assert payload["contact_name"] == "Jane Doe"
        assert payload["billing_address"]["city"] == "Pune"
        assert payload["billing_address"]["country"] == "India"
        assert payload["gst_no"] == "29ABCDE1234F1Z5"

    def test_falls_back_to_email(self):
        payload = contact_payload(make_user(first_name="", last_name="", company_name=None, phone=None))

        assert payload["contact_name"] == "jane.doe@example.com"
        assert "company_name" not in payload
        assert "phone" not in payload
