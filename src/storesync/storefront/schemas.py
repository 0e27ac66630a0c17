"""Read models for storefront records handed to the sync adapters."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class UserRecord(BaseModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    company_name: str | None = None
    gst_number: str | None = None
    role: str | None = None
    billing_address: dict[str, Any] | None = None
    crm_id: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ContactSubmissionRecord(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None = None
    company: str | None = None
    subject: str | None = None
    message: str | None = None
    status: str = "new"


class LineItemRecord(BaseModel):
    """One order or quote line joined with its product name and SKU."""

    product_id: str
    variant_id: str
    product_name: str = "Unknown Product"
    sku: str = ""
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal | None = None


class OrderRecord(BaseModel):
    id: str
    order_number: str
    user_id: str
    payment_status: str
    subtotal: Decimal | None = None
    tax_amount: Decimal | None = None
    total_amount: Decimal | None = None
    accounting_id: str | None = None
    created_at: datetime | None = None
    user: UserRecord
    items: list[LineItemRecord] = Field(default_factory=list)


class QuoteRecord(BaseModel):
    id: str
    user_id: str
    status: str
    notes: str | None = None
    valid_until: datetime | None = None
    subtotal: Decimal | None = None
    tax_amount: Decimal | None = None
    total_amount: Decimal | None = None
    crm_id: str | None = None
    accounting_id: str | None = None
    user: UserRecord
    items: list[LineItemRecord] = Field(default_factory=list)


class ProductRecord(BaseModel):
    id: str
    name: str
    segment: str | None = None
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class VariantRecord(BaseModel):
    """Product variant with its owning product."""

    id: str
    product_id: str
    sku: str
    price: Decimal
    cost_price: Decimal | None = None
    stock_quantity: int = 0
    weight: Decimal | None = None
    weight_unit: str | None = None
    accounting_id: str | None = None
    accounting_synced_at: datetime | None = None
    updated_at: datetime | None = None
    product: ProductRecord
