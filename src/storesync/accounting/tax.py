"""Deterministic GST computation for invoices and estimates.

Pure functions over Decimal: no I/O, no clock, recomputed on every sync
attempt so a retried task always sends the same figures.

Exports:
    TaxLineItem: quantity / unit_price / optional tax_rate (whole percent).
    TaxBreakdown: subtotal, tax_amount, total, plus sgst/cgst/igst for
        business transactions.
    compute_b2c: Consumer (order) tax -- a single tax figure per line.
    compute_b2b: Business (quote) tax split by jurisdiction.
    is_inter_state: Jurisdiction predicate on two GST identifiers.
    DEFAULT_TAX_RATE: Rate applied to lines without an explicit tax_rate.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, Field

DEFAULT_TAX_RATE = Decimal("18")

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")
_TWO = Decimal("2")


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


class TaxLineItem(BaseModel):
    """One priced line; rate is a whole-number percentage (18 means 18%)."""

    quantity: int = Field(ge=0)
    unit_price: Decimal
    tax_rate: Decimal | None = None

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def effective_rate(self) -> Decimal:
        return DEFAULT_TAX_RATE if self.tax_rate is None else Decimal(self.tax_rate)

    @property
    def tax(self) -> Decimal:
        return self.subtotal * self.effective_rate / _HUNDRED


class TaxBreakdown(BaseModel):
    """Derived tax totals. sgst/cgst/igst are zero for consumer sales."""

    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    sgst: Decimal = Decimal("0.00")
    cgst: Decimal = Decimal("0.00")
    igst: Decimal = Decimal("0.00")
    inter_state: bool = False


def is_inter_state(seller_tax_id: str | None, buyer_tax_id: str | None) -> bool:
    """True when the two GST identifiers belong to different states.

    The state code is the first two characters of a GSTIN. A missing
    identifier on either side is treated as inter-state.
    """
    if not seller_tax_id or not buyer_tax_id:
        return True
    return seller_tax_id.strip()[:2].upper() != buyer_tax_id.strip()[:2].upper()


def compute_b2c(line_items: Iterable[TaxLineItem]) -> TaxBreakdown:
    """Consumer tax: subtotal + per-line tax at the line (or default) rate."""
    items = list(line_items)
    subtotal = sum((item.subtotal for item in items), Decimal("0"))
    tax = sum((item.tax for item in items), Decimal("0"))

    subtotal = _money(subtotal)
    tax_amount = _money(tax)
    return TaxBreakdown(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)


def compute_b2b(
    line_items: Iterable[TaxLineItem],
    seller_tax_id: str | None,
    buyer_tax_id: str | None,
) -> TaxBreakdown:
    """Business tax split by jurisdiction.

    Intra-state: each line's tax is halved into SGST and CGST.
    Inter-state: the whole tax is IGST.
    Invariant: tax_amount == sgst + cgst + igst and total == subtotal + tax_amount.

    SGST and CGST are rounded separately, so an intra-state tax_amount can be
    0.01 above the inter-state figure for the same lines (raw 0.09 gives
    0.05 + 0.05).
    """
    items = list(line_items)
    inter_state = is_inter_state(seller_tax_id, buyer_tax_id)

    subtotal = _money(sum((item.subtotal for item in items), Decimal("0")))
    raw_tax = sum((item.tax for item in items), Decimal("0"))

    if inter_state:
        igst = _money(raw_tax)
        sgst = cgst = Decimal("0.00")
    else:
        igst = Decimal("0.00")
        sgst = cgst = _money(raw_tax / _TWO)

    tax_amount = sgst + cgst + igst
    return TaxBreakdown(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
        sgst=sgst,
        cgst=cgst,
        igst=igst,
        inter_state=inter_state,
    )
