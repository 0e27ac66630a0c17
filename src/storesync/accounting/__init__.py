"""Accounting sync: invoices, estimates, GST and inventory reconciliation.

Exports:
    AccountingClient: Async client over the accounting REST API.
    AccountingSyncAdapter: Order -> invoice and quote -> estimate.
    InventorySyncAdapter: Variant stock push/pull and batch push.
    InventoryLogRepository: Append-only inventory sync log.
"""

from src.storesync.accounting.adapter import AccountingSyncAdapter
from src.storesync.accounting.client import AccountingClient
from src.storesync.accounting.inventory import InventorySyncAdapter
from src.storesync.accounting.repository import InventoryLogRepository

__all__ = [
    "AccountingClient",
    "AccountingSyncAdapter",
    "InventoryLogRepository",
    "InventorySyncAdapter",
]
