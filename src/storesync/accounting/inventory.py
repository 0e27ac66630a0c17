"""Inventory reconciliation between storefront variants and accounting items.

Push sends the local variant (price, cost, stock, unit, provenance fields)
to the accounting item with the same SKU. Pull and the inventory webhook
overwrite local stock with the remote value: the accounting service is
authoritative for stock once an item exists there. Every attempt appends an
InventorySyncLog row, success or failure.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.storesync.accounting.client import AccountingClient
from src.storesync.accounting.repository import InventoryLogRepository
from src.storesync.accounting.schemas import (
    InventoryBatchResult,
    InventoryLogStatus,
    InventoryOperation,
    InventorySyncLogCreate,
    InventorySyncStats,
)
from src.storesync.core.monitoring import inventory_sync_total
from src.storesync.errors import AdapterError, RecordNotFound, SkippedNotQualifying, SyncError
from src.storesync.schemas import AdapterResult
from src.storesync.storefront.repository import StorefrontRepository
from src.storesync.storefront.schemas import VariantRecord

logger = structlog.get_logger(__name__)

WEIGHT_UNIT_MAP: dict[str, str] = {
    "g": "grams",
    "kg": "kilograms",
    "ml": "milliliters",
    "l": "liters",
}

SOURCE_MARKER = "Storefront"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def map_weight_unit(unit: str | None) -> str:
    """Storefront weight unit -> accounting unit label; unknown units map to "units"."""
    return WEIGHT_UNIT_MAP.get((unit or "").strip().lower(), "units")


def item_payload(variant: VariantRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": variant.product.name,
        "sku": variant.sku,
        "rate": float(variant.price),
        "item_type": "inventory",
        "product_type": "goods",
        "stock_on_hand": variant.stock_quantity,
        "unit": map_weight_unit(variant.weight_unit),
        "custom_fields": [
            {"label": "Product ID", "value": variant.product_id},
            {"label": "Variant ID", "value": variant.id},
            {"label": "Segment", "value": variant.product.segment or "unknown"},
            {"label": "Source", "value": SOURCE_MARKER},
        ],
    }
    if variant.cost_price is not None:
        payload["purchase_rate"] = float(variant.cost_price)
    if variant.weight is not None:
        payload["description"] = f"Weight: {variant.weight} {variant.weight_unit or ''}".rstrip()
    return payload


def _remote_quantity(item: dict[str, Any], default: int = 0) -> int:
    value = item.get("stock_on_hand")
    if value is None:
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError) as exc:
        raise AdapterError(200, f"Invalid stock_on_hand: {value!r}", "accounting") from exc


class InventorySyncAdapter:
    """Push/pull stock levels for product variants.

    Args:
        client: Accounting API client (items endpoints).
        storefront: Repository for variants and their stock.
        logs: Append-only inventory sync log repository.
        clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        client: AccountingClient,
        storefront: StorefrontRepository,
        logs: InventoryLogRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._storefront = storefront
        self._logs = logs
        self._clock = clock

    async def _record(
        self,
        variant_id: str,
        operation: InventoryOperation,
        status: InventoryLogStatus,
        local_quantity: int,
        remote_quantity: int,
        error_message: str | None = None,
    ) -> None:
        await self._logs.append(
            InventorySyncLogCreate(
                variant_id=variant_id,
                operation=operation,
                local_quantity=local_quantity,
                remote_quantity=remote_quantity,
                difference=remote_quantity - local_quantity,
                status=status,
                error_message=error_message,
            )
        )
        inventory_sync_total.labels(operation=operation.value, status=status.value).inc()

    # ── Push ────────────────────────────────────────────────────────────────

    async def push_inventory_item(self, variant_id: str) -> AdapterResult:
        """Create or update the remote item for a variant, matched by SKU.

        Raises:
            SkippedNotQualifying: The variant's product is not active.
            RecordNotFound: No such variant.
        """
        variant = await self._storefront.get_variant(variant_id)
        if variant is None:
            raise RecordNotFound("Product variant", variant_id)
        if not variant.product.is_active:
            raise SkippedNotQualifying(f"Product {variant.product_id} is not active")

        payload = item_payload(variant)
        try:
            existing = await self._client.find_item_by_sku(variant.sku)
            if existing is not None:
                operation = "update"
                item = await self._client.update_item(str(existing["item_id"]), payload)
            else:
                operation = "create"
                item = await self._client.create_item(payload)
        except SyncError as exc:
            await self._record(
                variant_id,
                InventoryOperation.push,
                InventoryLogStatus.failed,
                variant.stock_quantity,
                variant.stock_quantity,
                error_message=str(exc),
            )
            raise

        item_id = str(item["item_id"])
        await self._storefront.set_variant_remote_item(variant_id, item_id, self._clock())
        await self._record(
            variant_id,
            InventoryOperation.push,
            InventoryLogStatus.success,
            variant.stock_quantity,
            _remote_quantity(item, default=variant.stock_quantity),
        )

        logger.info(
            "inventory.pushed",
            variant_id=variant_id,
            sku=variant.sku,
            item_id=item_id,
            operation=operation,
        )
        return AdapterResult(
            external_id=item_id,
            operation=operation,
            request_payload=payload,
            response_payload=item,
        )

    # ── Pull ────────────────────────────────────────────────────────────────

    async def pull_inventory_item(self, variant_id: str) -> AdapterResult:
        """Overwrite local stock with the remote item's stock on hand.

        Raises:
            SkippedNotQualifying: The variant has never been pushed.
            RecordNotFound: No such variant.
        """
        variant = await self._storefront.get_variant(variant_id)
        if variant is None:
            raise RecordNotFound("Product variant", variant_id)
        if not variant.accounting_id:
            raise SkippedNotQualifying(f"Variant {variant.sku} has no remote item")

        try:
            item = await self._client.get_item(variant.accounting_id)
            remote = _remote_quantity(item, default=variant.stock_quantity)
        except SyncError as exc:
            await self._record(
                variant_id,
                InventoryOperation.pull,
                InventoryLogStatus.failed,
                variant.stock_quantity,
                variant.stock_quantity,
                error_message=str(exc),
            )
            raise

        await self._storefront.set_variant_stock(variant_id, remote, self._clock())
        await self._record(
            variant_id,
            InventoryOperation.pull,
            InventoryLogStatus.success,
            variant.stock_quantity,
            remote,
        )

        logger.info(
            "inventory.pulled",
            variant_id=variant_id,
            sku=variant.sku,
            previous=variant.stock_quantity,
            stock=remote,
        )
        return AdapterResult(
            external_id=variant.accounting_id,
            operation="sync_pull",
            response_payload=item,
            details={"previous_quantity": variant.stock_quantity, "quantity": remote},
        )

    async def apply_remote_item(self, item: dict[str, Any]) -> VariantRecord | None:
        """Apply an item.created / item.updated webhook payload.

        Returns the matched variant, or None when no variant has the SKU.

        Raises:
            AdapterError: stock_on_hand is present but not a number.
        """
        sku = item.get("sku")
        if not sku:
            logger.warning("inventory.webhook_missing_sku", item_id=item.get("item_id"))
            return None
        sku = str(sku)

        variant = await self._storefront.find_variant_by_sku(sku)
        if variant is None:
            logger.warning("inventory.webhook_unknown_sku", sku=sku)
            return None

        now = self._clock()
        remote = _remote_quantity(item, default=variant.stock_quantity)
        if item.get("item_id") and variant.accounting_id != str(item["item_id"]):
            await self._storefront.set_variant_remote_item(variant.id, str(item["item_id"]), now)
        await self._storefront.set_variant_stock(variant.id, remote, now)
        await self._record(
            variant.id,
            InventoryOperation.pull,
            InventoryLogStatus.success,
            variant.stock_quantity,
            remote,
        )

        logger.info("inventory.webhook_applied", variant_id=variant.id, sku=sku, stock=remote)
        return variant.model_copy(update={"stock_quantity": remote})

    # ── Batch & stats ───────────────────────────────────────────────────────

    async def batch_push(self, limit: int = 50) -> InventoryBatchResult:
        """Push every variant that was never pushed or changed since its last push."""
        variant_ids = await self._storefront.list_variants_needing_push(limit)
        result = InventoryBatchResult()

        for variant_id in variant_ids:
            try:
                await self.push_inventory_item(variant_id)
                result.processed += 1
            except SkippedNotQualifying as exc:
                result.skipped += 1
                logger.debug("inventory.batch_skip", variant_id=variant_id, reason=exc.reason)
            except Exception as exc:
                result.errored += 1
                result.errors.append(f"{variant_id}: {exc}")
                logger.error("inventory.batch_error", variant_id=variant_id, error=str(exc))

        logger.info(
            "inventory.batch_complete",
            candidates=len(variant_ids),
            processed=result.processed,
            skipped=result.skipped,
            errored=result.errored,
        )
        return result

    async def stats(self, since: datetime | None = None) -> InventorySyncStats:
        """Push/pull and success/failure counts; defaults to the last 24 hours."""
        return await self._logs.stats(since or self._clock() - timedelta(hours=24))
