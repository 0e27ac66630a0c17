"""Pydantic schemas for inventory reconciliation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class InventoryOperation(str, Enum):
    push = "push"
    pull = "pull"


class InventoryLogStatus(str, Enum):
    success = "success"
    failed = "failed"


class InventorySyncLogCreate(BaseModel):
    variant_id: str
    operation: InventoryOperation
    local_quantity: int = 0
    remote_quantity: int = 0
    difference: int = 0
    status: InventoryLogStatus
    error_message: str | None = None


class InventoryBatchResult(BaseModel):
    """Outcome of a batch push; individual failures do not stop the batch."""

    processed: int = 0
    skipped: int = 0
    errored: int = 0
    errors: list[str] = Field(default_factory=list)


class InventorySyncStats(BaseModel):
    total_syncs: int = 0
    push_count: int = 0
    pull_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    last_sync: datetime | None = None
