"""Pydantic schemas and enums for the sync queue."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    user = "user"
    order = "order"
    b2b_quote = "b2b_quote"
    inventory = "inventory"
    contact_submission = "contact_submission"


class SyncOperation(str, Enum):
    create = "create"
    update = "update"
    delete = "delete"
    sync_pull = "sync_pull"


class TargetService(str, Enum):
    crm = "crm"
    accounting = "accounting"


class TaskStatus(str, Enum):
    pending = "pending"
    retrying = "retrying"
    success = "success"
    failed = "failed"


OPEN_STATUSES = (TaskStatus.pending, TaskStatus.retrying)


class TaskOutcome(str, Enum):
    """Per-attempt outcome reported in logs and metrics."""

    success = "success"
    skipped = "skipped"
    retrying = "retrying"
    failed = "failed"


# ── Task schemas ────────────────────────────────────────────────────────────


class SyncTaskCreate(BaseModel):
    """Request to enqueue one unit of sync work."""

    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    operation: SyncOperation = SyncOperation.create
    target_service: TargetService
    target_entity_type: str = ""
    max_attempts: int | None = Field(default=None, ge=1)
    request_payload: dict[str, Any] | None = None


class SyncTaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_type: EntityType
    entity_id: str
    operation: SyncOperation
    target_service: TargetService
    target_entity_type: str = ""
    external_id: str | None = None
    status: TaskStatus
    attempt_count: int = 0
    max_attempts: int = 5
    next_retry_at: datetime | None = None
    error_message: str | None = None
    request_payload: dict[str, Any] | None = None
    response_payload: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None


class SyncTaskFilter(BaseModel):
    """Audit listing filters; search matches entity id or error message."""

    status: TaskStatus | None = None
    entity_type: EntityType | None = None
    operation: SyncOperation | None = None
    target_service: TargetService | None = None
    search: str | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class SyncTaskPage(BaseModel):
    items: list[SyncTaskRead] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


# ── Dispatch & statistics ───────────────────────────────────────────────────


class DispatchResult(BaseModel):
    claimed: int = 0
    succeeded: int = 0
    skipped: int = 0
    retrying: int = 0
    failed: int = 0


class SweepResult(BaseModel):
    enqueued: int = 0
    already_open: int = 0
    already_failed: int = 0


class SyncStats(BaseModel):
    """Task counts for tasks created at or after ``since``."""

    since: datetime
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_target: dict[str, int] = Field(default_factory=dict)
    last_success_at: datetime | None = None
