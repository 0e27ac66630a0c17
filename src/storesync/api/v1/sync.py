"""Operator endpoints for the sync queue and inventory reconciliation.

All routes require the X-Admin-Key header.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from src.storesync.accounting.schemas import InventoryBatchResult, InventorySyncStats
from src.storesync.api.deps import get_services, require_admin
from src.storesync.queue.schemas import (
    DispatchResult,
    EntityType,
    SweepResult,
    SyncOperation,
    SyncStats,
    SyncTaskCreate,
    SyncTaskFilter,
    SyncTaskPage,
    SyncTaskRead,
    TargetService,
    TaskStatus,
)
from src.storesync.queue.service import TaskNotRetryable
from src.storesync.services import SyncServices

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[Depends(require_admin)])


class EnqueueResponse(BaseModel):
    task_id: str


class StatsResponse(BaseModel):
    queue: SyncStats
    inventory: InventorySyncStats


# ── Tasks ────────────────────────────────────────────────────────────────────


@router.get("/tasks", response_model=SyncTaskPage)
async def list_tasks(
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    entity_type: EntityType | None = Query(default=None),
    operation: SyncOperation | None = Query(default=None),
    target_service: TargetService | None = Query(default=None),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    services: SyncServices = Depends(get_services),
) -> SyncTaskPage:
    """Paginated audit listing, newest first."""
    filters = SyncTaskFilter(
        status=status_filter,
        entity_type=entity_type,
        operation=operation,
        target_service=target_service,
        search=search,
        page=page,
        page_size=page_size,
    )
    return await services.queue.list_tasks(filters)


@router.post("/tasks", response_model=EnqueueResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_task(
    body: SyncTaskCreate,
    services: SyncServices = Depends(get_services),
) -> EnqueueResponse:
    task_id = await services.queue.enqueue(body)
    return EnqueueResponse(task_id=task_id)


@router.get("/tasks/{task_id}", response_model=SyncTaskRead)
async def get_task(
    task_id: str,
    services: SyncServices = Depends(get_services),
) -> SyncTaskRead:
    task = await services.queue.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Task not found: {task_id}")
    return task


@router.post("/tasks/{task_id}/retry", response_model=SyncTaskRead)
async def retry_task(
    task_id: str,
    services: SyncServices = Depends(get_services),
) -> SyncTaskRead:
    """Re-open a failed or retrying task with a fresh attempt budget."""
    try:
        task = await services.queue.retry_task(task_id)
    except TaskNotRetryable as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Task not found: {task_id}")
    return task


# ── Batch operations ─────────────────────────────────────────────────────────


@router.post("/dispatch", response_model=DispatchResult)
async def dispatch(
    batch_size: int | None = Query(default=None, ge=1, le=500),
    services: SyncServices = Depends(get_services),
) -> DispatchResult:
    return await services.queue.dispatch(batch_size or services.settings.SYNC_DISPATCH_BATCH_SIZE)


@router.post("/sweep", response_model=SweepResult)
async def sweep(
    limit: int | None = Query(default=None, ge=1, le=500),
    services: SyncServices = Depends(get_services),
) -> SweepResult:
    return await services.sweeper.sweep_unsynced(limit or services.settings.SYNC_SWEEP_BATCH_SIZE)


@router.post("/inventory/batch-push", response_model=InventoryBatchResult)
async def inventory_batch_push(
    limit: int | None = Query(default=None, ge=1, le=500),
    services: SyncServices = Depends(get_services),
) -> InventoryBatchResult:
    return await services.inventory.batch_push(limit or services.settings.INVENTORY_BATCH_SIZE)


# ── Statistics ───────────────────────────────────────────────────────────────


@router.get("/stats", response_model=StatsResponse)
async def stats(
    since: datetime | None = Query(default=None),
    services: SyncServices = Depends(get_services),
) -> StatsResponse:
    """Queue and inventory statistics; defaults to the last 24 hours."""
    return StatsResponse(
        queue=await services.queue.stats(since),
        inventory=await services.inventory.stats(since),
    )
