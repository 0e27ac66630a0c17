"""Batch sweep that enqueues tasks for storefront records nobody enqueued.

Covers paid orders without an invoice id, approved quotes without an
estimate id and new contact-form submissions. An entity that already has a
pending or retrying task for the same service is left alone, and so is one
whose latest task for that service failed: failed is terminal until an
operator retries it.
"""

from __future__ import annotations

import structlog

from src.storesync.queue.repository import SyncTaskRepository
from src.storesync.queue.schemas import (
    OPEN_STATUSES,
    EntityType,
    SweepResult,
    SyncOperation,
    SyncTaskCreate,
    TargetService,
    TaskStatus,
)
from src.storesync.queue.service import SyncQueue
from src.storesync.storefront.repository import StorefrontRepository

logger = structlog.get_logger(__name__)


class SyncSweeper:
    """Finds unsynced storefront records and enqueues them.

    Args:
        queue: Queue used to enqueue new tasks.
        tasks: Task repository, used to look up the latest task per entity.
        storefront: Source of unsynced record ids.
    """

    def __init__(
        self,
        queue: SyncQueue,
        tasks: SyncTaskRepository,
        storefront: StorefrontRepository,
    ) -> None:
        self._queue = queue
        self._tasks = tasks
        self._storefront = storefront

    async def _enqueue_missing(
        self,
        entity_ids: list[str],
        entity_type: EntityType,
        target_service: TargetService,
        target_entity_type: str,
        result: SweepResult,
    ) -> None:
        for entity_id in entity_ids:
            latest = await self._tasks.latest_task_status(entity_type, entity_id, target_service)
            if latest in OPEN_STATUSES:
                result.already_open += 1
                continue
            if latest == TaskStatus.failed:
                # Only an operator retry re-opens a failed entity.
                result.already_failed += 1
                continue
            await self._queue.enqueue(
                SyncTaskCreate(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    operation=SyncOperation.create,
                    target_service=target_service,
                    target_entity_type=target_entity_type,
                )
            )
            result.enqueued += 1

    async def sweep_unsynced(self, limit: int = 50) -> SweepResult:
        """Enqueue up to ``limit`` records of each kind."""
        result = SweepResult()

        await self._enqueue_missing(
            await self._storefront.list_unsynced_paid_orders(limit),
            EntityType.order,
            TargetService.accounting,
            "Invoice",
            result,
        )
        await self._enqueue_missing(
            await self._storefront.list_unsynced_approved_quotes(limit),
            EntityType.b2b_quote,
            TargetService.accounting,
            "Estimate",
            result,
        )
        await self._enqueue_missing(
            await self._storefront.list_new_contact_submissions(limit),
            EntityType.contact_submission,
            TargetService.crm,
            "Lead",
            result,
        )

        logger.info(
            "sync_sweeper.complete",
            enqueued=result.enqueued,
            already_open=result.already_open,
            already_failed=result.already_failed,
        )
        return result
