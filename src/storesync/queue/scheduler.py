"""Background scheduler for the sync subsystem.

Wraps an APScheduler AsyncIOScheduler with three interval jobs:
- dispatch: claim and run due sync tasks (every SYNC_DISPATCH_INTERVAL_SECONDS)
- sweep: enqueue unsynced orders, quotes and contact submissions (every 15 minutes)
- inventory batch push: push changed variants (hourly)

Job failures are logged and never stop the scheduler; the next tick runs as usual.

Exports:
    SyncScheduler: start()/stop() wrapper owned by the API lifespan.
"""

from __future__ import annotations

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.storesync.accounting.inventory import InventorySyncAdapter
from src.storesync.queue.service import SyncQueue
from src.storesync.queue.sweeper import SyncSweeper

logger = structlog.get_logger(__name__)

SWEEP_INTERVAL_MINUTES = 15
INVENTORY_PUSH_INTERVAL_HOURS = 1


class SyncScheduler:
    """Interval scheduler for dispatch, sweep and inventory batch push.

    Args:
        queue: Sync queue to dispatch.
        sweeper: Sweep of unsynced storefront records.
        inventory: Inventory adapter for the hourly batch push.
        dispatch_interval_seconds: Seconds between dispatch passes.
        dispatch_batch_size: Tasks claimed per dispatch pass.
        sweep_batch_size: Records per kind enqueued per sweep.
        inventory_batch_size: Variants per batch push.
    """

    def __init__(
        self,
        queue: SyncQueue,
        sweeper: SyncSweeper,
        inventory: InventorySyncAdapter,
        dispatch_interval_seconds: int = 60,
        dispatch_batch_size: int = 20,
        sweep_batch_size: int = 50,
        inventory_batch_size: int = 50,
    ) -> None:
        self._queue = queue
        self._sweeper = sweeper
        self._inventory = inventory
        self._dispatch_interval = dispatch_interval_seconds
        self._dispatch_batch_size = dispatch_batch_size
        self._sweep_batch_size = sweep_batch_size
        self._inventory_batch_size = inventory_batch_size
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> bool:
        """Start the scheduler. Returns False if it could not be started."""
        if self._started:
            return True

        try:
            self._scheduler = AsyncIOScheduler()

            self._scheduler.add_job(
                self._run_dispatch,
                trigger=IntervalTrigger(seconds=self._dispatch_interval),
                id="sync_dispatch",
                name="Dispatch due sync tasks",
                max_instances=1,
                coalesce=True,
            )

            self._scheduler.add_job(
                self._run_sweep,
                trigger=IntervalTrigger(minutes=SWEEP_INTERVAL_MINUTES),
                id="sync_sweep",
                name="Enqueue unsynced storefront records",
                max_instances=1,
                coalesce=True,
            )

            self._scheduler.add_job(
                self._run_inventory_push,
                trigger=IntervalTrigger(hours=INVENTORY_PUSH_INTERVAL_HOURS),
                id="inventory_batch_push",
                name="Push changed product variants to accounting",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=3600,
            )

            self._scheduler.start()
            self._started = True
            logger.info(
                "sync_scheduler.started",
                jobs=["sync_dispatch", "sync_sweep", "inventory_batch_push"],
                dispatch_interval_seconds=self._dispatch_interval,
            )
            return True

        except Exception as exc:
            logger.warning("sync_scheduler.start_failed", error=str(exc))
            return False

    def stop(self) -> None:
        """Shut down the scheduler."""
        if self._scheduler is not None and self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("sync_scheduler.stopped")

    async def _run_dispatch(self) -> None:
        try:
            await self._queue.dispatch(self._dispatch_batch_size)
        except Exception as exc:
            logger.error("sync_scheduler.dispatch_failed", error=str(exc), exc_info=True)

    async def _run_sweep(self) -> None:
        try:
            await self._sweeper.sweep_unsynced(self._sweep_batch_size)
        except Exception as exc:
            logger.error("sync_scheduler.sweep_failed", error=str(exc), exc_info=True)

    async def _run_inventory_push(self) -> None:
        try:
            await self._inventory.batch_push(self._inventory_batch_size)
        except Exception as exc:
            logger.error("sync_scheduler.inventory_push_failed", error=str(exc), exc_info=True)
