"""Unit tests for SyncSweeper and SyncScheduler."""

from __future__ import annotations

from unittest.mock import AsyncMock

from src.storesync.queue.scheduler import SyncScheduler
from src.storesync.queue.schemas import EntityType, SyncTaskCreate, TargetService, TaskStatus
from src.storesync.queue.service import SyncQueue
from src.storesync.queue.sweeper import SyncSweeper


def _sweeper(task_repo, storefront, clock) -> tuple[SyncSweeper, SyncQueue]:
    queue = SyncQueue(task_repo, {}, clock=clock, worker_id="w")
    return SyncSweeper(queue, task_repo, storefront), queue


class TestSweepUnsynced:
    async def test_enqueues_each_kind(self, task_repo, storefront, clock):
        storefront.list_unsynced_paid_orders.return_value = ["o1", "o2"]
        storefront.list_unsynced_approved_quotes.return_value = ["q1"]
        storefront.list_new_contact_submissions.return_value = ["s1"]
        sweeper, _ = _sweeper(task_repo, storefront, clock)

        result = await sweeper.sweep_unsynced(limit=25)

        assert result.enqueued == 4
        kinds = {(t.entity_type, t.target_service, t.target_entity_type) for t in task_repo.tasks.values()}
        assert kinds == {
            (EntityType.order, TargetService.accounting, "Invoice"),
            (EntityType.b2b_quote, TargetService.accounting, "Estimate"),
            (EntityType.contact_submission, TargetService.crm, "Lead"),
        }
        storefront.list_unsynced_paid_orders.assert_awaited_once_with(25)

    async def test_open_task_not_duplicated(self, task_repo, storefront, clock):
        """A second sweep before dispatch enqueues nothing new."""
        storefront.list_unsynced_paid_orders.return_value = ["o1"]
        storefront.list_unsynced_approved_quotes.return_value = []
        storefront.list_new_contact_submissions.return_value = []
        sweeper, _ = _sweeper(task_repo, storefront, clock)

        await sweeper.sweep_unsynced()
        second = await sweeper.sweep_unsynced()

        assert second.enqueued == 0
        assert second.already_open == 1
        assert len(task_repo.tasks) == 1

    async def test_failed_task_blocks_new_one(self, task_repo, storefront, clock):
        """An entity whose latest task failed waits for an operator retry."""
        storefront.list_unsynced_paid_orders.return_value = ["o1"]
        storefront.list_unsynced_approved_quotes.return_value = []
        storefront.list_new_contact_submissions.return_value = []
        sweeper, queue = _sweeper(task_repo, storefront, clock)
        task_id = await queue.enqueue(
            SyncTaskCreate(entity_type=EntityType.order, entity_id="o1", target_service=TargetService.accounting)
        )
        task_repo.tasks[task_id] = task_repo.tasks[task_id].model_copy(update={"status": TaskStatus.failed})

        result = await sweeper.sweep_unsynced()

        assert result.enqueued == 0
        assert result.already_failed == 1
        assert len(task_repo.tasks) == 1

    async def test_succeeded_task_allows_new_one(self, task_repo, storefront, clock):
        storefront.list_unsynced_paid_orders.return_value = ["o1"]
        storefront.list_unsynced_approved_quotes.return_value = []
        storefront.list_new_contact_submissions.return_value = []
        sweeper, queue = _sweeper(task_repo, storefront, clock)
        task_id = await queue.enqueue(
            SyncTaskCreate(entity_type=EntityType.order, entity_id="o1", target_service=TargetService.accounting)
        )
        task_repo.tasks[task_id] = task_repo.tasks[task_id].model_copy(update={"status": TaskStatus.success})

        result = await sweeper.sweep_unsynced()

        assert result.enqueued == 1

    async def test_repeated_cycles_keep_one_task_for_failing_entity(self, task_repo, storefront, clock):
        storefront.list_unsynced_paid_orders.return_value = ["o1"]
        storefront.list_unsynced_approved_quotes.return_value = []
        storefront.list_new_contact_submissions.return_value = []
        handler = AsyncMock(side_effect=RuntimeError("accounting down"))
        queue = SyncQueue(task_repo, {("order", "accounting"): handler}, max_attempts=1, clock=clock, worker_id="w")
        sweeper = SyncSweeper(queue, task_repo, storefront)

        for _ in range(4):
            await sweeper.sweep_unsynced()
            await queue.dispatch()
            clock.advance(hours=1)

        assert len(task_repo.tasks) == 1
        assert handler.await_count == 1
        (task,) = task_repo.tasks.values()
        assert task.status == TaskStatus.failed


class TestSyncScheduler:
    async def test_registers_jobs(self):
        scheduler = SyncScheduler(AsyncMock(), AsyncMock(), AsyncMock(), dispatch_interval_seconds=30)

        assert scheduler.start() is True
        try:
            job_ids = {job.id for job in scheduler._scheduler.get_jobs()}
            assert job_ids == {"sync_dispatch", "sync_sweep", "inventory_batch_push"}
            assert scheduler.running
        finally:
            scheduler.stop()
        assert not scheduler.running

    async def test_job_failure_is_contained(self):
        queue = AsyncMock()
        queue.dispatch.side_effect = RuntimeError("db down")
        scheduler = SyncScheduler(queue, AsyncMock(), AsyncMock(), dispatch_batch_size=7)

        await scheduler._run_dispatch()

        queue.dispatch.assert_awaited_once_with(7)

    async def test_sweep_and_push_use_batch_sizes(self):
        sweeper, inventory = AsyncMock(), AsyncMock()
        scheduler = SyncScheduler(AsyncMock(), sweeper, inventory, sweep_batch_size=11, inventory_batch_size=13)

        await scheduler._run_sweep()
        await scheduler._run_inventory_push()

        sweeper.sweep_unsynced.assert_awaited_once_with(11)
        inventory.batch_push.assert_awaited_once_with(13)
