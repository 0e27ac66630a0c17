"""Unit tests for the SyncQueue state machine, routing and backoff."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from prometheus_client import REGISTRY

from src.storesync.errors import AdapterError, AuthUnavailable, SkippedNotQualifying
from src.storesync.queue.routing import build_routes
from src.storesync.queue.schemas import (
    EntityType,
    SyncOperation,
    SyncTaskCreate,
    SyncTaskFilter,
    TargetService,
    TaskStatus,
)
from src.storesync.queue.service import SyncQueue, TaskNotRetryable, retry_delay
from src.storesync.schemas import AdapterResult

WORKER = "worker-a"


# ── Helpers ──────────────────────────────────────────────────────────────────


def _order_task(**overrides) -> SyncTaskCreate:
    defaults = {
        "entity_type": EntityType.order,
        "entity_id": "order-1",
        "target_service": TargetService.accounting,
        "target_entity_type": "Invoice",
    }
    defaults.update(overrides)
    return SyncTaskCreate(**defaults)


def _outcomes(outcome: str) -> float:
    return REGISTRY.get_sample_value(
        "sync_tasks_total",
        {"entity_type": "order", "target_service": "accounting", "outcome": outcome},
    ) or 0.0


@pytest.fixture
def handler() -> AsyncMock:
    return AsyncMock(return_value=AdapterResult(external_id="inv-1", request_payload={"total": 1180.0}))


@pytest.fixture
def queue(task_repo, handler, clock) -> SyncQueue:
    return SyncQueue(
        task_repo,
        {("order", "accounting"): handler},
        max_attempts=5,
        base_delay=timedelta(minutes=5),
        clock=clock,
        worker_id=WORKER,
    )


# ── Backoff ──────────────────────────────────────────────────────────────────


class TestRetryDelay:
    def test_doubles_from_base(self):
        base = timedelta(minutes=5)

        assert [retry_delay(n, base) for n in (1, 2, 3, 4)] == [
            timedelta(minutes=5),
            timedelta(minutes=10),
            timedelta(minutes=20),
            timedelta(minutes=40),
        ]

    def test_cap(self):
        assert retry_delay(10, timedelta(minutes=5), cap=timedelta(hours=1)) == timedelta(hours=1)


# ── Dispatch ─────────────────────────────────────────────────────────────────


class TestDispatch:
    async def test_success_records_external_id(self, queue, task_repo, handler, clock):
        task_id = await queue.enqueue(_order_task())
        before = _outcomes("success")

        result = await queue.dispatch(batch_size=10)

        task = task_repo.tasks[task_id]
        assert result.claimed == 1
        assert result.succeeded == 1
        assert task.status == TaskStatus.success
        assert task.external_id == "inv-1"
        assert task.request_payload == {"total": 1180.0}
        assert task.completed_at == clock.now
        assert task.attempt_count == 0
        assert _outcomes("success") == before + 1
        handler.assert_awaited_once()

    async def test_skipped_is_terminal_success(self, queue, task_repo, handler):
        """SkippedNotQualifying -> success status, 'skipped' outcome, no retry."""
        handler.side_effect = SkippedNotQualifying("Order KN-1 is not paid (pending)")
        task_id = await queue.enqueue(_order_task())
        before = _outcomes("skipped")

        result = await queue.dispatch()

        task = task_repo.tasks[task_id]
        assert result.skipped == 1
        assert task.status == TaskStatus.success
        assert task.external_id is None
        assert task.response_payload == {"skipped": True, "reason": "Order KN-1 is not paid (pending)"}
        assert _outcomes("skipped") == before + 1

    async def test_backoff_then_failed(self, queue, task_repo, handler, clock):
        """Failures reschedule at 5/10/20/40 minutes, the fifth is terminal."""
        handler.side_effect = AdapterError(503, "Service Unavailable", "accounting")
        task_id = await queue.enqueue(_order_task())
        start = clock.now

        delays = []
        for _ in range(4):
            result = await queue.dispatch()
            assert result.retrying == 1
            task = task_repo.tasks[task_id]
            assert task.status == TaskStatus.retrying
            delays.append(task.next_retry_at - clock.now)

            # Not due yet: nothing is claimed.
            assert (await queue.dispatch()).claimed == 0
            clock.now = task.next_retry_at

        assert delays == [timedelta(minutes=m) for m in (5, 10, 20, 40)]
        assert clock.now - start == timedelta(minutes=75)

        result = await queue.dispatch()

        task = task_repo.tasks[task_id]
        assert result.failed == 1
        assert task.status == TaskStatus.failed
        assert task.attempt_count == 5
        assert task.next_retry_at is None
        assert task.error_message == "Max attempts reached: accounting API error: 503 - Service Unavailable"
        assert handler.await_count == 5

        # Terminal: never claimed again.
        clock.advance(days=1)
        assert (await queue.dispatch()).claimed == 0

    async def test_per_task_attempt_budget(self, queue, task_repo, handler):
        handler.side_effect = AuthUnavailable("accounting")
        task_id = await queue.enqueue(_order_task(max_attempts=1))

        result = await queue.dispatch()

        assert result.failed == 1
        assert task_repo.tasks[task_id].error_message.startswith("Max attempts reached: accounting authorization")

    async def test_unexpected_exception_is_a_failure(self, queue, task_repo, handler):
        handler.side_effect = KeyError("invoice_id")
        task_id = await queue.enqueue(_order_task())

        result = await queue.dispatch()

        assert result.retrying == 1
        assert task_repo.tasks[task_id].attempt_count == 1

    async def test_unrouted_task_fails_through_retry_path(self, queue, task_repo):
        """No handler -> RoutingError, counted like any other failure."""
        task_id = await queue.enqueue(
            _order_task(entity_type=EntityType.user, target_service=TargetService.accounting)
        )

        result = await queue.dispatch()

        task = task_repo.tasks[task_id]
        assert result.retrying == 1
        assert task.status == TaskStatus.retrying
        assert "Unsupported task type: user for service accounting" in task.error_message

    async def test_batch_size_limits_claims(self, queue):
        for n in range(3):
            await queue.enqueue(_order_task(entity_id=f"order-{n}"))

        assert (await queue.dispatch(batch_size=2)).claimed == 2
        assert (await queue.dispatch(batch_size=2)).claimed == 1

    async def test_slow_batch_not_rerun_by_second_worker(self, task_repo, clock):
        """Tasks still waiting in a slow worker's batch are never claimed twice."""
        ran_a: list[str] = []
        ran_b: list[str] = []

        async def slow_handler(task):
            ran_a.append(task.entity_id)
            clock.advance(minutes=10)
            if task.entity_id == "o2":
                await worker_b.dispatch()
            return AdapterResult(external_id=f"inv-{task.entity_id}")

        async def fast_handler(task):
            ran_b.append(task.entity_id)
            return AdapterResult(external_id=f"inv-{task.entity_id}")

        lease = timedelta(minutes=15)
        worker_a = SyncQueue(task_repo, {("order", "accounting"): slow_handler}, claim_lease=lease, clock=clock, worker_id="a")
        worker_b = SyncQueue(task_repo, {("order", "accounting"): fast_handler}, claim_lease=lease, clock=clock, worker_id="b")
        for entity_id in ("o1", "o2", "o3"):
            await worker_a.enqueue(_order_task(entity_id=entity_id))

        result = await worker_a.dispatch()

        assert ran_a == ["o1", "o2"]
        assert ran_b == ["o3"]
        assert result.claimed == 2
        assert all(t.status == TaskStatus.success for t in task_repo.tasks.values())


class TestResolve:
    async def test_specific_route_wins(self, task_repo, clock):
        generic = AsyncMock(return_value=AdapterResult(external_id="generic"))
        specific = AsyncMock(return_value=AdapterResult(external_id="specific"))
        queue = SyncQueue(
            task_repo,
            {("order", "accounting"): generic, ("order", "accounting", "Invoice"): specific},
            clock=clock,
            worker_id=WORKER,
        )
        invoice_id = await queue.enqueue(_order_task())
        other_id = await queue.enqueue(_order_task(entity_id="order-2", target_entity_type="SalesReceipt"))

        await queue.dispatch()

        assert task_repo.tasks[invoice_id].external_id == "specific"
        assert task_repo.tasks[other_id].external_id == "generic"


# ── Operator surface ─────────────────────────────────────────────────────────


class TestRetryTask:
    async def test_failed_task_reopened(self, queue, task_repo, handler, clock):
        handler.side_effect = AdapterError(400, "bad", "accounting")
        task_id = await queue.enqueue(_order_task(max_attempts=1))
        await queue.dispatch()

        task = await queue.retry_task(task_id)

        assert task.status == TaskStatus.retrying
        assert task.attempt_count == 0
        assert task.next_retry_at == clock.now
        assert task.error_message is None

        handler.side_effect = None
        assert (await queue.dispatch()).succeeded == 1

    async def test_unknown_task(self, queue):
        assert await queue.retry_task("00000000-0000-0000-0000-000000000000") is None

    async def test_succeeded_task_not_retryable(self, queue):
        task_id = await queue.enqueue(_order_task())
        await queue.dispatch()

        with pytest.raises(TaskNotRetryable, match="success"):
            await queue.retry_task(task_id)

    async def test_pending_task_not_retryable(self, queue):
        task_id = await queue.enqueue(_order_task())

        with pytest.raises(TaskNotRetryable):
            await queue.retry_task(task_id)


class TestAudit:
    async def test_list_and_stats(self, queue, clock):
        await queue.enqueue(_order_task())
        await queue.enqueue(_order_task(entity_id="order-2"))
        await queue.dispatch(batch_size=1)

        page = await queue.list_tasks(SyncTaskFilter(status=TaskStatus.pending))
        stats = await queue.stats()

        assert page.total == 1
        assert stats.total == 2
        assert stats.by_status["success"] == 1
        assert stats.since == clock.now - timedelta(hours=24)


# ── Routing table ────────────────────────────────────────────────────────────


class TestBuildRoutes:
    @pytest.fixture
    def adapters(self):
        result = AdapterResult(external_id="x")
        crm = AsyncMock()
        accounting = AsyncMock()
        inventory = AsyncMock()
        for mock in (crm, accounting, inventory):
            for name in (
                "sync_user_registration",
                "sync_contact_submission",
                "sync_quote_to_lead",
                "sync_order_to_invoice",
                "sync_quote_to_estimate",
                "push_inventory_item",
                "pull_inventory_item",
            ):
                getattr(mock, name).return_value = result
        return crm, accounting, inventory

    async def test_b2b_quote_goes_to_both_services(self, adapters, task_repo, clock):
        crm, accounting, inventory = adapters
        queue = SyncQueue(task_repo, build_routes(crm, accounting, inventory), clock=clock, worker_id=WORKER)
        await queue.enqueue(SyncTaskCreate(entity_type=EntityType.b2b_quote, entity_id="q1", target_service=TargetService.crm))
        await queue.enqueue(
            SyncTaskCreate(entity_type=EntityType.b2b_quote, entity_id="q1", target_service=TargetService.accounting)
        )

        result = await queue.dispatch()

        assert result.succeeded == 2
        crm.sync_quote_to_lead.assert_awaited_once_with("q1")
        accounting.sync_quote_to_estimate.assert_awaited_once_with("q1")

    async def test_inventory_operation_selects_direction(self, adapters, task_repo, clock):
        crm, accounting, inventory = adapters
        queue = SyncQueue(task_repo, build_routes(crm, accounting, inventory), clock=clock, worker_id=WORKER)
        await queue.enqueue(
            SyncTaskCreate(entity_type=EntityType.inventory, entity_id="v1", target_service=TargetService.accounting)
        )
        await queue.enqueue(
            SyncTaskCreate(
                entity_type=EntityType.inventory,
                entity_id="v2",
                operation=SyncOperation.sync_pull,
                target_service=TargetService.accounting,
            )
        )

        await queue.dispatch()

        inventory.push_inventory_item.assert_awaited_once_with("v1")
        inventory.pull_inventory_item.assert_awaited_once_with("v2")
