"""Sync queue -- durable at-least-once delivery with exponential backoff.

State machine::

    pending  -> success | retrying
    retrying -> retrying | success | failed

A failed attempt increments attempt_count; once it reaches max_attempts the
task is failed with "Max attempts reached: <reason>", otherwise it is
rescheduled base_delay * 2^(attempt_count - 1) from now. A handler that
raises SkippedNotQualifying ends the task as success with a distinct
"skipped" outcome in logs and metrics.

Exports:
    SyncQueue: enqueue / dispatch / retry_task / stats / list_tasks.
    RouteKey, TaskHandler: routing table types.
    retry_delay: Pure backoff function.
"""

from __future__ import annotations

import os
import socket
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import structlog

from src.storesync.core.monitoring import sync_tasks_claimed, track_sync_task
from src.storesync.errors import RoutingError, SkippedNotQualifying
from src.storesync.queue.repository import SyncTaskRepository
from src.storesync.queue.schemas import (
    DispatchResult,
    SyncStats,
    SyncTaskCreate,
    SyncTaskFilter,
    SyncTaskPage,
    SyncTaskRead,
    TaskOutcome,
)
from src.storesync.schemas import AdapterResult

logger = structlog.get_logger(__name__)

# (entity_type, target_service) or (entity_type, target_service, target_entity_type)
RouteKey = tuple[str, ...]
TaskHandler = Callable[[SyncTaskRead], Awaitable[AdapterResult]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def retry_delay(attempt: int, base: timedelta, cap: timedelta | None = None) -> timedelta:
    """Delay before the next attempt after ``attempt`` failures (attempt >= 1).

    base * 2^(attempt-1), optionally capped: 5m, 10m, 20m, 40m, ...
    """
    delay = base * (2 ** max(attempt - 1, 0))
    if cap is not None and delay > cap:
        return cap
    return delay


class TaskNotRetryable(ValueError):
    """Operator retry requested for a task that is pending or already succeeded."""


class SyncQueue:
    """Dispatches sync tasks to adapters through a routing table.

    Args:
        repository: Task persistence.
        routes: Handler per RouteKey. A three-part key (with
            target_entity_type) takes precedence over the two-part key.
        max_attempts: Default attempt budget for new tasks.
        base_delay: First retry delay; doubles on every further failure.
        max_delay: Optional upper bound on a single retry delay.
        claim_lease: Age after which another dispatcher may re-claim a task.
            Must exceed the longest single task, which the per-request HTTP
            timeouts bound.
        clock: Callable returning the current UTC time.
        worker_id: Claim owner label; defaults to host:pid.
    """

    def __init__(
        self,
        repository: SyncTaskRepository,
        routes: dict[RouteKey, TaskHandler],
        max_attempts: int = 5,
        base_delay: timedelta = timedelta(minutes=5),
        max_delay: timedelta | None = None,
        claim_lease: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = _utcnow,
        worker_id: str | None = None,
    ) -> None:
        self._repository = repository
        self._routes = dict(routes)
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._claim_lease = claim_lease
        self._clock = clock
        self._worker_id = worker_id or _default_worker_id()

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def resolve(self, task: SyncTaskRead) -> TaskHandler:
        """Look up the handler for a task.

        Raises:
            RoutingError: No handler for the task's entity type and service.
        """
        entity_type = task.entity_type.value
        service = task.target_service.value
        if task.target_entity_type:
            handler = self._routes.get((entity_type, service, task.target_entity_type))
            if handler is not None:
                return handler
        handler = self._routes.get((entity_type, service))
        if handler is None:
            raise RoutingError(entity_type, service, task.target_entity_type)
        return handler

    # ── Producer side ───────────────────────────────────────────────────────

    async def enqueue(self, task_spec: SyncTaskCreate) -> str:
        """Persist a new pending task and return its id."""
        task = await self._repository.enqueue(task_spec, self._max_attempts)
        logger.info(
            "sync_queue.enqueued",
            task_id=task.id,
            entity_type=task.entity_type.value,
            entity_id=task.entity_id,
            operation=task.operation.value,
            target_service=task.target_service.value,
        )
        return task.id

    # ── Consumer side ───────────────────────────────────────────────────────

    async def dispatch(self, batch_size: int = 20) -> DispatchResult:
        """Run up to ``batch_size`` due tasks, claiming each one just before it runs.

        A task is claimed only after the previous one has finished, so the
        claim lease has to outlast a single task rather than the whole batch.
        """
        result = DispatchResult()

        while result.claimed < batch_size:
            claimed = await self._repository.claim_due(
                1,
                self._worker_id,
                self._clock(),
                self._claim_lease,
            )
            if not claimed:
                break
            task = claimed[0]
            result.claimed += 1

            outcome = await self._execute(task)
            if outcome == TaskOutcome.success:
                result.succeeded += 1
            elif outcome == TaskOutcome.skipped:
                result.skipped += 1
            elif outcome == TaskOutcome.retrying:
                result.retrying += 1
            else:
                result.failed += 1

        sync_tasks_claimed.set(result.claimed)
        if result.claimed:
            logger.info("sync_queue.dispatch_complete", **result.model_dump())
        return result

    async def _execute(self, task: SyncTaskRead) -> TaskOutcome:
        log = logger.bind(
            task_id=task.id,
            entity_type=task.entity_type.value,
            entity_id=task.entity_id,
            target_service=task.target_service.value,
            attempt=task.attempt_count + 1,
        )

        async with track_sync_task(task.entity_type.value, task.target_service.value) as tracker:
            try:
                handler = self.resolve(task)
                adapter_result = await handler(task)
            except SkippedNotQualifying as exc:
                await self._repository.mark_success(
                    task.id,
                    self._worker_id,
                    self._clock(),
                    external_id=None,
                    request_payload=None,
                    response_payload={"skipped": True, "reason": exc.reason},
                )
                tracker["outcome"] = TaskOutcome.skipped.value
                log.info("sync_queue.task_skipped", reason=exc.reason)
                return TaskOutcome.skipped
            except Exception as exc:
                outcome = await self._record_failure(task, exc)
                tracker["outcome"] = outcome.value
                if outcome == TaskOutcome.failed:
                    log.error("sync_queue.task_failed", error=str(exc), error_type=type(exc).__name__)
                else:
                    log.warning("sync_queue.task_retrying", error=str(exc), error_type=type(exc).__name__)
                return outcome

            await self._repository.mark_success(
                task.id,
                self._worker_id,
                self._clock(),
                external_id=adapter_result.external_id,
                request_payload=adapter_result.request_payload,
                response_payload=adapter_result.response_payload,
            )
            tracker["outcome"] = TaskOutcome.success.value
            log.info("sync_queue.task_succeeded", external_id=adapter_result.external_id)
            return TaskOutcome.success

    async def _record_failure(self, task: SyncTaskRead, exc: Exception) -> TaskOutcome:
        reason = str(exc) or type(exc).__name__
        attempt = task.attempt_count + 1
        now = self._clock()

        if attempt >= task.max_attempts:
            await self._repository.mark_failed(
                task.id,
                self._worker_id,
                now,
                attempt_count=attempt,
                error_message=f"Max attempts reached: {reason}",
            )
            return TaskOutcome.failed

        await self._repository.mark_retrying(
            task.id,
            self._worker_id,
            attempt_count=attempt,
            next_retry_at=now + retry_delay(attempt, self._base_delay, self._max_delay),
            error_message=reason,
        )
        return TaskOutcome.retrying

    # ── Operator surface ────────────────────────────────────────────────────

    async def retry_task(self, task_id: str) -> SyncTaskRead | None:
        """Re-open a failed or retrying task with a fresh attempt budget.

        Returns None when the task does not exist.

        Raises:
            TaskNotRetryable: The task is pending or already succeeded.
        """
        task = await self._repository.reset_for_retry(task_id, self._clock())
        if task is not None:
            logger.info("sync_queue.task_reset", task_id=task_id)
            return task

        existing = await self._repository.get(task_id)
        if existing is None:
            return None
        raise TaskNotRetryable(f"Task {task_id} is {existing.status.value}; only failed or retrying tasks can be retried")

    async def get_task(self, task_id: str) -> SyncTaskRead | None:
        return await self._repository.get(task_id)

    async def list_tasks(self, filters: SyncTaskFilter) -> SyncTaskPage:
        return await self._repository.list_tasks(filters)

    async def stats(self, since: datetime | None = None) -> SyncStats:
        """Counts by status and target for the window; defaults to the last 24 hours."""
        return await self._repository.stats(since or self._clock() - timedelta(hours=24))
