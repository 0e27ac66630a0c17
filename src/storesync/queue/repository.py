"""SyncTask persistence -- atomic claims, state transitions, audit queries.

All transitions out of a claim are conditional on ``claimed_by`` so a
dispatcher whose lease was taken over cannot overwrite the newer outcome.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.storesync.queue.models import SyncTaskModel
from src.storesync.queue.schemas import (
    EntityType,
    SyncOperation,
    SyncStats,
    SyncTaskCreate,
    SyncTaskFilter,
    SyncTaskPage,
    SyncTaskRead,
    TargetService,
    TaskStatus,
)

logger = structlog.get_logger(__name__)


def _model_to_task(model: SyncTaskModel) -> SyncTaskRead:
    return SyncTaskRead(
        id=str(model.id),
        entity_type=EntityType(model.entity_type),
        entity_id=model.entity_id,
        operation=SyncOperation(model.operation),
        target_service=TargetService(model.target_service),
        target_entity_type=model.target_entity_type or "",
        external_id=model.external_id,
        status=TaskStatus(model.status),
        attempt_count=model.attempt_count,
        max_attempts=model.max_attempts,
        next_retry_at=model.next_retry_at,
        error_message=model.error_message,
        request_payload=model.request_payload,
        response_payload=model.response_payload,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_at=model.completed_at,
    )


def _as_uuid(task_id: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(task_id))
    except ValueError:
        return None


class SyncTaskRepository:
    """Async repository for the sync_tasks table.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def enqueue(self, task: SyncTaskCreate, max_attempts: int) -> SyncTaskRead:
        async for session in self._session_factory():
            model = SyncTaskModel(
                entity_type=task.entity_type.value,
                entity_id=task.entity_id,
                operation=task.operation.value,
                target_service=task.target_service.value,
                target_entity_type=task.target_entity_type,
                status=TaskStatus.pending.value,
                attempt_count=0,
                max_attempts=task.max_attempts or max_attempts,
                request_payload=task.request_payload,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model)
            return _model_to_task(model)

    async def get(self, task_id: str) -> SyncTaskRead | None:
        key = _as_uuid(task_id)
        if key is None:
            return None
        async for session in self._session_factory():
            model = await session.get(SyncTaskModel, key)
            return _model_to_task(model) if model is not None else None

    # ── Claiming ────────────────────────────────────────────────────────────

    async def claim_due(
        self,
        batch_size: int,
        worker_id: str,
        now: datetime,
        lease: timedelta,
    ) -> list[SyncTaskRead]:
        """Atomically claim up to ``batch_size`` runnable tasks.

        Runnable: pending, or retrying with next_retry_at <= now; and either
        unclaimed or holding a claim older than ``lease``. Rows locked by a
        concurrent claimer are skipped rather than waited on.
        """
        stale_before = now - lease
        async for session in self._session_factory():
            stmt = (
                select(SyncTaskModel)
                .where(
                    or_(
                        SyncTaskModel.status == TaskStatus.pending.value,
                        and_(
                            SyncTaskModel.status == TaskStatus.retrying.value,
                            SyncTaskModel.next_retry_at <= now,
                        ),
                    ),
                    or_(
                        SyncTaskModel.claimed_at.is_(None),
                        SyncTaskModel.claimed_at < stale_before,
                    ),
                )
                .order_by(SyncTaskModel.created_at)
                .limit(batch_size)
                .with_for_update(skip_locked=True)
            )
            models = list((await session.execute(stmt)).scalars().all())
            for model in models:
                model.claimed_by = worker_id
                model.claimed_at = now
            await session.commit()

            if models:
                logger.debug("sync_tasks.claimed", worker_id=worker_id, count=len(models))
            return [_model_to_task(model) for model in models]

    # ── Transitions ─────────────────────────────────────────────────────────

    async def _finish_claim(self, task_id: str, worker_id: str, values: dict[str, Any]) -> bool:
        async for session in self._session_factory():
            result = await session.execute(
                update(SyncTaskModel)
                .where(
                    SyncTaskModel.id == _as_uuid(task_id),
                    SyncTaskModel.claimed_by == worker_id,
                )
                .values(claimed_by=None, claimed_at=None, **values)
            )
            await session.commit()
            if result.rowcount == 0:
                logger.warning("sync_tasks.claim_lost", task_id=task_id, worker_id=worker_id)
                return False
            return True

    async def mark_success(
        self,
        task_id: str,
        worker_id: str,
        now: datetime,
        external_id: str | None,
        request_payload: dict[str, Any] | None,
        response_payload: dict[str, Any] | None,
    ) -> bool:
        values: dict[str, Any] = {
            "status": TaskStatus.success.value,
            "external_id": external_id,
            "next_retry_at": None,
            "error_message": None,
            "response_payload": response_payload,
            "completed_at": now,
        }
        if request_payload is not None:
            values["request_payload"] = request_payload
        return await self._finish_claim(task_id, worker_id, values)

    async def mark_retrying(
        self,
        task_id: str,
        worker_id: str,
        attempt_count: int,
        next_retry_at: datetime,
        error_message: str,
    ) -> bool:
        return await self._finish_claim(
            task_id,
            worker_id,
            {
                "status": TaskStatus.retrying.value,
                "attempt_count": attempt_count,
                "next_retry_at": next_retry_at,
                "error_message": error_message,
            },
        )

    async def mark_failed(
        self,
        task_id: str,
        worker_id: str,
        now: datetime,
        attempt_count: int,
        error_message: str,
    ) -> bool:
        return await self._finish_claim(
            task_id,
            worker_id,
            {
                "status": TaskStatus.failed.value,
                "attempt_count": attempt_count,
                "next_retry_at": None,
                "error_message": error_message,
                "completed_at": now,
            },
        )

    async def reset_for_retry(self, task_id: str, now: datetime) -> SyncTaskRead | None:
        """Re-open a failed or retrying task for immediate redelivery.

        Returns None when the task does not exist or is not in a retryable state.
        """
        key = _as_uuid(task_id)
        if key is None:
            return None
        async for session in self._session_factory():
            result = await session.execute(
                update(SyncTaskModel)
                .where(
                    SyncTaskModel.id == key,
                    SyncTaskModel.status.in_([TaskStatus.failed.value, TaskStatus.retrying.value]),
                )
                .values(
                    status=TaskStatus.retrying.value,
                    attempt_count=0,
                    next_retry_at=now,
                    error_message=None,
                    response_payload=None,
                    completed_at=None,
                    claimed_by=None,
                    claimed_at=None,
                )
                .returning(SyncTaskModel)
            )
            model = result.scalar_one_or_none()
            await session.commit()
            return _model_to_task(model) if model is not None else None

    # ── Queries ─────────────────────────────────────────────────────────────

    async def latest_task_status(
        self,
        entity_type: EntityType,
        entity_id: str,
        target_service: TargetService,
    ) -> TaskStatus | None:
        """Status of the newest task for the entity and service, or None if it has none."""
        async for session in self._session_factory():
            stmt = (
                select(SyncTaskModel.status)
                .where(
                    SyncTaskModel.entity_type == entity_type.value,
                    SyncTaskModel.entity_id == entity_id,
                    SyncTaskModel.target_service == target_service.value,
                )
                .order_by(SyncTaskModel.created_at.desc())
                .limit(1)
            )
            status = (await session.execute(stmt)).scalar_one_or_none()
            return TaskStatus(status) if status is not None else None

    async def list_tasks(self, filters: SyncTaskFilter) -> SyncTaskPage:
        """Newest-first page of tasks matching the filters."""
        conditions = []
        if filters.status is not None:
            conditions.append(SyncTaskModel.status == filters.status.value)
        if filters.entity_type is not None:
            conditions.append(SyncTaskModel.entity_type == filters.entity_type.value)
        if filters.operation is not None:
            conditions.append(SyncTaskModel.operation == filters.operation.value)
        if filters.target_service is not None:
            conditions.append(SyncTaskModel.target_service == filters.target_service.value)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    SyncTaskModel.entity_id.ilike(pattern),
                    SyncTaskModel.error_message.ilike(pattern),
                )
            )

        async for session in self._session_factory():
            count_stmt = select(func.count()).select_from(SyncTaskModel).where(*conditions)
            total = (await session.execute(count_stmt)).scalar_one()

            stmt = (
                select(SyncTaskModel)
                .where(*conditions)
                .order_by(SyncTaskModel.created_at.desc())
                .offset((filters.page - 1) * filters.page_size)
                .limit(filters.page_size)
            )
            models = (await session.execute(stmt)).scalars().all()
            return SyncTaskPage(
                items=[_model_to_task(model) for model in models],
                total=total,
                page=filters.page,
                page_size=filters.page_size,
            )

    async def stats(self, since: datetime) -> SyncStats:
        async for session in self._session_factory():
            stmt = (
                select(
                    SyncTaskModel.status,
                    SyncTaskModel.target_service,
                    SyncTaskModel.target_entity_type,
                    func.count(),
                )
                .where(SyncTaskModel.created_at >= since)
                .group_by(
                    SyncTaskModel.status,
                    SyncTaskModel.target_service,
                    SyncTaskModel.target_entity_type,
                )
            )
            rows = (await session.execute(stmt)).all()

            stats = SyncStats(since=since, by_status={s.value: 0 for s in TaskStatus})
            for status, service, target_entity_type, count in rows:
                stats.total += count
                stats.by_status[status] = stats.by_status.get(status, 0) + count
                key = f"{service}/{target_entity_type}" if target_entity_type else service
                stats.by_target[key] = stats.by_target.get(key, 0) + count

            last_success = await session.execute(
                select(func.max(SyncTaskModel.completed_at)).where(
                    SyncTaskModel.status == TaskStatus.success.value,
                    SyncTaskModel.created_at >= since,
                )
            )
            stats.last_success_at = last_success.scalar_one_or_none()
            return stats
