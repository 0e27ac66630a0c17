"""Inventory sync log persistence."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.storesync.accounting.models import InventorySyncLogModel
from src.storesync.accounting.schemas import InventorySyncLogCreate, InventorySyncStats

logger = structlog.get_logger(__name__)


class InventoryLogRepository:
    """Append and aggregate inventory sync log rows.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def append(self, entry: InventorySyncLogCreate) -> None:
        async for session in self._session_factory():
            session.add(
                InventorySyncLogModel(
                    variant_id=entry.variant_id,
                    operation=entry.operation.value,
                    local_quantity=entry.local_quantity,
                    remote_quantity=entry.remote_quantity,
                    difference=entry.difference,
                    status=entry.status.value,
                    error_message=entry.error_message,
                )
            )
            await session.commit()

    async def stats(self, since: datetime) -> InventorySyncStats:
        """Counts by operation and status for rows created at or after ``since``."""
        async for session in self._session_factory():
            stmt = (
                select(
                    InventorySyncLogModel.operation,
                    InventorySyncLogModel.status,
                    func.count(),
                    func.max(InventorySyncLogModel.created_at),
                )
                .where(InventorySyncLogModel.created_at >= since)
                .group_by(InventorySyncLogModel.operation, InventorySyncLogModel.status)
            )
            rows = (await session.execute(stmt)).all()

            stats = InventorySyncStats()
            for operation, status, count, latest in rows:
                stats.total_syncs += count
                if operation == "push":
                    stats.push_count += count
                elif operation == "pull":
                    stats.pull_count += count
                if status == "success":
                    stats.success_count += count
                elif status == "failed":
                    stats.failed_count += count
                if latest is not None and (stats.last_sync is None or latest > stats.last_sync):
                    stats.last_sync = latest
            return stats
