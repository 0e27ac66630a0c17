"""Durable sync queue: task table, dispatch state machine, sweeps, scheduling.

Exports:
    SyncQueue: enqueue / dispatch / retry_task / stats.
    SyncTaskRepository: sync_tasks persistence.
    SyncSweeper: Enqueue unsynced storefront records.
    build_routes: Default adapter routing table.
    retry_delay: Backoff schedule.
"""

from src.storesync.queue.repository import SyncTaskRepository
from src.storesync.queue.routing import build_routes
from src.storesync.queue.service import SyncQueue, retry_delay
from src.storesync.queue.sweeper import SyncSweeper

__all__ = [
    "SyncQueue",
    "SyncSweeper",
    "SyncTaskRepository",
    "build_routes",
    "retry_delay",
]
