#!/usr/bin/env python3
"""Run one sync pass from cron or by hand.

Usage:
    uv run python scripts/run_sync.py dispatch --batch-size 20
    uv run python scripts/run_sync.py sweep --limit 50
    uv run python scripts/run_sync.py batch-push --limit 50
    uv run python scripts/run_sync.py stats --hours 24
    uv run python scripts/run_sync.py retry <task_id>

Reads DATABASE_URL and the external service settings from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from datetime import datetime, timedelta, timezone

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.storesync.config import get_settings  # noqa: E402
from src.storesync.core.database import close_db  # noqa: E402
from src.storesync.core.logging import configure_structlog  # noqa: E402
from src.storesync.queue.service import TaskNotRetryable  # noqa: E402
from src.storesync.services import SyncServices, build_services  # noqa: E402

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    services: SyncServices = build_services(settings)

    try:
        if args.command == "dispatch":
            result = await services.queue.dispatch(args.batch_size or settings.SYNC_DISPATCH_BATCH_SIZE)
            print(json.dumps(result.model_dump(), indent=2))
        elif args.command == "sweep":
            result = await services.sweeper.sweep_unsynced(args.limit or settings.SYNC_SWEEP_BATCH_SIZE)
            print(json.dumps(result.model_dump(), indent=2))
        elif args.command == "batch-push":
            result = await services.inventory.batch_push(args.limit or settings.INVENTORY_BATCH_SIZE)
            print(json.dumps(result.model_dump(), indent=2))
            return 1 if result.errored else 0
        elif args.command == "stats":
            since = datetime.now(timezone.utc) - timedelta(hours=args.hours)
            queue_stats = await services.queue.stats(since)
            inventory_stats = await services.inventory.stats(since)
            print(json.dumps(
                {
                    "queue": queue_stats.model_dump(mode="json"),
                    "inventory": inventory_stats.model_dump(mode="json"),
                },
                indent=2,
            ))
        elif args.command == "retry":
            try:
                task = await services.queue.retry_task(args.task_id)
            except TaskNotRetryable as exc:
                print(str(exc), file=sys.stderr)
                return 1
            if task is None:
                print(f"Task not found: {args.task_id}", file=sys.stderr)
                return 1
            print(f"Task {task.id} reset to {task.status.value}")
    finally:
        await close_db()

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Storefront sync runner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    dispatch = subparsers.add_parser("dispatch", help="Claim and run due sync tasks")
    dispatch.add_argument("--batch-size", type=int, default=None, help="Tasks to claim")

    sweep = subparsers.add_parser("sweep", help="Enqueue unsynced orders, quotes and submissions")
    sweep.add_argument("--limit", type=int, default=None, help="Records per kind")

    batch_push = subparsers.add_parser("batch-push", help="Push changed variants to accounting")
    batch_push.add_argument("--limit", type=int, default=None, help="Variants to push")

    stats = subparsers.add_parser("stats", help="Print queue and inventory statistics")
    stats.add_argument("--hours", type=int, default=24, help="Window size in hours")

    retry = subparsers.add_parser("retry", help="Re-open a failed task")
    retry.add_argument("task_id", help="Sync task id")

    args = parser.parse_args()
    configure_structlog()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
