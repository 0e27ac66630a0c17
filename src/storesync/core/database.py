"""Async SQLAlchemy engine and declarative bases.

Provides:
- SyncBase: Declarative base for tables owned by the sync service
  (sync_tasks, oauth_credentials, inventory_sync_logs). Managed by Alembic.
- StorefrontBase: Declarative base for storefront tables this service reads
  and annotates with external ids. Owned by the storefront, never migrated here.
- get_session(): Async generator yielding an AsyncSession (session_factory pattern)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.storesync.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=10,
            max_overflow=5,
            pool_pre_ping=True,
            echo=False,
        )
    return _engine


# ── Declarative Bases ───────────────────────────────────────────────────────

sync_metadata = MetaData()
storefront_metadata = MetaData()


class SyncBase(DeclarativeBase):
    """Base class for tables owned and migrated by the sync service."""

    metadata = sync_metadata


class StorefrontBase(DeclarativeBase):
    """Base class for storefront tables (external collaborator).

    Only the columns the sync subsystem reads or writes are mapped.
    """

    metadata = storefront_metadata


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the shared engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Lifecycle ───────────────────────────────────────────────────────────────


async def init_db() -> None:
    """Create the sync-owned tables if they don't exist (dev convenience)."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SyncBase.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
