"""Inventory reconciliation audit log (append-only)."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storesync.core.database import SyncBase


class InventorySyncLogModel(SyncBase):
    """One push or pull of a variant's stock level.

    Rows are never updated; they feed the inventory statistics only.
    """

    __tablename__ = "inventory_sync_logs"
    __table_args__ = (Index("ix_inventory_sync_logs_created_at", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    variant_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(20), nullable=False)
    local_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remote_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    difference: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
