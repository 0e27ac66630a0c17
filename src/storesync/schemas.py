"""Result type shared by the CRM and accounting adapters."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class AdapterResult(BaseModel):
    """Outcome of one successful adapter call.

    Payload snapshots are PII-masked before they are attached here; the sync
    queue stores them on the task row as-is.
    """

    external_id: str | None = None
    operation: str = "create"
    request_payload: dict[str, Any] | None = None
    response_payload: dict[str, Any] | None = None
    details: dict[str, Any] = Field(default_factory=dict)
