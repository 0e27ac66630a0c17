"""Shared fixtures for the sync test suite.

Everything runs against in-memory fakes and httpx.MockTransport; no
database or network access is required.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.storesync.config import Settings
from tests.factories import FixedClock, InMemoryTaskRepository


@pytest.fixture
def clock() -> FixedClock:
    """Deterministic clock starting at 2026-03-02 09:00 UTC."""
    return FixedClock()


@pytest.fixture
def storefront() -> AsyncMock:
    """Mock StorefrontRepository; tests set return values per method."""
    return AsyncMock()


@pytest.fixture
def task_repo() -> InMemoryTaskRepository:
    return InMemoryTaskRepository()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        ADMIN_API_KEY="admin-secret",
        WEBHOOK_SECRET="hook-secret",
        COMPANY_TAX_ID="27AAACK1234A1Z5",
        ACCOUNTING_ORGANIZATION_ID="600123",
        CRM_CLIENT_ID="crm-client",
        CRM_CLIENT_SECRET="crm-secret",
        CRM_REDIRECT_URI="https://sync.example.com/oauth/crm/callback",
        ACCOUNTING_CLIENT_ID="acc-client",
        ACCOUNTING_CLIENT_SECRET="acc-secret",
        ACCOUNTING_REDIRECT_URI="https://sync.example.com/oauth/accounting/callback",
    )
