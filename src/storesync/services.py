"""Composition root -- builds every sync component from Settings.

Nothing in the package is a process-wide singleton: the API lifespan and the
CLI each call build_services() once and pass the result around explicitly.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from datetime import timedelta

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from src.storesync.accounting.adapter import AccountingSyncAdapter
from src.storesync.accounting.client import AccountingClient
from src.storesync.accounting.inventory import InventorySyncAdapter
from src.storesync.accounting.repository import InventoryLogRepository
from src.storesync.config import Settings
from src.storesync.core.database import get_session
from src.storesync.crm.adapter import CRMSyncAdapter
from src.storesync.crm.client import CRMClient
from src.storesync.oauth.repository import CredentialRepository
from src.storesync.oauth.schemas import ExternalService
from src.storesync.oauth.token_manager import TokenManager
from src.storesync.queue.repository import SyncTaskRepository
from src.storesync.queue.routing import build_routes
from src.storesync.queue.scheduler import SyncScheduler
from src.storesync.queue.service import SyncQueue
from src.storesync.queue.sweeper import SyncSweeper
from src.storesync.storefront.repository import StorefrontRepository


@dataclass
class SyncServices:
    settings: Settings
    token_manager: TokenManager
    storefront: StorefrontRepository
    tasks: SyncTaskRepository
    crm: CRMSyncAdapter
    accounting: AccountingSyncAdapter
    inventory: InventorySyncAdapter
    queue: SyncQueue
    sweeper: SyncSweeper

    def scheduler(self) -> SyncScheduler:
        return SyncScheduler(
            queue=self.queue,
            sweeper=self.sweeper,
            inventory=self.inventory,
            dispatch_interval_seconds=self.settings.SYNC_DISPATCH_INTERVAL_SECONDS,
            dispatch_batch_size=self.settings.SYNC_DISPATCH_BATCH_SIZE,
            sweep_batch_size=self.settings.SYNC_SWEEP_BATCH_SIZE,
            inventory_batch_size=self.settings.INVENTORY_BATCH_SIZE,
        )


def build_services(
    settings: Settings,
    session_factory: Callable[..., AsyncGenerator[AsyncSession, None]] = get_session,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncServices:
    """Construct the full object graph.

    Args:
        settings: Application settings.
        session_factory: Async session generator shared by all repositories.
        transport: Optional httpx transport for every outbound client.
    """
    token_manager = TokenManager.from_settings(settings, CredentialRepository(session_factory), transport=transport)

    storefront = StorefrontRepository(session_factory)
    tasks = SyncTaskRepository(session_factory)

    crm_client = CRMClient(
        settings.CRM_API_BASE_URL,
        token_manager.token_provider(ExternalService.CRM),
        service=ExternalService.CRM.value,
        timeout=settings.EXTERNAL_API_TIMEOUT,
        token_prefix=settings.OAUTH_TOKEN_TYPE_PREFIX,
        transport=transport,
    )
    accounting_client = AccountingClient(
        settings.ACCOUNTING_API_BASE_URL,
        token_manager.token_provider(ExternalService.ACCOUNTING),
        organization_id=settings.ACCOUNTING_ORGANIZATION_ID,
        timeout=settings.EXTERNAL_API_TIMEOUT,
        token_prefix=settings.OAUTH_TOKEN_TYPE_PREFIX,
        transport=transport,
    )

    crm = CRMSyncAdapter(crm_client, storefront)
    accounting = AccountingSyncAdapter(
        accounting_client,
        storefront,
        company_tax_id=settings.COMPANY_TAX_ID or None,
        company_name=settings.COMPANY_NAME,
        currency_code=settings.CURRENCY_CODE,
    )
    inventory = InventorySyncAdapter(accounting_client, storefront, InventoryLogRepository(session_factory))

    queue = SyncQueue(
        tasks,
        build_routes(crm, accounting, inventory),
        max_attempts=settings.SYNC_MAX_ATTEMPTS,
        base_delay=timedelta(minutes=settings.SYNC_BASE_RETRY_DELAY_MINUTES),
        max_delay=timedelta(minutes=settings.SYNC_MAX_RETRY_DELAY_MINUTES),
        claim_lease=timedelta(minutes=settings.SYNC_CLAIM_LEASE_MINUTES),
    )

    return SyncServices(
        settings=settings,
        token_manager=token_manager,
        storefront=storefront,
        tasks=tasks,
        crm=crm,
        accounting=accounting,
        inventory=inventory,
        queue=queue,
        sweeper=SyncSweeper(queue, tasks, storefront),
    )
