"""Default routing table: (entity_type, target_service) -> adapter call."""

from __future__ import annotations

from src.storesync.accounting.adapter import AccountingSyncAdapter
from src.storesync.accounting.inventory import InventorySyncAdapter
from src.storesync.crm.adapter import CRMSyncAdapter
from src.storesync.queue.schemas import EntityType, SyncOperation, SyncTaskRead, TargetService
from src.storesync.queue.service import RouteKey, TaskHandler
from src.storesync.schemas import AdapterResult


def build_routes(
    crm: CRMSyncAdapter,
    accounting: AccountingSyncAdapter,
    inventory: InventorySyncAdapter,
) -> dict[RouteKey, TaskHandler]:
    """Wire adapter operations into the queue's routing table."""

    async def user_to_contact(task: SyncTaskRead) -> AdapterResult:
        return await crm.sync_user_registration(task.entity_id)

    async def submission_to_lead(task: SyncTaskRead) -> AdapterResult:
        return await crm.sync_contact_submission(task.entity_id)

    async def quote_to_lead(task: SyncTaskRead) -> AdapterResult:
        return await crm.sync_quote_to_lead(task.entity_id)

    async def order_to_invoice(task: SyncTaskRead) -> AdapterResult:
        return await accounting.sync_order_to_invoice(task.entity_id)

    async def quote_to_estimate(task: SyncTaskRead) -> AdapterResult:
        return await accounting.sync_quote_to_estimate(task.entity_id)

    async def inventory_item(task: SyncTaskRead) -> AdapterResult:
        if task.operation == SyncOperation.sync_pull:
            return await inventory.pull_inventory_item(task.entity_id)
        return await inventory.push_inventory_item(task.entity_id)

    crm_service = TargetService.crm.value
    accounting_service = TargetService.accounting.value
    return {
        (EntityType.user.value, crm_service): user_to_contact,
        (EntityType.contact_submission.value, crm_service): submission_to_lead,
        (EntityType.b2b_quote.value, crm_service): quote_to_lead,
        (EntityType.order.value, accounting_service): order_to_invoice,
        (EntityType.b2b_quote.value, accounting_service): quote_to_estimate,
        (EntityType.inventory.value, accounting_service): inventory_item,
    }
