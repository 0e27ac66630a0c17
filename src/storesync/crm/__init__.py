"""CRM sync: contacts and leads in the external CRM.

Exports:
    CRMClient: Thin async client over the CRM REST API.
    CRMSyncAdapter: User, quote and contact-form sync operations.
"""

from src.storesync.crm.adapter import CRMSyncAdapter
from src.storesync.crm.client import CRMClient

__all__ = ["CRMClient", "CRMSyncAdapter"]
