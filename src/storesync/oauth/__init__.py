"""OAuth credential lifecycle for the external CRM and accounting services.

TokenManager is the sole reader and writer of persisted credentials; every
other component only asks it for a valid access token string.
"""

from src.storesync.oauth.schemas import Credential, ExternalService, OAuthClientConfig
from src.storesync.oauth.token_manager import TokenManager

__all__ = [
    "Credential",
    "ExternalService",
    "OAuthClientConfig",
    "TokenManager",
]
