"""FastAPI dependencies for the sync service.

Services are built once in the app lifespan and stored on app.state; the
dependencies here hand them to endpoints and guard operator routes.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status

from src.storesync.config import Settings, get_settings
from src.storesync.core.security import verify_admin_key
from src.storesync.services import SyncServices


def get_services(request: Request) -> SyncServices:
    """Retrieve SyncServices from app.state, 503 if not available."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync services not initialized",
        )
    return services


async def require_admin(
    x_admin_key: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject requests without the operator API key in X-Admin-Key.

    Raises:
        HTTPException(503): No admin key is configured.
        HTTPException(401): Missing or wrong key.
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured",
        )
    if not verify_admin_key(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin key",
        )
