"""OAuth authorization-code flow for the external services.

An operator calls /authorize (admin key required), visits the returned URL,
and the identity provider redirects back to /callback with a one-time code
and the state issued by /authorize.
"""

from __future__ import annotations

import secrets

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from src.storesync.api.deps import get_services, require_admin
from src.storesync.errors import AdapterError
from src.storesync.oauth.schemas import ExternalService
from src.storesync.services import SyncServices

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


class AuthorizeResponse(BaseModel):
    service: str
    authorization_url: str
    state: str


class CredentialStatusResponse(BaseModel):
    service: str
    configured: bool
    expires_at: str | None = None


def _pending_states(request: Request) -> dict[str, ExternalService]:
    states = getattr(request.app.state, "oauth_states", None)
    if states is None:
        states = {}
        request.app.state.oauth_states = states
    return states


@router.get(
    "/{service}/authorize",
    response_model=AuthorizeResponse,
    dependencies=[Depends(require_admin)],
)
async def authorize(
    service: ExternalService,
    request: Request,
    services: SyncServices = Depends(get_services),
) -> AuthorizeResponse:
    """Issue a state token and the provider URL to grant offline access."""
    state = secrets.token_urlsafe(24)
    _pending_states(request)[state] = service
    url = services.token_manager.authorization_url(service, state=state)
    return AuthorizeResponse(service=service.value, authorization_url=url, state=state)


@router.get("/{service}/callback", response_model=CredentialStatusResponse)
async def callback(
    service: ExternalService,
    request: Request,
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    services: SyncServices = Depends(get_services),
) -> CredentialStatusResponse:
    """Exchange the authorization code and persist the credential."""
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Authorization denied: {error}")
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing authorization code")

    expected = _pending_states(request).pop(state or "", None)
    if expected != service:
        logger.warning("oauth.callback_state_mismatch", service=service.value)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired state")

    try:
        credential = await services.token_manager.exchange_code(service, code)
    except AdapterError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Code exchange failed: {exc.message}",
        ) from exc

    return CredentialStatusResponse(
        service=service.value,
        configured=True,
        expires_at=credential.expires_at.isoformat(),
    )


@router.get(
    "/{service}/status",
    response_model=CredentialStatusResponse,
    dependencies=[Depends(require_admin)],
)
async def credential_status(
    service: ExternalService,
    services: SyncServices = Depends(get_services),
) -> CredentialStatusResponse:
    configured = await services.token_manager.is_configured(service)
    return CredentialStatusResponse(service=service.value, configured=configured)


@router.delete(
    "/{service}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
async def revoke(
    service: ExternalService,
    services: SyncServices = Depends(get_services),
) -> None:
    """Forget the stored credential; syncs to the service fail until re-authorized."""
    await services.token_manager.revoke(service)
