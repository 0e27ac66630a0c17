"""Pydantic schemas for OAuth credentials."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel


class ExternalService(str, Enum):
    """External systems of record, each with its own credential."""

    CRM = "crm"
    ACCOUNTING = "accounting"


class OAuthClientConfig(BaseModel):
    """Registered OAuth client for one external service."""

    client_id: str
    client_secret: str
    redirect_uri: str = ""
    scope: str = ""


class Credential(BaseModel):
    """Access/refresh token pair for one external service."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime
    scope: str = ""
    token_type: str = "Bearer"

    def expires_within(self, window: timedelta, now: datetime) -> bool:
        """True if the access token expires before ``now + window``."""
        return now >= self.expires_at - window
