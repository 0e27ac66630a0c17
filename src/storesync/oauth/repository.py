"""Credential persistence with atomic per-service upsert."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.storesync.oauth.models import OAuthCredentialModel
from src.storesync.oauth.schemas import Credential, ExternalService

logger = structlog.get_logger(__name__)


def _model_to_credential(model: OAuthCredentialModel) -> Credential:
    return Credential(
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        expires_at=model.expires_at,
        scope=model.scope or "",
        token_type=model.token_type or "Bearer",
    )


class CredentialRepository:
    """Reads and writes the single credential row per external service.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def get(self, service: ExternalService) -> Credential | None:
        async for session in self._session_factory():
            stmt = select(OAuthCredentialModel).where(
                OAuthCredentialModel.service == service.value
            )
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_credential(model)

    async def upsert(self, service: ExternalService, credential: Credential) -> None:
        """Insert or overwrite the credential row keyed by service.

        Uses INSERT ... ON CONFLICT DO UPDATE so concurrent refreshes
        converge on one row.
        """
        values = {
            "service": service.value,
            "access_token": credential.access_token,
            "refresh_token": credential.refresh_token,
            "token_type": credential.token_type,
            "scope": credential.scope,
            "expires_at": credential.expires_at,
        }
        stmt = insert(OAuthCredentialModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[OAuthCredentialModel.service],
            set_={
                "access_token": stmt.excluded.access_token,
                # Keep the stored refresh token when the provider omits a new one
                "refresh_token": func.coalesce(
                    stmt.excluded.refresh_token, OAuthCredentialModel.refresh_token
                ),
                "token_type": stmt.excluded.token_type,
                "scope": stmt.excluded.scope,
                "expires_at": stmt.excluded.expires_at,
                "updated_at": func.now(),
            },
        )
        async for session in self._session_factory():
            await session.execute(stmt)
            await session.commit()
            logger.debug("oauth_credentials.upserted", service=service.value)

    async def delete(self, service: ExternalService) -> None:
        async for session in self._session_factory():
            await session.execute(
                delete(OAuthCredentialModel).where(
                    OAuthCredentialModel.service == service.value
                )
            )
            await session.commit()
