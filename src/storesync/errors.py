"""Error taxonomy for the sync subsystem.

Adapters raise these; only the sync queue catches them and turns them into
task state transitions. Nothing in this package retries on its own.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every sync subsystem error."""


class AuthUnavailable(SyncError):
    """No usable credential for an external service.

    Requires an out-of-band authorization-code exchange. The queue records
    the failure like any other, but it will not heal by itself.
    """

    def __init__(self, service: str, reason: str = "no refresh token available") -> None:
        self.service = service
        self.reason = reason
        super().__init__(f"{service} authorization unavailable: {reason}")


class AdapterError(SyncError):
    """The external API rejected or failed a request.

    Attributes:
        status: Upstream HTTP status, or 0 for transport failures and timeouts.
        message: Upstream machine-readable message.
        service: "crm", "accounting" or "oauth".
    """

    def __init__(self, status: int, message: str, service: str = "") -> None:
        self.status = status
        self.message = message
        self.service = service
        prefix = f"{service} API error" if service else "API error"
        super().__init__(f"{prefix}: {status} - {message}")

    @property
    def is_transport(self) -> bool:
        return self.status == 0


class RoutingError(SyncError):
    """No handler registered for a task's (entity_type, target_service) pair."""

    def __init__(self, entity_type: str, target_service: str, target_entity_type: str = "") -> None:
        self.entity_type = entity_type
        self.target_service = target_service
        self.target_entity_type = target_entity_type
        super().__init__(
            f"Unsupported task type: {entity_type} for service {target_service}"
            + (f" ({target_entity_type})" if target_entity_type else "")
        )


class SkippedNotQualifying(SyncError):
    """The business predicate for a sync is not met.

    Reported as a terminal success with a distinct "skipped" outcome.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class RecordNotFound(SyncError):
    """A storefront record referenced by a task does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")
