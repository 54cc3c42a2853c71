"""Error types raised by the watch status engine.

Expected conditions (show not favorited, cascade step matched nothing) are
reported on results as an ``Outcome``; the exceptions below are used where
control flow has to leave a unit of work or a lookup has nothing to return.
"""

from typing import Any, Optional


class WatchStatusError(Exception):
    """Base class for all engine errors.

    Carries a context dictionary for structured logging.
    """

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    def with_context(self, **kwargs: Any) -> "WatchStatusError":
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "context": self.context,
        }


class NotFoundError(WatchStatusError):
    """No status row exists for the profile and entity."""

    def __init__(self, entity_type: str, entity_id: int, profile_id: int):
        super().__init__(
            f"No {entity_type} watch status for profile {profile_id} and {entity_type} {entity_id}",
            context={"entity_type": entity_type, "entity_id": entity_id, "profile_id": profile_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.profile_id = profile_id


class CascadeAbortedError(WatchStatusError):
    """A cascade step matched zero rows; the unit of work must roll back."""

    def __init__(self, step: str, context: Optional[dict[str, Any]] = None):
        ctx = context or {}
        ctx["step"] = step
        super().__init__(f"Cascade aborted at step '{step}': no rows affected", context=ctx)
        self.step = step


class InvalidStatusError(WatchStatusError, ValueError):
    """Status value is not allowed for the entity type."""

    def __init__(self, status: str, entity_type: str):
        super().__init__(
            f"Status {status!r} is not valid for {entity_type}",
            context={"status": status, "entity_type": entity_type},
        )


class InfrastructureError(WatchStatusError):
    """Storage or connectivity failure. The transaction has been rolled back."""

    def __init__(self, operation: str, context: Optional[dict[str, Any]] = None):
        ctx = context or {}
        ctx["operation"] = operation
        super().__init__(f"Storage failure while {operation}", context=ctx)
        self.operation = operation


class TransactionTimeoutError(InfrastructureError):
    """The unit of work exceeded the configured transaction timeout."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(operation, context={"timeout_seconds": timeout})
        self.timeout = timeout
