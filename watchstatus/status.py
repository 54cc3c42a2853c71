import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class WatchStatus(str, enum.Enum):
    """Watch status vocabulary. Episodes only ever hold NOT_WATCHED or WATCHED."""

    NOT_WATCHED = "NOT_WATCHED"
    WATCHING = "WATCHING"
    WATCHED = "WATCHED"
    UP_TO_DATE = "UP_TO_DATE"


EPISODE_STATUSES = frozenset({WatchStatus.NOT_WATCHED, WatchStatus.WATCHED})


class EntityType(str, enum.Enum):
    SHOW = "show"
    SEASON = "season"
    EPISODE = "episode"


class Outcome(str, enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ABORTED = "aborted"


def collapse_to_episode_status(status: WatchStatus) -> WatchStatus:
    """Episode status for a show/season target: anything but NOT_WATCHED means WATCHED."""
    if status == WatchStatus.NOT_WATCHED:
        return WatchStatus.NOT_WATCHED
    return WatchStatus.WATCHED


@dataclass
class StatusChange:
    """One persisted status transition."""
    entity_type: EntityType
    entity_id: int
    previous: Optional[WatchStatus]
    current: WatchStatus
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "previous": self.previous.value if self.previous else None,
            "current": self.current.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CascadeResult:
    """Result of a mutating engine call.

    Truthy only when the operation committed. ``affected`` lists the
    (profile_id, show_id) pairs whose derived read caches are now stale.
    """
    outcome: Outcome
    changes: list[StatusChange] = field(default_factory=list)
    affected: frozenset[tuple[int, int]] = frozenset()

    @property
    def success(self) -> bool:
        return self.outcome == Outcome.OK

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, profile_id: int, show_id: int, changes: Optional[list[StatusChange]] = None) -> "CascadeResult":
        return cls(Outcome.OK, changes or [], frozenset({(profile_id, show_id)}))

    @classmethod
    def not_found(cls) -> "CascadeResult":
        return cls(Outcome.NOT_FOUND)

    @classmethod
    def aborted(cls) -> "CascadeResult":
        return cls(Outcome.ABORTED)

    def merge(self, other: "CascadeResult") -> "CascadeResult":
        """Combine two results; the merged outcome is OK only if both are."""
        outcome = self.outcome if self.outcome != Outcome.OK else other.outcome
        return CascadeResult(outcome, self.changes + other.changes, self.affected | other.affected)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "changes": [c.to_dict() for c in self.changes],
            "affected": [
                {"profile_id": profile_id, "show_id": show_id}
                for profile_id, show_id in sorted(self.affected)
            ],
        }
