"""
Data model for tracked players, probe results, status events and check cycles.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Set, Union

from banwatch.utils.timeutil import format_timestamp, parse_timestamp


class EntityStatus(str, Enum):
    """Sanction status of a tracked player."""
    ACTIVE = "active"
    BANNED = "banned"
    SUSPENDED = "suspended"
    SUSPENSION_EXPIRED = "suspension_expired"  # suspension end passed, not yet re-probed
    DELETED_ACCOUNT = "deleted_account"  # terminal


SANCTIONED_STATUSES = frozenset({EntityStatus.BANNED, EntityStatus.SUSPENDED})
RESTORABLE_STATUSES = frozenset({
    EntityStatus.BANNED,
    EntityStatus.SUSPENDED,
    EntityStatus.SUSPENSION_EXPIRED,
})


@dataclass(frozen=True)
class RatingSample:
    """One leaderboard observation."""
    rating: Optional[int]
    rank: Optional[int]
    observed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rating": self.rating,
            "rank": self.rank,
            "observed_at": format_timestamp(self.observed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RatingSample":
        return cls(
            rating=data.get("rating"),
            rank=data.get("rank"),
            observed_at=parse_timestamp(data.get("observed_at")),
        )


@dataclass
class EntityRecord:
    """Persisted tracking state for one player."""
    display_name: str
    country_code: Optional[str]
    first_seen_at: datetime
    last_seen_at: datetime
    status: EntityStatus = EntityStatus.ACTIVE
    rating_history: List[RatingSample] = field(default_factory=list)
    sanction_started_at: Optional[datetime] = None
    suspended_until: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    restored_at: Optional[datetime] = None

    @property
    def last_sample(self) -> Optional[RatingSample]:
        return self.rating_history[-1] if self.rating_history else None

    @property
    def last_rating(self) -> Optional[int]:
        sample = self.last_sample
        return sample.rating if sample else None

    @property
    def last_rank(self) -> Optional[int]:
        sample = self.last_sample
        return sample.rank if sample else None

    def add_sample(self, sample: RatingSample, limit: int):
        """Append a sample, keeping only the ``limit`` most recent ones."""
        last = self.last_sample
        if last is not None and sample.observed_at < last.observed_at:
            # Out-of-order samples would break the chronological history
            return
        self.rating_history.append(sample)
        if len(self.rating_history) > limit:
            del self.rating_history[:len(self.rating_history) - limit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display_name": self.display_name,
            "country_code": self.country_code,
            "first_seen_at": format_timestamp(self.first_seen_at),
            "last_seen_at": format_timestamp(self.last_seen_at),
            "status": self.status.value,
            "rating_history": [s.to_dict() for s in self.rating_history],
            "sanction_started_at": format_timestamp(self.sanction_started_at),
            "suspended_until": format_timestamp(self.suspended_until),
            "deleted_at": format_timestamp(self.deleted_at),
            "restored_at": format_timestamp(self.restored_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntityRecord":
        first_seen = parse_timestamp(data.get("first_seen_at"))
        last_seen = parse_timestamp(data.get("last_seen_at")) or first_seen
        if last_seen is None:
            raise ValueError("record has no readable first_seen_at or last_seen_at")
        first_seen = first_seen or last_seen
        status = EntityStatus(data.get("status", EntityStatus.ACTIVE.value))
        suspended_until = parse_timestamp(data.get("suspended_until"))

        # suspended_until exists exactly while suspended
        if status is EntityStatus.SUSPENDED and suspended_until is None:
            status = EntityStatus.SUSPENSION_EXPIRED
        if status is not EntityStatus.SUSPENDED:
            suspended_until = None

        history = [
            RatingSample.from_dict(s)
            for s in data.get("rating_history") or []
            if parse_timestamp(s.get("observed_at")) is not None
        ]
        history.sort(key=lambda s: s.observed_at)

        return cls(
            display_name=data.get("display_name") or "",
            country_code=data.get("country_code"),
            first_seen_at=first_seen,
            last_seen_at=last_seen,
            status=status,
            rating_history=history,
            sanction_started_at=parse_timestamp(data.get("sanction_started_at")),
            suspended_until=suspended_until,
            deleted_at=parse_timestamp(data.get("deleted_at")),
            restored_at=parse_timestamp(data.get("restored_at")),
        )


@dataclass
class StoreState:
    """Everything the persistence store loads and saves."""
    entities: Dict[str, EntityRecord] = field(default_factory=dict)
    last_check_at: Optional[datetime] = None
    total_checks: int = 0


@dataclass(frozen=True)
class LeaderboardEntry:
    """A row of the ranked leaderboard."""
    entity_id: str
    display_name: str
    rating: Optional[int]
    rank: Optional[int]
    country_code: Optional[str]


@dataclass(frozen=True)
class ProbeResult:
    """What a single profile probe found out about a player."""
    accessible: bool
    banned: bool = False
    suspended: bool = False
    suspended_until: Optional[datetime] = None
    deleted: bool = False
    country_code: Optional[str] = None

    @classmethod
    def inaccessible(cls) -> "ProbeResult":
        return cls(accessible=False, deleted=True)


class SanctionKind(str, Enum):
    BANNED = "banned"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class SanctionEvent:
    """A player got banned or (re-)suspended."""
    entity_id: str
    display_name: str
    country_code: Optional[str]
    kind: SanctionKind
    previous_status: EntityStatus
    occurred_at: datetime
    last_rating: Optional[int]
    last_rank: Optional[int]
    hours_since_seen: int
    suspended_until: Optional[datetime] = None

    @property
    def event_kind(self) -> str:
        return self.kind.value

    @property
    def dedup_key(self) -> str:
        return f"{self.entity_id}:{self.event_kind}"


@dataclass(frozen=True)
class RestoredEvent:
    """A previously sanctioned player is active again."""
    entity_id: str
    display_name: str
    country_code: Optional[str]
    previous_status: EntityStatus
    occurred_at: datetime
    rating: Optional[int]
    rank: Optional[int]
    sanction_started_at: Optional[datetime] = None

    event_kind: ClassVar[str] = "restored"

    @property
    def dedup_key(self) -> str:
        return f"{self.entity_id}:{self.event_kind}"

    @property
    def sanction_duration(self) -> Optional[timedelta]:
        if self.sanction_started_at is None:
            return None
        return self.occurred_at - self.sanction_started_at

    @property
    def duration_days(self) -> Optional[int]:
        duration = self.sanction_duration
        return duration.days if duration is not None else None


@dataclass(frozen=True)
class DeletionEvent:
    """A player's account is gone (profile answers 404/403)."""
    entity_id: str
    display_name: str
    country_code: Optional[str]
    previous_status: EntityStatus
    occurred_at: datetime
    last_rating: Optional[int]
    last_rank: Optional[int]
    hours_since_seen: int

    event_kind: ClassVar[str] = "deleted"

    @property
    def dedup_key(self) -> str:
        return f"{self.entity_id}:{self.event_kind}"


StatusEvent = Union[SanctionEvent, RestoredEvent, DeletionEvent]


@dataclass
class CheckCycle:
    """
    State of one check run.

    The dedup keys and collected events live only as long as the cycle; nothing here is persisted.
    """
    started_at: datetime
    snapshot_entity_ids: Set[str] = field(default_factory=set)
    notifications_armed: bool = True
    trigger: str = "scheduled"
    event_dedup_keys: Set[str] = field(default_factory=set)
    events: List[StatusEvent] = field(default_factory=list)

    def emit(self, event: StatusEvent) -> bool:
        """Record ``event`` unless its entity/kind already fired this cycle."""
        if event.dedup_key in self.event_dedup_keys:
            return False
        self.event_dedup_keys.add(event.dedup_key)
        self.events.append(event)
        return True

    @property
    def sanctions(self) -> List[SanctionEvent]:
        return [e for e in self.events if isinstance(e, SanctionEvent)]

    @property
    def restorations(self) -> List[RestoredEvent]:
        return [e for e in self.events if isinstance(e, RestoredEvent)]

    @property
    def deletions(self) -> List[DeletionEvent]:
        return [e for e in self.events if isinstance(e, DeletionEvent)]
