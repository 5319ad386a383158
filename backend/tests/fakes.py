"""
Fake Implementations for Testing

Provides in-memory collaborators for the check coordinator so cycles run
without network access, files or real sleeping.
"""

import asyncio
import copy
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

from banwatch.monitor.models import (
    DeletionEvent,
    EntityRecord,
    EntityStatus,
    LeaderboardEntry,
    ProbeResult,
    RatingSample,
    RestoredEvent,
    SanctionEvent,
    StoreState,
)

ACTIVE = ProbeResult(accessible=True)
BANNED = ProbeResult(accessible=True, banned=True)
GONE = ProbeResult.inaccessible()


def suspended_until(until: datetime) -> ProbeResult:
    return ProbeResult(accessible=True, suspended=True, suspended_until=until)


def make_entry(entity_id: str, rank: int, rating: int = 2000, country_code: str = "SE") -> LeaderboardEntry:
    return LeaderboardEntry(
        entity_id=entity_id,
        display_name=f"player-{entity_id}",
        rating=rating,
        rank=rank,
        country_code=country_code,
    )


def make_record(
    last_seen_at: datetime,
    status: EntityStatus = EntityStatus.ACTIVE,
    rank: int = 10,
    rating: int = 2000,
    **kwargs,
) -> EntityRecord:
    return EntityRecord(
        display_name=kwargs.pop("display_name", "tracked"),
        country_code=kwargs.pop("country_code", "SE"),
        first_seen_at=kwargs.pop("first_seen_at", last_seen_at),
        last_seen_at=last_seen_at,
        status=status,
        rating_history=[RatingSample(rating=rating, rank=rank, observed_at=last_seen_at)],
        **kwargs,
    )


# ======================== FAKE INFRASTRUCTURE ========================

class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


class FakeStore:
    """Store keeping state in memory; load/save hand out copies like a real store."""

    def __init__(self, state: Optional[StoreState] = None):
        self.state = state or StoreState()
        self.save_count = 0

    def load(self) -> StoreState:
        return copy.deepcopy(self.state)

    def save(self, state: StoreState):
        self.state = copy.deepcopy(state)
        self.save_count += 1


class FakeFetcher:
    """Leaderboard fetcher returning a fixed snapshot and tracking overlap."""

    def __init__(self, snapshot: Sequence[LeaderboardEntry]):
        self.snapshot = list(snapshot)
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def fetch_snapshot(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            return list(self.snapshot)
        finally:
            self.active -= 1


class ScriptedProber:
    """Prober answering from a script; players not in the script are active."""

    def __init__(self, script: Optional[Dict[str, Union[ProbeResult, Exception]]] = None):
        self.script = dict(script or {})
        self.calls: List[str] = []

    async def probe(self, entity_id: str) -> ProbeResult:
        self.calls.append(entity_id)
        answer = self.script.get(entity_id, ACTIVE)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeNotifier:
    """Notifier recording every call."""

    def __init__(self):
        self.bans: List[List[SanctionEvent]] = []
        self.unbans: List[RestoredEvent] = []
        self.deletions: List[List[DeletionEvent]] = []
        self.status_messages: List[Tuple[str, bool]] = []
        self.closed = False

    async def notify_ban(self, events):
        self.bans.append(list(events))

    async def notify_unban(self, event):
        self.unbans.append(event)

    async def notify_deletion(self, events):
        self.deletions.append(list(events))

    async def notify_status_message(self, text: str, is_error: bool = False):
        self.status_messages.append((text, is_error))

    async def close(self):
        self.closed = True


class FakeAuditSink:
    """Audit sink keeping events in a list."""

    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)


class FakeRatingsClient:
    """API client stand-in answering ``get_ratings`` calls from a queue of pages or errors."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: List[Tuple[int, int]] = []

    async def get_ratings(self, offset: int, limit: int):
        self.calls.append((offset, limit))
        if not self.responses:
            return []
        answer = self.responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeUserClient:
    """API client stand-in answering ``get_user`` calls per player."""

    def __init__(self, profiles: Dict[str, Union[dict, Exception]]):
        self.profiles = profiles

    async def get_user(self, entity_id: str):
        answer = self.profiles[entity_id]
        if isinstance(answer, Exception):
            raise answer
        return answer
