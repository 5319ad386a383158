"""
Status state machine.

Reconciles a player's persisted status with a fresh probe, mutates the record
and returns the status-change event (if any) accepted by the running cycle.

    active <-> banned <-> suspended -> suspension_expired -> active/banned/suspended
    any -> deleted_account (terminal)
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from banwatch.monitor.models import (
    RESTORABLE_STATUSES,
    SANCTIONED_STATUSES,
    CheckCycle,
    DeletionEvent,
    EntityRecord,
    EntityStatus,
    LeaderboardEntry,
    ProbeResult,
    RatingSample,
    RestoredEvent,
    SanctionEvent,
    SanctionKind,
    StatusEvent,
)
from banwatch.utils.timeutil import whole_hours_between

logger = logging.getLogger(__name__)


def new_record(entry: LeaderboardEntry, now: datetime) -> EntityRecord:
    """Start tracking a player first seen on the leaderboard."""
    return EntityRecord(
        display_name=entry.display_name,
        country_code=entry.country_code,
        first_seen_at=now,
        last_seen_at=now,
        rating_history=[RatingSample(rating=entry.rating, rank=entry.rank, observed_at=now)],
    )


def observe_listing(record: EntityRecord, entry: LeaderboardEntry, now: datetime, history_limit: int):
    """Refresh a record from its leaderboard row: name, country, last seen and rating history."""
    record.display_name = entry.display_name or record.display_name
    if entry.country_code:
        record.country_code = entry.country_code
    if now > record.last_seen_at:
        record.last_seen_at = now
    record.add_sample(
        RatingSample(rating=entry.rating, rank=entry.rank, observed_at=now),
        history_limit
    )


def _start_sanction(record: EntityRecord, now: datetime):
    # A ban that turns into a suspension (or a re-suspension) is one continuous sanction
    if record.status not in SANCTIONED_STATUSES or record.sanction_started_at is None:
        record.sanction_started_at = now


def _accept(cycle: CheckCycle, event: StatusEvent) -> Optional[StatusEvent]:
    if cycle.emit(event):
        return event
    logger.debug("Duplicate event suppressed", extra={"dedup_key": event.dedup_key})
    return None


def apply_probe(
    entity_id: str,
    record: EntityRecord,
    probe: ProbeResult,
    cycle: CheckCycle,
) -> Optional[StatusEvent]:
    """
    Apply one probe result to a record.

    Args:
        entity_id: Player ID
        record: Persisted record, mutated in place
        probe: Fresh probe result
        cycle: Running check cycle (clock, dedup keys, restart guard)

    Returns:
        The event accepted by the cycle, or None when nothing needs announcing
    """
    now = cycle.started_at
    previous = record.status

    if previous is EntityStatus.DELETED_ACCOUNT:
        return None

    if probe.country_code:
        record.country_code = probe.country_code

    hours_since_seen = whole_hours_between(record.last_seen_at, now)

    if probe.deleted:
        record.status = EntityStatus.DELETED_ACCOUNT
        record.deleted_at = now
        record.suspended_until = None
        logger.info("Account deleted", extra={
            "entity_id": entity_id,
            "display_name": record.display_name,
            "previous_status": previous.value,
        })
        return _accept(cycle, DeletionEvent(
            entity_id=entity_id,
            display_name=record.display_name,
            country_code=record.country_code,
            previous_status=previous,
            occurred_at=now,
            last_rating=record.last_rating,
            last_rank=record.last_rank,
            hours_since_seen=hours_since_seen,
        ))

    if probe.banned:
        if previous is EntityStatus.BANNED:
            logger.debug("Still banned", extra={"entity_id": entity_id})
            return None
        _start_sanction(record, now)
        record.status = EntityStatus.BANNED
        record.suspended_until = None
        logger.info("Player banned", extra={
            "entity_id": entity_id,
            "display_name": record.display_name,
            "previous_status": previous.value,
            "rank": record.last_rank,
        })
        return _accept(cycle, SanctionEvent(
            entity_id=entity_id,
            display_name=record.display_name,
            country_code=record.country_code,
            kind=SanctionKind.BANNED,
            previous_status=previous,
            occurred_at=now,
            last_rating=record.last_rating,
            last_rank=record.last_rank,
            hours_since_seen=hours_since_seen,
        ))

    if probe.suspended:
        if previous is EntityStatus.SUSPENDED and record.suspended_until == probe.suspended_until:
            logger.debug("Still suspended", extra={
                "entity_id": entity_id,
                "suspended_until": probe.suspended_until,
            })
            return None
        _start_sanction(record, now)
        record.status = EntityStatus.SUSPENDED
        record.suspended_until = probe.suspended_until
        logger.info("Player suspended", extra={
            "entity_id": entity_id,
            "display_name": record.display_name,
            "previous_status": previous.value,
            "suspended_until": probe.suspended_until,
        })
        return _accept(cycle, SanctionEvent(
            entity_id=entity_id,
            display_name=record.display_name,
            country_code=record.country_code,
            kind=SanctionKind.SUSPENDED,
            previous_status=previous,
            occurred_at=now,
            last_rating=record.last_rating,
            last_rank=record.last_rank,
            hours_since_seen=hours_since_seen,
            suspended_until=probe.suspended_until,
        ))

    if previous in RESTORABLE_STATUSES:
        sanction_started_at = record.sanction_started_at
        record.status = EntityStatus.ACTIVE
        record.restored_at = now
        record.suspended_until = None
        record.sanction_started_at = None

        if not cycle.notifications_armed:
            logger.info("Silent restore (first check after restart)", extra={
                "entity_id": entity_id,
                "previous_status": previous.value,
            })
            return None

        logger.info("Player restored", extra={
            "entity_id": entity_id,
            "display_name": record.display_name,
            "previous_status": previous.value,
        })
        return _accept(cycle, RestoredEvent(
            entity_id=entity_id,
            display_name=record.display_name,
            country_code=record.country_code,
            previous_status=previous,
            occurred_at=now,
            rating=record.last_rating,
            rank=record.last_rank,
            sanction_started_at=sanction_started_at,
        ))

    return None


def expire_suspensions(entities: Dict[str, EntityRecord], now: datetime) -> List[str]:
    """
    Move suspensions whose end date has passed to ``suspension_expired``.

    No network call; the next probe of each player settles its real status.

    Returns:
        IDs of the players that changed
    """
    expired = []
    for entity_id, record in entities.items():
        if (
            record.status is EntityStatus.SUSPENDED
            and record.suspended_until is not None
            and now >= record.suspended_until
        ):
            record.status = EntityStatus.SUSPENSION_EXPIRED
            record.suspended_until = None
            expired.append(entity_id)
            logger.info("Suspension expired", extra={
                "entity_id": entity_id,
                "display_name": record.display_name,
            })
    return expired
