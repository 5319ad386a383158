"""
Check Coordinator - runs one complete ban check and the hourly loop around it.

A cycle is: load state, snapshot the leaderboard, probe players who just
dropped off (priority pass), probe everybody listed (full pass), re-probe
players held as banned/suspended (re-verification pass), expire finished
suspensions, save, then announce the events collected along the way.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from banwatch.config import Config
from banwatch.exceptions import SnapshotUnavailable
from banwatch.monitor.models import (
    SANCTIONED_STATUSES,
    CheckCycle,
    EntityStatus,
    LeaderboardEntry,
    StoreState,
)
from banwatch.monitor.prober import ActivityProber
from banwatch.monitor.scheduler import BatchPolicy, BatchScheduler, ProbeOutcome, SchedulerRunState
from banwatch.monitor.snapshot import LeaderboardFetcher
from banwatch.monitor.status import apply_probe, expire_suspensions, new_record, observe_listing
from banwatch.utils.timeutil import utcnow, whole_hours_between

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Summary of one check cycle."""
    trigger: str
    started_at: datetime
    success: bool
    duration_seconds: float = 0.0
    snapshot_size: int = 0
    sanctions: int = 0
    restorations: int = 0
    deletions: int = 0
    expired_suspensions: int = 0
    probes: int = 0
    probe_failures: int = 0
    rate_limit_hits: int = 0
    silent_restart: bool = False
    error: Optional[str] = None


class CheckCoordinator:
    """Orchestrates check cycles. Cycles never overlap."""

    def __init__(
        self,
        config: Config,
        fetcher: LeaderboardFetcher,
        prober: ActivityProber,
        store,
        notifier,
        audit_sink,
        scheduler: Optional[BatchScheduler] = None,
        clock=utcnow,
        treat_first_cycle_as_restart: bool = True,
    ):
        self.config = config
        self.fetcher = fetcher
        self.prober = prober
        self.store = store
        self.notifier = notifier
        self.audit_sink = audit_sink
        self.scheduler = scheduler or BatchScheduler()
        self._clock = clock
        # One-shot runners (scripts) rely on the last_check_at gap alone
        self.treat_first_cycle_as_restart = treat_first_cycle_as_restart

        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._completed_cycles = 0
        self.running = False
        self.last_report: Optional[CycleReport] = None

    @property
    def is_running(self) -> bool:
        """True while a cycle holds the lock."""
        return self._lock.locked()

    def _is_first_after_restart(self, state: StoreState, now: datetime) -> bool:
        if self.treat_first_cycle_as_restart and self._completed_cycles == 0:
            return True
        if state.last_check_at is None:
            return True
        return now - state.last_check_at > timedelta(hours=self.config.restart_gap_hours)

    def _missing_candidates(self, state: StoreState, cycle: CheckCycle) -> List[str]:
        """Active players absent from the snapshot who were listed a short while ago."""
        candidates = []
        for entity_id, record in state.entities.items():
            if record.status is not EntityStatus.ACTIVE or entity_id in cycle.snapshot_entity_ids:
                continue
            hours = whole_hours_between(record.last_seen_at, cycle.started_at)
            if self.config.missing_min_hours <= hours < self.config.missing_max_hours:
                candidates.append(entity_id)
        return candidates

    def _reverify_candidates(self, state: StoreState, cycle: CheckCycle) -> List[str]:
        """Players held as banned/suspended who were listed within the re-verification window."""
        window = timedelta(days=self.config.reverify_window_days)
        return [
            entity_id
            for entity_id, record in state.entities.items()
            if record.status in SANCTIONED_STATUSES
            and cycle.started_at - record.last_seen_at <= window
        ]

    def _apply_outcomes(self, state: StoreState, cycle: CheckCycle, outcomes: Sequence[ProbeOutcome]):
        for outcome in outcomes:
            if not outcome.ok:
                continue
            record = state.entities.get(outcome.entity_id)
            if record is None:
                continue
            apply_probe(outcome.entity_id, record, outcome.result, cycle)

    async def _probe_pass(
        self,
        state: StoreState,
        cycle: CheckCycle,
        entity_ids: Sequence[str],
        policy: BatchPolicy,
    ) -> SchedulerRunState:
        if not entity_ids:
            logger.info("Nothing to probe", extra={"pass": policy.name})
            return SchedulerRunState()

        logger.info("Probe pass starting", extra={"pass": policy.name, "players_count": len(entity_ids)})
        events_before = len(cycle.events)
        outcomes, run_state = await self.scheduler.run_batched(entity_ids, self.prober.probe, policy)
        self._apply_outcomes(state, cycle, outcomes)
        logger.info("Probe pass completed", extra={
            "pass": policy.name,
            "processed": run_state.processed,
            "failed": run_state.failed,
            "rate_limit_hits": run_state.rate_limit_hits,
            "events": len(cycle.events) - events_before,
        })
        return run_state

    def _observe_snapshot(self, state: StoreState, snapshot: Sequence[LeaderboardEntry], now: datetime):
        new_players = 0
        for entry in snapshot:
            record = state.entities.get(entry.entity_id)
            if record is None:
                state.entities[entry.entity_id] = new_record(entry, now)
                new_players += 1
            else:
                observe_listing(record, entry, now, self.config.rating_history_limit)
        if new_players:
            logger.info("New players tracked", extra={"count": new_players})

    async def _dispatch(self, cycle: CheckCycle):
        """Hand every accepted event to the notifier and the audit sink, once."""
        sanctions = cycle.sanctions
        if sanctions:
            await self.notifier.notify_ban(sanctions)
        for event in cycle.restorations:
            await self.notifier.notify_unban(event)
        deletions = cycle.deletions
        if deletions:
            await self.notifier.notify_deletion(deletions)
        for event in cycle.events:
            self.audit_sink.record(event)

    async def run_cycle(self, trigger: str = "scheduled") -> CycleReport:
        """
        Run one check cycle, waiting for any cycle already in flight.

        Args:
            trigger: "scheduled" or "manual", for logs and reports

        Returns:
            CycleReport (``success`` is False when the cycle aborted and nothing was saved)
        """
        if self._lock.locked():
            logger.info("Check already running, queued", extra={"trigger": trigger})
        async with self._lock:
            report = await self._run_cycle_locked(trigger)
        self.last_report = report
        return report

    async def _run_cycle_locked(self, trigger: str) -> CycleReport:
        started = time.monotonic()
        now = self._clock()
        report = CycleReport(trigger=trigger, started_at=now, success=False)
        logger.info("Check starting", extra={"trigger": trigger})

        try:
            state = self.store.load()
            snapshot = await self.fetcher.fetch_snapshot()
            if not snapshot:
                raise SnapshotUnavailable("Failed to fetch leaderboard data")

            cycle = CheckCycle(
                started_at=now,
                snapshot_entity_ids={entry.entity_id for entry in snapshot},
                notifications_armed=not self._is_first_after_restart(state, now),
                trigger=trigger,
            )
            report.snapshot_size = len(snapshot)
            report.silent_restart = not cycle.notifications_armed

            run_states = []

            missing = self._missing_candidates(state, cycle)
            logger.info("Recently missing players", extra={"count": len(missing)})
            run_states.append(await self._probe_pass(state, cycle, missing, BatchPolicy.priority(self.config)))

            self._observe_snapshot(state, snapshot, now)
            listed = [
                entry.entity_id for entry in snapshot
                if state.entities[entry.entity_id].status is not EntityStatus.DELETED_ACCOUNT
            ]
            run_states.append(await self._probe_pass(state, cycle, listed, BatchPolicy.full(self.config)))

            sanctioned = self._reverify_candidates(state, cycle)
            run_states.append(await self._probe_pass(state, cycle, sanctioned, BatchPolicy.reverify(self.config)))

            expired = expire_suspensions(state.entities, now)

            state.last_check_at = now
            state.total_checks += 1
            self.store.save(state)
        except Exception as e:
            report.duration_seconds = round(time.monotonic() - started, 1)
            report.error = str(e)
            logger.error("Check failed", extra={
                "trigger": trigger,
                "error": str(e),
                "error_type": type(e).__name__,
            }, exc_info=not isinstance(e, SnapshotUnavailable))
            await self.notifier.notify_status_message(f"Check failed: {e}", is_error=True)
            return report

        self._completed_cycles += 1
        await self._dispatch(cycle)

        report.success = True
        report.duration_seconds = round(time.monotonic() - started, 1)
        report.sanctions = len(cycle.sanctions)
        report.restorations = len(cycle.restorations)
        report.deletions = len(cycle.deletions)
        report.expired_suspensions = len(expired)
        report.probes = sum(s.processed for s in run_states)
        report.probe_failures = sum(s.failed for s in run_states)
        report.rate_limit_hits = sum(s.rate_limit_hits for s in run_states)

        if report.silent_restart:
            await self.notifier.notify_status_message(
                "Restart detected - statuses updated silently to avoid false unban notifications"
            )

        duration = int(report.duration_seconds)
        if report.sanctions:
            summary = f"Check completed in {duration}s. Found {report.sanctions} new/updated ban(s)/suspension(s)."
        else:
            summary = f"Check completed in {duration}s. No new or updated bans/suspensions detected."
        await self.notifier.notify_status_message(summary)

        logger.info("Check completed", extra={
            "trigger": trigger,
            "duration_seconds": report.duration_seconds,
            "total_checks": state.total_checks,
            "sanctions": report.sanctions,
            "restorations": report.restorations,
            "deletions": report.deletions,
            "expired_suspensions": report.expired_suspensions,
            "probe_failures": report.probe_failures,
        })
        return report

    async def run(self):
        """Run a check shortly after start-up, then every ``check_interval_seconds`` until shutdown."""
        self.running = True
        self._stop.clear()
        delay = self.config.first_check_delay_seconds
        logger.info("Automatic checking started", extra={"interval_seconds": self.config.check_interval_seconds})

        while self.running:
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_cycle(trigger="scheduled")
            except Exception as e:
                logger.error("Error in check loop", extra={
                    "error": str(e),
                    "error_type": type(e).__name__,
                }, exc_info=True)
            delay = self.config.check_interval_seconds

        logger.info("Automatic checking stopped")

    async def shutdown(self):
        """Stop the loop after the current cycle."""
        logger.info("Coordinator shutting down")
        self.running = False
        self._stop.set()
