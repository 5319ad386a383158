"""
Batch scheduler.

Runs the prober over many players in fixed-size batches. Probes inside a batch
run concurrently with a small stagger; the pause between batches grows when
the API starts rate limiting or failing and shrinks again as counters decay.

The run counters are an immutable ``SchedulerRunState`` passed into and
returned from every batch step.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from banwatch.config import Config
from banwatch.exceptions import ErrorKind, RankedAPIError
from banwatch.monitor.models import ProbeResult
from banwatch.ranked_api.client import SleepFunc

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProbeFunc = Callable[[str], Awaitable[ProbeResult]]

# (rate-limit hits above, delay multiplier), checked in order
RATE_LIMIT_ESCALATION = ((12, 5), (8, 3), (4, 2))
CONSECUTIVE_ERROR_THRESHOLD = 5
CONSECUTIVE_ERROR_MULTIPLIER = 2


@dataclass(frozen=True)
class BatchPolicy:
    """Pacing for one probing pass."""
    name: str
    batch_size: int
    inter_batch_delay: float  # seconds
    stagger: float  # seconds between probe starts inside a batch
    decay_every: int = 5  # halve counters every N batches

    @classmethod
    def priority(cls, config: Config) -> "BatchPolicy":
        return cls(
            name="priority",
            batch_size=config.priority_batch_size,
            inter_batch_delay=config.priority_batch_delay,
            stagger=config.priority_batch_stagger,
            decay_every=config.priority_decay_every,
        )

    @classmethod
    def full(cls, config: Config) -> "BatchPolicy":
        return cls(
            name="full",
            batch_size=config.full_batch_size,
            inter_batch_delay=config.full_batch_delay,
            stagger=config.full_batch_stagger,
            decay_every=config.full_decay_every,
        )

    @classmethod
    def reverify(cls, config: Config) -> "BatchPolicy":
        return cls(
            name="reverify",
            batch_size=config.reverify_batch_size,
            inter_batch_delay=config.reverify_batch_delay,
            stagger=config.reverify_batch_stagger,
            decay_every=config.reverify_decay_every,
        )


@dataclass(frozen=True)
class SchedulerRunState:
    """Counters carried across the batches of one run."""
    rate_limit_hits: int = 0
    consecutive_errors: int = 0
    processed: int = 0
    failed: int = 0
    batches: int = 0


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing one player: either a ProbeResult or the error that stopped it."""
    entity_id: str
    result: Optional[ProbeResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    @property
    def rate_limited(self) -> bool:
        return isinstance(self.error, RankedAPIError) and self.error.kind is ErrorKind.RATE_LIMITED


def record_outcomes(state: SchedulerRunState, outcomes: Sequence[ProbeOutcome]) -> SchedulerRunState:
    """Fold a batch's outcomes into the run counters, in batch order."""
    rate_limit_hits = state.rate_limit_hits
    consecutive_errors = state.consecutive_errors
    failed = state.failed
    for outcome in outcomes:
        if outcome.ok:
            consecutive_errors = 0
            continue
        failed += 1
        consecutive_errors += 1
        if outcome.rate_limited:
            rate_limit_hits += 1
    return replace(
        state,
        rate_limit_hits=rate_limit_hits,
        consecutive_errors=consecutive_errors,
        processed=state.processed + len(outcomes),
        failed=failed,
        batches=state.batches + 1,
    )


def delay_multiplier(state: SchedulerRunState) -> int:
    for threshold, multiplier in RATE_LIMIT_ESCALATION:
        if state.rate_limit_hits > threshold:
            return multiplier
    if state.consecutive_errors > CONSECUTIVE_ERROR_THRESHOLD:
        return CONSECUTIVE_ERROR_MULTIPLIER
    return 1


def adaptive_delay(state: SchedulerRunState, policy: BatchPolicy) -> float:
    """Seconds to sleep before the next batch."""
    return policy.inter_batch_delay * delay_multiplier(state)


def decay(state: SchedulerRunState, policy: BatchPolicy) -> SchedulerRunState:
    """Halve the counters every ``policy.decay_every`` batches so pacing recovers."""
    if policy.decay_every <= 0 or state.batches % policy.decay_every != 0:
        return state
    return replace(
        state,
        rate_limit_hits=state.rate_limit_hits // 2,
        consecutive_errors=state.consecutive_errors // 2,
    )


def chunked(items: Sequence[T], size: int) -> List[Sequence[T]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchScheduler:
    """Runs probes in adaptively paced batches."""

    def __init__(self, sleep: SleepFunc = asyncio.sleep):
        self._sleep = sleep

    async def _probe_staggered(self, probe: ProbeFunc, entity_id: str, index: int, stagger: float) -> ProbeResult:
        if index > 0 and stagger > 0:
            await self._sleep(index * stagger)
        return await probe(entity_id)

    async def run_batch(
        self,
        batch: Sequence[str],
        probe: ProbeFunc,
        policy: BatchPolicy,
        state: SchedulerRunState,
    ) -> Tuple[List[ProbeOutcome], SchedulerRunState]:
        """
        Probe one batch concurrently.

        Failures are captured per player; nothing raised by a probe escapes.

        Returns:
            Outcomes in batch order and the updated run state
        """
        tasks = [
            self._probe_staggered(probe, entity_id, index, policy.stagger)
            for index, entity_id in enumerate(batch)
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: List[ProbeOutcome] = []
        for entity_id, result in zip(batch, results):
            if isinstance(result, BaseException):
                log = logger.warning if isinstance(result, RankedAPIError) else logger.error
                log("Probe failed", extra={
                    "pass": policy.name,
                    "entity_id": entity_id,
                    "error": str(result),
                    "error_type": type(result).__name__,
                    "error_kind": result.kind.value if isinstance(result, RankedAPIError) else None,
                })
                outcomes.append(ProbeOutcome(entity_id=entity_id, error=result))
            else:
                outcomes.append(ProbeOutcome(entity_id=entity_id, result=result))

        return outcomes, record_outcomes(state, outcomes)

    async def run_batched(
        self,
        entity_ids: Sequence[str],
        probe: ProbeFunc,
        policy: BatchPolicy,
        state: Optional[SchedulerRunState] = None,
    ) -> Tuple[List[ProbeOutcome], SchedulerRunState]:
        """
        Probe every player in ``entity_ids``.

        Args:
            entity_ids: Players to probe, in order
            probe: Coroutine function returning a ProbeResult for a player ID
            policy: Batch size and pacing
            state: Counters to continue from (fresh when None)

        Returns:
            One outcome per player, in input order, and the final run state
        """
        state = state or SchedulerRunState()
        batches = chunked(list(entity_ids), policy.batch_size)
        total_batches = len(batches)
        all_outcomes: List[ProbeOutcome] = []

        for batch_index, batch in enumerate(batches, start=1):
            outcomes, state = await self.run_batch(batch, probe, policy, state)
            all_outcomes.extend(outcomes)

            if batch_index % 5 == 0 or batch_index == total_batches:
                logger.info("Probe progress", extra={
                    "pass": policy.name,
                    "batch": batch_index,
                    "total_batches": total_batches,
                    "processed": state.processed,
                    "failed": state.failed,
                    "rate_limit_hits": state.rate_limit_hits,
                })

            if batch_index < total_batches:
                delay = adaptive_delay(state, policy)
                if delay > policy.inter_batch_delay:
                    logger.warning("Slowing down between batches", extra={
                        "pass": policy.name,
                        "delay": delay,
                        "rate_limit_hits": state.rate_limit_hits,
                        "consecutive_errors": state.consecutive_errors,
                    })
                await self._sleep(delay)
                state = decay(state, policy)

        return all_outcomes, state
