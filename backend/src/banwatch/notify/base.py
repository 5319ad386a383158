"""
Notifier interface.

Notifiers are fire-and-forget: delivery problems are logged by the notifier
and never reach the check cycle.
"""

import logging
from typing import List, Protocol, Sequence

from banwatch.monitor.models import DeletionEvent, RestoredEvent, SanctionEvent

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify_ban(self, events: Sequence[SanctionEvent]) -> None: ...

    async def notify_unban(self, event: RestoredEvent) -> None: ...

    async def notify_deletion(self, events: Sequence[DeletionEvent]) -> None: ...

    async def notify_status_message(self, text: str, is_error: bool = False) -> None: ...

    async def close(self) -> None: ...


class LogNotifier:
    """Notifier that only logs; used when no chat webhook is configured."""

    async def notify_ban(self, events: Sequence[SanctionEvent]) -> None:
        for event in events:
            logger.info("Sanction", extra={
                "entity_id": event.entity_id,
                "display_name": event.display_name,
                "kind": event.kind.value,
                "rank": event.last_rank,
                "suspended_until": event.suspended_until,
            })

    async def notify_unban(self, event: RestoredEvent) -> None:
        logger.info("Restored", extra={
            "entity_id": event.entity_id,
            "display_name": event.display_name,
            "previous_status": event.previous_status.value,
            "duration_days": event.duration_days,
        })

    async def notify_deletion(self, events: Sequence[DeletionEvent]) -> None:
        deleted: List[str] = [e.entity_id for e in events]
        logger.info("Accounts deleted", extra={"entity_ids": deleted})

    async def notify_status_message(self, text: str, is_error: bool = False) -> None:
        if is_error:
            logger.error(text)
        else:
            logger.info(text)

    async def close(self) -> None:
        return None
