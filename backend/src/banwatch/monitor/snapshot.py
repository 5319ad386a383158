"""
Leaderboard snapshot fetcher.

Pages through the ranked leaderboard and returns the currently listed players in rank order.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from banwatch.config import Config
from banwatch.exceptions import ErrorKind, RankedAPIError
from banwatch.monitor.models import LeaderboardEntry
from banwatch.ranked_api.client import RankedAPIClient, SleepFunc

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_rating_row(row: Dict[str, Any]) -> Optional[LeaderboardEntry]:
    """Map one ratings row to a LeaderboardEntry; None when it has no player ID."""
    entity_id = row.get("userId")
    if not entity_id:
        return None
    return LeaderboardEntry(
        entity_id=str(entity_id),
        display_name=row.get("nick") or "",
        rating=_as_int(row.get("rating")),
        rank=_as_int(row.get("position")),
        country_code=row.get("countryCode"),
    )


class LeaderboardFetcher:
    """Fetches the top of the ranked leaderboard page by page."""

    def __init__(self, client: RankedAPIClient, config: Config, sleep: SleepFunc = asyncio.sleep):
        self.client = client
        self.limit = config.leaderboard_limit
        self.page_size = config.leaderboard_page_size
        self.page_delay = config.leaderboard_page_delay
        self.rate_limit_cooldown = config.leaderboard_rate_limit_cooldown
        self.max_cooldowns_per_page = config.leaderboard_max_cooldowns_per_page
        self._sleep = sleep

    async def fetch_snapshot(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        """
        Fetch up to ``limit`` leaderboard rows.

        A rate-limited page is retried at the same offset after a cooldown so
        the snapshot has no gaps. Any other failure stops pagination and the
        rows gathered so far are returned; an empty list means the snapshot failed.
        """
        limit = limit or self.limit
        entries: List[LeaderboardEntry] = []
        offset = 0
        cooldowns = 0
        seen = set()

        logger.info("Fetching leaderboard", extra={"limit": limit})

        while offset < limit:
            page_size = min(self.page_size, limit - offset)
            try:
                rows = await self.client.get_ratings(offset, page_size)
            except RankedAPIError as e:
                if e.kind is ErrorKind.RATE_LIMITED and cooldowns < self.max_cooldowns_per_page:
                    cooldowns += 1
                    logger.warning("Rate limited on leaderboard, cooling down", extra={
                        "offset": offset,
                        "cooldown": self.rate_limit_cooldown,
                        "cooldowns": cooldowns,
                    })
                    await self._sleep(self.rate_limit_cooldown)
                    continue
                logger.error("Leaderboard page failed, stopping pagination", extra={
                    "offset": offset,
                    "error_kind": e.kind.value,
                    "fetched": len(entries),
                })
                break

            cooldowns = 0
            if not rows:
                break

            for row in rows:
                entry = parse_rating_row(row) if isinstance(row, dict) else None
                if entry is None:
                    logger.warning("Skipping leaderboard row without player ID", extra={"offset": offset})
                    continue
                # Rows can shift between pages while ranks move
                if entry.entity_id in seen:
                    continue
                seen.add(entry.entity_id)
                entries.append(entry)

            offset += self.page_size
            if offset < limit:
                await self._sleep(self.page_delay)

        logger.info("Leaderboard fetched", extra={"players_count": len(entries)})
        return entries
