"""
Entity activity prober.

Fetches one player's profile and classifies it as active, banned, suspended or gone.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from banwatch.exceptions import RankedAPIError
from banwatch.monitor.models import ProbeResult
from banwatch.ranked_api.client import RankedAPIClient
from banwatch.utils.timeutil import parse_timestamp, utcnow

logger = logging.getLogger(__name__)


def classify_profile(profile: Dict[str, Any], now: datetime) -> ProbeResult:
    """
    Turn a profile payload into a ProbeResult.

    A suspension only counts while its end date is strictly in the future.
    """
    banned = profile.get("isBanned") is True or profile.get("banned") is True

    raw_until = profile.get("suspendedUntil")
    if raw_until is None:
        raw_until = profile.get("suspended_until")
    suspended_until = parse_timestamp(raw_until)
    suspended = suspended_until is not None and suspended_until > now

    country_code: Optional[str] = profile.get("countryCode") or profile.get("country_code")

    return ProbeResult(
        accessible=True,
        banned=banned,
        suspended=suspended,
        suspended_until=suspended_until if suspended else None,
        deleted=False,
        country_code=country_code,
    )


class ActivityProber:
    """Probes player profiles through the retrying API client."""

    def __init__(self, client: RankedAPIClient, clock=utcnow):
        self.client = client
        self._clock = clock

    async def probe(self, entity_id: str) -> ProbeResult:
        """
        Probe a player's sanction status.

        404/403 after all retries means the account is deleted or hidden and is
        returned as an inaccessible result; every other failure propagates.
        """
        try:
            profile = await self.client.get_user(entity_id)
        except RankedAPIError as e:
            if e.kind.is_not_accessible:
                logger.debug("Profile not accessible", extra={
                    "entity_id": entity_id,
                    "status_code": e.status_code,
                })
                return ProbeResult.inaccessible()
            raise

        result = classify_profile(profile, self._clock())
        if result.banned or result.suspended:
            logger.debug("Sanction reported by profile", extra={
                "entity_id": entity_id,
                "banned": result.banned,
                "suspended_until": result.suspended_until,
            })
        return result
