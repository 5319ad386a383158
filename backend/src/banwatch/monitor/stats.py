"""
Tracking statistics for the command surface.
"""

from collections import Counter
from typing import Any, Dict, Optional

from banwatch.monitor.models import EntityStatus, StoreState
from banwatch.utils.timeutil import format_timestamp


def collect_stats(
    state: StoreState,
    rate_limit_hits_last_hour: Optional[int] = None,
    check_running: bool = False,
) -> Dict[str, Any]:
    """Counts by status plus check bookkeeping."""
    counts = Counter(record.status for record in state.entities.values())
    return {
        "total_players": len(state.entities),
        "active": counts[EntityStatus.ACTIVE],
        "banned": counts[EntityStatus.BANNED],
        "suspended": counts[EntityStatus.SUSPENDED],
        "suspension_expired": counts[EntityStatus.SUSPENSION_EXPIRED],
        "deleted": counts[EntityStatus.DELETED_ACCOUNT],
        "total_checks": state.total_checks,
        "last_check_at": format_timestamp(state.last_check_at),
        "rate_limit_hits_last_hour": rate_limit_hits_last_hour,
        "check_running": check_running,
    }
