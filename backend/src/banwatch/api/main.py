"""
Backend API: tracking statistics and manual check trigger.

The app is served inside the ban watch service process so that manual checks
queue behind scheduled ones on the same coordinator.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from banwatch import __version__
from banwatch.monitor.coordinator import CheckCoordinator
from banwatch.monitor.stats import collect_stats
from banwatch.ranked_api.client import RankedAPIClient
from banwatch.utils.timeutil import format_timestamp

logger = logging.getLogger(__name__)

app = FastAPI(title="Ban Watch API", version=__version__)

# Set by the service at start-up
_coordinator: Optional[CheckCoordinator] = None
_client: Optional[RankedAPIClient] = None
_manual_tasks: Set[asyncio.Task] = set()


def attach(coordinator: CheckCoordinator, client: Optional[RankedAPIClient] = None):
    """Wire the running coordinator (and API client, for rate-limit stats) into the app."""
    global _coordinator, _client
    _coordinator = coordinator
    _client = client


def get_coordinator() -> CheckCoordinator:
    if _coordinator is None:
        raise HTTPException(status_code=503, detail="Ban watch service not started")
    return _coordinator


def _report_to_dict(report) -> Optional[Dict[str, Any]]:
    if report is None:
        return None
    data = dataclasses.asdict(report)
    data["started_at"] = format_timestamp(report.started_at)
    return data


@app.get("/api/v1/stats")
def get_stats():
    """Players tracked per status, check count and recent rate limiting."""
    coordinator = get_coordinator()
    state = coordinator.store.load()
    return collect_stats(
        state,
        rate_limit_hits_last_hour=_client.rate_limit_hits_last_hour if _client else None,
        check_running=coordinator.is_running,
    )


@app.post("/api/v1/checks", status_code=202)
async def trigger_check():
    """Queue a manual check; it runs after any check already in progress."""
    coordinator = get_coordinator()
    already_running = coordinator.is_running
    task = asyncio.create_task(coordinator.run_cycle(trigger="manual"))
    _manual_tasks.add(task)
    task.add_done_callback(_manual_tasks.discard)
    logger.info("Manual check requested", extra={"queued_behind_running_check": already_running})
    return JSONResponse(
        status_code=202,
        content={"status": "queued" if already_running else "started"},
    )


@app.get("/api/v1/checks/last")
def get_last_check():
    """Report of the most recent finished check."""
    coordinator = get_coordinator()
    return {"report": _report_to_dict(coordinator.last_report), "check_running": coordinator.is_running}


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}
