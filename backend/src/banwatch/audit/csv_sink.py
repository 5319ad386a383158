"""
Append-only CSV audit trail of status events.

Sanctions and deletions go to one file, restorations to another.
"""

import csv
import logging
from pathlib import Path
from typing import List, Union

from banwatch.monitor.models import (
    DeletionEvent,
    EntityStatus,
    RestoredEvent,
    SanctionEvent,
    SanctionKind,
    StatusEvent,
)

logger = logging.getLogger(__name__)

SANCTIONS_FILE = "banned_suspended_players.csv"
RESTORATIONS_FILE = "unbanned_unsuspended_players.csv"

SANCTION_HEADERS = [
    "Date", "Username", "UserID", "Profile_URL", "countryCode",
    "ELO", "Position", "Action_Type", "Suspended_Until",
]
RESTORATION_HEADERS = [
    "Date", "Username", "UserID", "Profile_URL", "countryCode",
    "ELO", "Position", "Previous_Action_Type", "Duration_Days",
]


def _blank(value) -> str:
    return "" if value is None else str(value)


class CSVAuditSink:
    """Writes one CSV row per finalized event."""

    def __init__(self, directory: Union[str, Path], profile_url_template: str):
        self.directory = Path(directory)
        self.profile_url_template = profile_url_template
        self.sanctions_path = self.directory / SANCTIONS_FILE
        self.restorations_path = self.directory / RESTORATIONS_FILE
        self._initialize_files()

    def _initialize_files(self):
        self.directory.mkdir(parents=True, exist_ok=True)
        for path, headers in (
            (self.sanctions_path, SANCTION_HEADERS),
            (self.restorations_path, RESTORATION_HEADERS),
        ):
            if not path.exists():
                with path.open("w", newline="", encoding="utf-8") as f:
                    csv.writer(f).writerow(headers)

    def _profile_url(self, entity_id: str) -> str:
        return self.profile_url_template.format(entity_id=entity_id)

    def _row(self, event: StatusEvent) -> List[str]:
        date = event.occurred_at.date().isoformat()
        common = [
            date,
            event.display_name,
            event.entity_id,
            self._profile_url(event.entity_id),
            _blank(event.country_code),
        ]
        if isinstance(event, SanctionEvent):
            suspended_until = ""
            if event.kind is SanctionKind.SUSPENDED and event.suspended_until is not None:
                suspended_until = event.suspended_until.date().isoformat()
            return common + [
                _blank(event.last_rating),
                _blank(event.last_rank),
                event.kind.value.upper(),
                suspended_until,
            ]
        if isinstance(event, DeletionEvent):
            return common + [
                _blank(event.last_rating),
                _blank(event.last_rank),
                "DELETED_ACCOUNT",
                "",
            ]
        previous = "BANNED" if event.previous_status is EntityStatus.BANNED else "SUSPENDED"
        return common + [
            _blank(event.rating),
            _blank(event.rank),
            previous,
            _blank(event.duration_days if event.duration_days is not None else 0),
        ]

    def record(self, event: StatusEvent):
        """Append ``event`` to its audit file."""
        path = self.restorations_path if isinstance(event, RestoredEvent) else self.sanctions_path
        try:
            with path.open("a", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow(self._row(event))
        except OSError as e:
            logger.error("Failed to append audit row", extra={
                "path": str(path),
                "entity_id": event.entity_id,
                "error": str(e),
            })
            return
        logger.debug("Audit row written", extra={
            "path": str(path),
            "entity_id": event.entity_id,
            "event_kind": event.event_kind,
        })
