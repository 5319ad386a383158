"""
JSON file persistence for player tracking state.

The whole state is one JSON document keyed by player ID. Saves go through a
temporary file and ``os.replace`` so a crash never leaves a half-written file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

from banwatch.exceptions import StoreError
from banwatch.monitor.models import EntityRecord, StoreState
from banwatch.utils.timeutil import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def state_to_dict(state: StoreState) -> Dict[str, Any]:
    return {
        "entities": {entity_id: record.to_dict() for entity_id, record in state.entities.items()},
        "last_check_at": format_timestamp(state.last_check_at),
        "total_checks": state.total_checks,
    }


def state_from_dict(data: Dict[str, Any]) -> StoreState:
    entities = {}
    for entity_id, raw in (data.get("entities") or {}).items():
        try:
            entities[str(entity_id)] = EntityRecord.from_dict(raw)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Dropping unreadable player record", extra={
                "entity_id": entity_id,
                "error": str(e),
            })
    return StoreState(
        entities=entities,
        last_check_at=parse_timestamp(data.get("last_check_at")),
        total_checks=int(data.get("total_checks") or 0),
    )


class JSONFileStore:
    """Loads and saves StoreState as a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> StoreState:
        """
        Load tracking state.

        A missing file is a fresh start; an unreadable one is logged and treated the same way.
        """
        if not self.path.exists():
            logger.info("No tracking state yet, starting fresh", extra={"path": str(self.path)})
            return StoreState()
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load tracking state", extra={
                "path": str(self.path),
                "error": str(e),
            })
            return StoreState()
        if not isinstance(data, dict):
            logger.error("Tracking state is not a JSON object", extra={"path": str(self.path)})
            return StoreState()
        return state_from_dict(data)

    def save(self, state: StoreState):
        """Write tracking state atomically."""
        payload = json.dumps(state_to_dict(state), indent=2, sort_keys=True)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreError(f"Failed to save tracking state to {self.path}: {e}") from e
        logger.debug("Tracking state saved", extra={
            "path": str(self.path),
            "players_count": len(state.entities),
        })
