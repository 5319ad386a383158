"""
Test configuration to fix import paths and provide shared fixtures.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Add the src directory so tests can import 'banwatch' without installing
backend_dir = Path(__file__).parent.parent.absolute()
src_dir = backend_dir / "src"
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

import pytest

from banwatch.config import Config

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed clock reading used as the cycle start time."""
    return NOW


@pytest.fixture
def config(tmp_path):
    """Config with a session cookie, throwaway storage and no webhooks."""
    return Config(
        ranked_api_cookie="test-cookie",
        max_requests_per_minute=100000,
        state_file=str(tmp_path / "state.json"),
        audit_dir=str(tmp_path / "audit"),
        discord_ban_webhook_url="",
        discord_unban_webhook_url="",
        ban_role_id="",
        unban_role_id="",
        announce_unsuspensions=False,
        first_check_delay_seconds=0,
    )
