#!/usr/bin/env python3
"""
Script to manually run one ban check cycle.

This will:
1. Fetch the leaderboard snapshot
2. Probe recently missing, listed and sanctioned players
3. Save tracking state
4. Send notifications and write the audit CSVs

When the service is running with its API enabled the check is handed to it, so
it queues behind any scheduled check and only one process writes the state
file. Otherwise the cycle runs here; restorations are announced unless the
last check is older than the restart gap.

Usage:
    python3 scripts/run_check.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv(Path(__file__).parent.parent / ".env")

# Add src directory to path
backend_dir = Path(__file__).parent.parent
src_dir = backend_dir / "src"
sys.path.insert(0, str(src_dir))

from banwatch.config import Config
from banwatch.main import build_coordinator, trigger_service_check
from banwatch.utils.logger import setup_logging


async def run_check():
    """Run a single check cycle."""
    config = Config()
    setup_logging(config)

    if config.api_enabled:
        status = await trigger_service_check(config)
        if status is not None:
            print(f"📨 Check handed to the running service ({status}); see GET /api/v1/checks/last")
            return

    client, coordinator = build_coordinator(config, treat_first_cycle_as_restart=False)

    print("🔄 Running check cycle...\n")

    try:
        report = await coordinator.run_cycle(trigger="manual")
    finally:
        await coordinator.notifier.close()
        await client.close()

    if not report.success:
        print(f"\n❌ Check failed: {report.error}")
        sys.exit(1)

    print(f"\n✅ Check completed in {report.duration_seconds}s")
    print(f"   Leaderboard players: {report.snapshot_size}")
    print(f"   Probes: {report.probes} ({report.probe_failures} failed, {report.rate_limit_hits} rate limited)")
    print(f"   Bans/suspensions: {report.sanctions}")
    print(f"   Restorations: {report.restorations}")
    print(f"   Deletions: {report.deletions}")
    print(f"   Expired suspensions: {report.expired_suspensions}")
    if report.silent_restart:
        print("\n⚠️  First check after restart: restorations were recorded silently")


if __name__ == "__main__":
    asyncio.run(run_check())
