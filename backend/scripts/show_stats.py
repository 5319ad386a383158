#!/usr/bin/env python3
"""
Print tracking statistics from the saved state file.

Usage:
    python3 scripts/show_stats.py
    python3 scripts/show_stats.py --sanctioned   # also list banned/suspended players
"""

import argparse
import sys
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).parent.parent / ".env")

backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir / "src"))

from banwatch.config import Config
from banwatch.database.store import JSONFileStore
from banwatch.monitor.models import SANCTIONED_STATUSES
from banwatch.monitor.stats import collect_stats


def main():
    parser = argparse.ArgumentParser(description="Show ban watch tracking statistics")
    parser.add_argument("--sanctioned", action="store_true", help="List banned and suspended players")
    args = parser.parse_args()

    config = Config()
    state = JSONFileStore(config.state_file).load()
    stats = collect_stats(state)

    print(f"📊 Tracking state: {config.state_file}\n")
    print(f"   Total players:       {stats['total_players']}")
    print(f"   Active:              {stats['active']}")
    print(f"   Banned:              {stats['banned']}")
    print(f"   Suspended:           {stats['suspended']}")
    print(f"   Suspension expired:  {stats['suspension_expired']}")
    print(f"   Deleted:             {stats['deleted']}")
    print(f"   Total checks:        {stats['total_checks']}")
    print(f"   Last check:          {stats['last_check_at'] or 'never'}")

    if args.sanctioned:
        sanctioned = sorted(
            (record for record in state.entities.values() if record.status in SANCTIONED_STATUSES),
            key=lambda r: r.last_rank if r.last_rank is not None else 10 ** 9,
        )
        print(f"\n🚫 Sanctioned players ({len(sanctioned)}):")
        for record in sanctioned:
            rank = f"#{record.last_rank}" if record.last_rank is not None else "N/A"
            print(f"   {rank:>6}  {record.display_name}  [{record.status.value}]")


if __name__ == "__main__":
    main()
