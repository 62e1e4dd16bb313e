#!/usr/bin/env python
"""
Run Reconciliation
Runs one reconciliation pass from the command line, for deployments that
drive the passes from an external cron instead of the in-process scheduler
"""

import sys
import os
import argparse
import json
import logging
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import init_db
from services.reconciliation_service import reconciliation_service


logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL), format=settings.LOG_FORMAT)
logger = logging.getLogger(__name__)


def parse_instant(value: str) -> datetime:
    """ISO-8601 instant; naive values are read in the reference timezone"""
    return reconciliation_service.clock.assume_local(datetime.fromisoformat(value))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run a DoseTrack reconciliation pass")
    parser.add_argument("command", choices=["tick", "reset"], help="tick: missed/due detection, reset: daily reset")
    parser.add_argument("--at", type=parse_instant, default=None, help="Instant to reconcile at (default: now)")
    parser.add_argument("--init-db", action="store_true", help="Create tables before running")
    args = parser.parse_args(argv)

    if args.init_db:
        init_db()

    if args.command == "tick":
        result = reconciliation_service.run_minute_tick(args.at)
    else:
        result = reconciliation_service.run_daily_reset(args.at)

    print(json.dumps(result.to_dict(), indent=2, default=str))
    return 1 if result.failed_count else 0


if __name__ == "__main__":
    sys.exit(main())
