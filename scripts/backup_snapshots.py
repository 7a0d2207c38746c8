"""
Daily Snapshot Archive
=======================

Copies one day's snapshots (raw Callbell and CRM data, analyzer outputs,
campaign data) into data/archive/<date>/ so later runs can overwrite the
working store without losing history. Defaults to yesterday.

Usage:
    python scripts/backup_snapshots.py
    python scripts/backup_snapshots.py --date 2026-10-18
"""
from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scripts.lib.formatting import local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.snapshot_store import (  # noqa: E402
    KIND_CAMPAIGN_SUMMARY,
    KIND_CAMPAIGNS,
    KIND_CONVERSATIONS,
    KIND_CRM_CONTACTS,
    KIND_CRM_PANELS,
    KIND_PANEL_TRAFFIC,
    KIND_RESPONSES,
    KIND_TEAMS,
    archive_day,
)

logger = setup_logger("backup_snapshots")

ARCHIVED_KINDS = [
    KIND_CONVERSATIONS,
    KIND_TEAMS,
    KIND_RESPONSES,
    KIND_PANEL_TRAFFIC,
    KIND_CAMPAIGNS,
    KIND_CAMPAIGN_SUMMARY,
    KIND_CRM_CONTACTS,
    KIND_CRM_PANELS,
]


def _parse_args():
    parser = argparse.ArgumentParser(description="Archive one day of snapshots")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Day to archive YYYY-MM-DD (default: yesterday)")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    day = args.date or (local_today() - timedelta(days=1))
    try:
        archive_day(day, ARCHIVED_KINDS)
    except OSError as e:
        logger.error("Archive for %s failed: %s", day.isoformat(), e, exc_info=True)
        sys.exit(1)
