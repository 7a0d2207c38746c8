"""
Panel Reporting — Entry Point
===============================

Runs the full batch pipeline (fetch, analyze, report) for today.

Run: python main.py [--skip-fetch] [--shift tarde] [--date YYYY-MM-DD]
"""

from scripts.lib import config
from scripts.lib.logger import setup_logger

logger = setup_logger("panel-reports")

if __name__ == "__main__":
    from scripts.pipeline_orchestrator import main

    logger.info("=" * 60)
    logger.info("  PANEL REPORTING — Messaging & Ads Operations")
    logger.info("=" * 60)
    logger.info(f"  Data dir    : {config.DATA_DIR}")
    logger.info(f"  Timezone    : {config.REPORT_TIMEZONE}")
    logger.info(f"  Callbell    : {len(config.CALLBELL_API_KEYS)} account(s)")
    logger.info("=" * 60)

    main()
