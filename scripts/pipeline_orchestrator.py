"""
Panel Reporting — Pipeline Orchestrator
=========================================
Chains the batch scripts in order with step tracking and a run summary.

Pipeline phases:
    1. Fetch  (parallel) — Callbell conversations/teams, Meta Ads campaigns,
                          Clientify contacts
    2. Analyze           — response latency, panel traffic, campaign summary,
                          CRM panel loads
    3. Report            — shift + daily Markdown reports

A failed step is logged and the pipeline moves on; downstream steps read
the last good snapshot. The process exits 1 if any step failed.

Usage:
    python scripts/pipeline_orchestrator.py                   # full pipeline
    python scripts/pipeline_orchestrator.py --phase analyze   # one phase
    python scripts/pipeline_orchestrator.py --skip-fetch
    python scripts/pipeline_orchestrator.py --date 2026-10-18 --shift tarde
    python scripts/pipeline_orchestrator.py --dry-run
"""
from __future__ import annotations

import argparse
import asyncio
import runpy
import sys
import time
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scripts.lib.errors import PipelineStepError  # noqa: E402
from scripts.lib.formatting import local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402

logger = setup_logger("pipeline_orchestrator")

Step = Tuple[str, str, List[str]]


# ---------------------------------------------------------------------------
# Pipeline step definitions
# ---------------------------------------------------------------------------
def build_phases(day: date, shift: str) -> dict:
    day_args = ["--date", day.isoformat()]
    return {
        "fetch": ("Fetch", [
            ("Fetch Callbell", "fetch_callbell.py", day_args),
            ("Fetch Meta Ads", "fetch_meta_ads.py", day_args),
            ("Fetch Clientify", "fetch_clientify.py", day_args),
        ], True),
        "analyze": ("Analyze", [
            ("Analyze Responses", "response_analyzer.py", day_args),
            ("Panel Traffic", "panel_traffic.py", day_args),
            ("Campaign Summary", "campaign_aggregator.py", day_args),
            ("CRM Panel Loads", "crm_panel_report.py", day_args),
        ], False),
        "report": ("Report", [
            ("Shift Reports", "generate_shift_report.py", day_args + ["--shift", shift]),
        ], False),
    }


# ---------------------------------------------------------------------------
# Step execution
# ---------------------------------------------------------------------------
def run_script(script_name: str, args: Sequence[str] = ()) -> Tuple[bool, float, Optional[str]]:
    """
    Execute a pipeline script in-process using runpy.

    Returns:
        Tuple of (success, duration_seconds, error_message).
    """
    script_path = SCRIPT_DIR / script_name

    if not script_path.exists():
        return False, 0.0, f"Script not found: {script_path}"

    saved_argv = sys.argv
    sys.argv = [str(script_path), *args]
    start = time.time()
    try:
        runpy.run_path(str(script_path), run_name="__main__")
        return True, time.time() - start, None
    except SystemExit as e:
        duration = time.time() - start
        if e.code == 0 or e.code is None:
            return True, duration, None
        return False, duration, f"Exited with code {e.code}"
    except Exception as e:
        return False, time.time() - start, str(PipelineStepError(script_name, e))
    finally:
        sys.argv = saved_argv


def _step_result(name: str, script: str, status: str, duration: float, error: Optional[str]) -> dict:
    return {
        "name": name,
        "script": script,
        "status": status,
        "duration_ms": round(duration * 1000),
        "error": error,
    }


async def run_scripts_parallel(steps: List[Step]) -> List[dict]:
    """Run independent scripts as parallel subprocesses."""
    async def _run_one(step_name: str, script_name: str, args: List[str]) -> dict:
        script_path = SCRIPT_DIR / script_name
        if not script_path.exists():
            return _step_result(step_name, script_name, "failed", 0.0,
                                f"Script not found: {script_path}")

        start = time.time()
        proc = await asyncio.create_subprocess_exec(
            sys.executable, str(script_path), *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(PROJECT_ROOT),
        )
        _, stderr = await proc.communicate()
        duration = time.time() - start

        if proc.returncode == 0:
            logger.info("%s completed in %.1fs", step_name, duration)
            return _step_result(step_name, script_name, "success", duration, None)

        error_msg = stderr.decode("utf-8", errors="replace")[-500:]
        logger.error(
            "%s failed (exit %d) in %.1fs: %s",
            step_name, proc.returncode, duration, error_msg[:200],
        )
        return _step_result(step_name, script_name, "failed", duration, error_msg)

    return list(await asyncio.gather(*(_run_one(*step) for step in steps)))


def run_steps_sequential(steps: List[Step], dry_run: bool = False) -> List[dict]:
    results = []
    for step_name, script_name, args in steps:
        if dry_run:
            logger.info("[DRY RUN] Would execute: %s (%s %s)", step_name, script_name, " ".join(args))
            results.append(_step_result(step_name, script_name, "skipped", 0.0, None))
            continue

        logger.info("Running: %s (%s)", step_name, script_name)
        success, duration, error = run_script(script_name, args)
        if success:
            logger.info("%s completed in %.1fs", step_name, duration)
        else:
            logger.warning("%s failed in %.1fs: %s, continuing pipeline", step_name, duration, error)
        results.append(_step_result(
            step_name, script_name, "success" if success else "failed", duration, error,
        ))
    return results


def summarize(all_steps: List[dict], elapsed: float) -> int:
    """Log the run summary; returns the number of failed steps."""
    successful = sum(1 for s in all_steps if s["status"] == "success")
    failed = sum(1 for s in all_steps if s["status"] == "failed")
    skipped = sum(1 for s in all_steps if s["status"] == "skipped")

    logger.info("=" * 60)
    logger.info("  Pipeline Complete")
    logger.info("  Total steps: %d", len(all_steps))
    logger.info("  Successful:  %d", successful)
    logger.info("  Failed:      %d", failed)
    if skipped:
        logger.info("  Skipped:     %d", skipped)
    logger.info("  Duration:    %.1fs", elapsed)
    logger.info("=" * 60)

    for step in all_steps:
        icon = {"success": "OK", "failed": "FAIL"}.get(step["status"], "SKIP")
        logger.info(
            "  [%4s] %-25s %6dms%s",
            icon, step["name"], step["duration_ms"],
            f"  {step['error'][:80]}" if step["error"] else "",
        )
    return failed


# ---------------------------------------------------------------------------
# Main pipeline
# ---------------------------------------------------------------------------
def main():
    parser = argparse.ArgumentParser(description="Panel reporting pipeline orchestrator")
    parser.add_argument("--phase", choices=["fetch", "analyze", "report"],
                        help="Run only a specific phase")
    parser.add_argument("--skip-fetch", action="store_true", help="Skip the fetch phase")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Report date YYYY-MM-DD (default: today)")
    parser.add_argument("--shift", default="manana", help="Shift name for the shift report")
    parser.add_argument("--dry-run", action="store_true", help="Log steps without executing")
    args = parser.parse_args()

    day = args.date or local_today()
    phase_map = build_phases(day, args.shift.lower())

    logger.info("=" * 60)
    logger.info("  PANEL REPORTING — Pipeline Orchestrator (%s)", day.isoformat())
    logger.info("=" * 60)

    if args.phase:
        phases = [phase_map[args.phase]]
    else:
        phases = [phase_map[name] for name in ("fetch", "analyze", "report")
                  if not (name == "fetch" and args.skip_fetch)]

    pipeline_start = time.time()
    all_steps: List[dict] = []
    try:
        for phase_name, steps, parallel in phases:
            logger.info("-" * 40)
            logger.info("Phase: %s%s", phase_name, " (parallel)" if parallel else "")
            logger.info("-" * 40)

            if parallel and not args.dry_run:
                all_steps.extend(asyncio.run(run_scripts_parallel(steps)))
            else:
                all_steps.extend(run_steps_sequential(steps, dry_run=args.dry_run))
    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        sys.exit(130)

    if summarize(all_steps, time.time() - pipeline_start) > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
