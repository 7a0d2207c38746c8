"""
Panel Traffic Report
=====================

Counts the conversations each panel received on the report day, broken
down by ad origin and by assigned agent. Agents are mapped to panels via
the team membership snapshot (admins are ignored); conversations whose
agent is unknown are reported under "Sin Asignar".

Outputs data/processed/reporte_paneles/<date>.json as a list of rows:
    {panel, total_mensajes_hoy, detalle_por_origen, totales_por_usuario}

Usage:
    python scripts/panel_traffic.py
    python scripts/panel_traffic.py --date 2026-10-18
"""
from __future__ import annotations

import argparse
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.conversation_models import Conversation, TeamWithMembers  # noqa: E402
from scripts.lib import config  # noqa: E402
from scripts.lib.errors import DataFetchError  # noqa: E402
from scripts.lib.formatting import local_day_bounds, local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.panel_names import normalize_panel_name  # noqa: E402
from scripts.lib.run_context import RunContext  # noqa: E402
from scripts.lib.snapshot_store import (  # noqa: E402
    KIND_CONVERSATIONS,
    KIND_PANEL_TRAFFIC,
    KIND_TEAMS,
    load_for_date,
    save_snapshot,
)
from scripts.response_analyzer import parse_conversations  # noqa: E402

logger = setup_logger("panel_traffic")

UNKNOWN_USER = "sin_usuario"


def build_member_panels(
    teams_by_account: Dict[str, List[Dict[str, Any]]],
    admins: Iterable[str] = (),
) -> Dict[str, str]:
    """Map agent email -> panel display name."""
    admin_set = {a.lower() for a in admins}
    mapping: Dict[str, str] = {}
    for teams in teams_by_account.values():
        for raw_team in teams or []:
            team = TeamWithMembers.model_validate(raw_team)
            panel = normalize_panel_name(team.name)
            for member in team.members:
                if member.email and member.email.lower() not in admin_set:
                    mapping[member.email] = panel
    return mapping


def build_panel_traffic(
    conversations: Iterable[Conversation],
    member_panels: Dict[str, str],
    since: datetime,
    until: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    report: Dict[str, Dict[str, Any]] = {}
    for conversation in conversations:
        created = conversation.created_at
        if created is None or created < since or (until is not None and created >= until):
            continue

        user = conversation.assigned_user or UNKNOWN_USER
        panel = member_panels.get(user, config.UNASSIGNED_PANEL)
        origin = conversation.resolved_ad_source_url() or config.NO_CAMPAIGN_ORIGIN

        entry = report.setdefault(panel, {"total": 0, "origenes": {}, "usuarios": {}})
        entry["total"] += 1
        entry["origenes"][origin] = entry["origenes"].get(origin, 0) + 1
        entry["usuarios"][user] = entry["usuarios"].get(user, 0) + 1

    return [
        {
            "panel": panel,
            "total_mensajes_hoy": info["total"],
            "detalle_por_origen": info["origenes"],
            "totales_por_usuario": info["usuarios"],
        }
        for panel, info in report.items()
    ]


def run(day: date) -> List[Dict[str, Any]]:
    ctx = RunContext("panel_traffic")

    raw_conversations = load_for_date(KIND_CONVERSATIONS, day)
    if raw_conversations is None:
        raise DataFetchError(
            f"No conversations found for {day.isoformat()}", source=KIND_CONVERSATIONS,
        )
    teams = load_for_date(KIND_TEAMS, day) or {}
    if not teams:
        ctx.record_alert("Sin equipos para mapear agentes", fecha=day.isoformat())

    member_panels = build_member_panels(teams, config.PANEL_ADMIN_EMAILS)
    since, until = local_day_bounds(day)
    rows = build_panel_traffic(
        parse_conversations(raw_conversations, ctx), member_panels, since, until,
    )

    ctx.set_metric("paneles", len(rows))
    save_snapshot(KIND_PANEL_TRAFFIC, rows, day)
    ctx.write_log()
    for row in rows:
        logger.info("%-20s %5d conversations", row["panel"], row["total_mensajes_hoy"])
    return rows


def _parse_args():
    parser = argparse.ArgumentParser(description="Per-panel traffic report")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Report date YYYY-MM-DD (default: today)")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    try:
        run(args.date or local_today())
    except Exception as e:
        logger.error("Panel traffic report failed: %s", e, exc_info=True)
        sys.exit(1)
