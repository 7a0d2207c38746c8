"""
Meta Ads Campaign Aggregator
==============================

Reads the campaign snapshot written by fetch_meta_ads (teams -> ad accounts
-> campaigns -> adsets) and turns it into flat reporting rows plus the
views the shift and daily reports are built from:

  - campaigns with activity (spend > 0 or messages > 0)
  - stalled campaigns (ACTIVE/PAUSED with zero messages, whatever the spend)
  - best campaigns (most messages, then cheapest message; unknown cost last)
  - new campaigns (name tagged with today's "(DD/MM)")
  - campaigns that reached the message objective
  - expensive and paused adsets
  - day-over-day message variation, matched by campaign id

Outputs data/processed/resumen_campanias/<date>.json.

Usage:
    python scripts/campaign_aggregator.py
    python scripts/campaign_aggregator.py --date 2026-10-18
"""
from __future__ import annotations

import argparse
import math
import re
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.campaign_models import (  # noqa: E402
    ACTIVE,
    ERROR_STATUS,
    PAUSED,
    Adset,
    CampaignRow,
    CampaignSnapshot,
)
from scripts.lib import config  # noqa: E402
from scripts.lib.errors import DataFetchError, SchemaValidationError  # noqa: E402
from scripts.lib.formatting import local_today, short_date  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.snapshot_store import (  # noqa: E402
    KIND_CAMPAIGN_SUMMARY,
    KIND_CAMPAIGNS,
    load_for_date,
    save_snapshot,
)

logger = setup_logger("campaign_aggregator")

_NAME_DATE = re.compile(r"\((\d{2}/\d{2})\)")


# ---------------------------------------------------------------------------
# Flattening
# ---------------------------------------------------------------------------

def cost_per_result(spend: float, results: int) -> float:
    return spend / results if results > 0 else 0.0


def flatten_campaigns(snapshot: CampaignSnapshot | Dict[str, Any] | None) -> List[CampaignRow]:
    """One row per campaign, in snapshot order."""
    if snapshot is None:
        return []
    if not isinstance(snapshot, CampaignSnapshot):
        try:
            snapshot = CampaignSnapshot.model_validate(snapshot)
        except ValidationError as e:
            raise SchemaValidationError(f"Unreadable campaign snapshot: {e}", field="datos") from e

    rows = []
    for team in snapshot.datos:
        for account in team.cuentas:
            for campaign in account.campanias:
                rows.append(CampaignRow(
                    team=team.nombre,
                    account_id=account.id,
                    account_name=account.nombre or account.id,
                    campaign_id=campaign.id,
                    name=campaign.nombre or campaign.id,
                    status=campaign.estado or "DESCONOCIDO",
                    messages=campaign.messages,
                    spend=campaign.spend,
                    cost_per_message=campaign.metricas_diarias.costoPorMensaje,
                    cost_per_result=cost_per_result(campaign.spend, campaign.messages),
                    adsets=campaign.adsets,
                    error=campaign.error or campaign.estado == ERROR_STATUS,
                ))
    return rows


# ---------------------------------------------------------------------------
# Campaign views
# ---------------------------------------------------------------------------

def with_activity(rows: List[CampaignRow]) -> List[CampaignRow]:
    return [r for r in rows if not r.error and (r.spend > 0 or r.messages > 0)]


def stalled_campaigns(rows: List[CampaignRow]) -> List[CampaignRow]:
    return [r for r in rows if r.status in (ACTIVE, PAUSED) and r.messages == 0]


def best_campaigns(rows: List[CampaignRow], limit: int = config.TOP_CAMPAIGNS_LIMIT) -> List[CampaignRow]:
    candidates = [r for r in rows if r.messages > 0]
    candidates.sort(key=lambda r: (
        -r.messages,
        r.cost_per_message if r.cost_per_message is not None else math.inf,
    ))
    return candidates[:limit]


def new_campaigns(rows: List[CampaignRow], report_date: date | datetime) -> List[CampaignRow]:
    tag = short_date(report_date)
    matches = []
    for r in rows:
        found = _NAME_DATE.search(r.name)
        if found and found.group(1) == tag:
            matches.append(r)
    return matches


def objective_reached(rows: List[CampaignRow], objective: int = config.OBJECTIVE_MESSAGES) -> List[CampaignRow]:
    return [r for r in rows if r.messages >= objective]


def expensive_adsets(
    rows: List[CampaignRow],
    threshold: float = config.COST_PER_RESULT_THRESHOLD,
) -> List[Tuple[CampaignRow, Adset]]:
    return [(r, a) for r in rows for a in r.adsets if a.costoPorResultado > threshold]


def paused_adsets(rows: List[CampaignRow]) -> List[Tuple[CampaignRow, Adset]]:
    return [(r, a) for r in rows for a in r.adsets if a.status == PAUSED]


def message_variation(
    today: List[CampaignRow],
    yesterday: List[CampaignRow],
    limit: int = config.VARIATION_LIMIT,
) -> Optional[List[Tuple[CampaignRow, int]]]:
    """
    Message-count change per campaign present in both snapshots.

    Returns None when either side is empty (nothing to compare), otherwise
    the non-zero deltas sorted by magnitude, largest first.
    """
    if not today or not yesterday:
        return None
    previous = {r.campaign_id: r for r in yesterday}
    changes = [
        (r, r.messages - previous[r.campaign_id].messages)
        for r in today
        if r.campaign_id in previous
    ]
    changes = [(r, delta) for r, delta in changes if delta != 0]
    changes.sort(key=lambda pair: abs(pair[1]), reverse=True)
    return changes[:limit]


def low_traffic_panels(
    panel_rows: List[Dict[str, Any]],
    threshold: int = config.PANEL_MESSAGE_THRESHOLD,
) -> List[Dict[str, Any]]:
    return [p for p in panel_rows if (p.get("total_mensajes_hoy") or 0) < threshold]


# ---------------------------------------------------------------------------
# Summary snapshot
# ---------------------------------------------------------------------------

def _row_summary(row: CampaignRow) -> Dict[str, Any]:
    return {
        "id": row.campaign_id,
        "nombre": row.name,
        "equipo": row.team,
        "cuentaId": row.account_id,
        "estado": row.status,
        "messages": row.messages,
        "spend": round(row.spend, 2),
        "costoPorMensaje": row.cost_per_message,
        "costoPorResultado": round(row.cost_per_result, 2),
    }


def _adset_summary(pair: Tuple[CampaignRow, Adset]) -> Dict[str, Any]:
    row, adset = pair
    return {
        "campania": row.name,
        "adset": adset.adset_name,
        "resultados": adset.resultados,
        "costoPorResultado": adset.costoPorResultado,
    }


def build_summary(
    today: List[CampaignRow],
    yesterday: List[CampaignRow],
    report_date: date,
) -> Dict[str, Any]:
    variation = message_variation(today, yesterday)
    return {
        "fecha": report_date.isoformat(),
        "total_campanias": len(today),
        "con_actividad": [_row_summary(r) for r in with_activity(today)],
        "caidas": [_row_summary(r) for r in stalled_campaigns(today)],
        "mejores": [_row_summary(r) for r in best_campaigns(today)],
        "nuevas": [_row_summary(r) for r in new_campaigns(today, report_date)],
        "objetivo": [_row_summary(r) for r in objective_reached(today)],
        "adsets_caros": [_adset_summary(p) for p in expensive_adsets(today)],
        "adsets_pausados": [_adset_summary(p) for p in paused_adsets(today)],
        "variacion": None if variation is None else [
            {"id": r.campaign_id, "nombre": r.name, "diferencia": delta}
            for r, delta in variation
        ],
    }


def run(day: date) -> Dict[str, Any]:
    today_raw = load_for_date(KIND_CAMPAIGNS, day)
    if today_raw is None:
        raise DataFetchError(
            f"No campaign snapshot for {day.isoformat()}", source=KIND_CAMPAIGNS,
        )
    yesterday_raw = load_for_date(KIND_CAMPAIGNS, day - timedelta(days=1))

    today = flatten_campaigns(today_raw)
    yesterday = flatten_campaigns(yesterday_raw)
    if yesterday_raw is None:
        logger.info("No previous campaign snapshot, variation section skipped")

    summary = build_summary(today, yesterday, day)
    save_snapshot(KIND_CAMPAIGN_SUMMARY, summary, day)
    logger.info(
        "Campaign summary for %s: %d campaigns, %d with activity, %d stalled",
        day.isoformat(), len(today), len(summary["con_actividad"]), len(summary["caidas"]),
    )
    return summary


def _parse_args():
    parser = argparse.ArgumentParser(description="Aggregate Meta Ads campaign snapshot")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Snapshot date YYYY-MM-DD (default: today)")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    try:
        run(args.date or local_today())
    except Exception as e:
        logger.error("Campaign aggregation failed: %s", e, exc_info=True)
        sys.exit(1)
