"""
Shift & Daily Report Generator
================================

Renders the Markdown reports the operations team pastes into chat at the
end of each shift and once a day, from:

  - today's campaign snapshot (campanias_meta_ads)
  - yesterday's campaign snapshot, for the variation section
  - today's panel traffic rows (reporte_paneles)

Outputs:
    data/reports/turno_<date>_<shift>.md
    data/reports/diario_<date>.md

Sections that need a human (shift overview, manual reactivations, tasks)
are left as placeholders.

Usage:
    python scripts/generate_shift_report.py
    python scripts/generate_shift_report.py --shift tarde --date 2026-10-18
"""
from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.campaign_models import Adset, CampaignRow  # noqa: E402
from scripts.campaign_aggregator import (  # noqa: E402
    best_campaigns,
    expensive_adsets,
    flatten_campaigns,
    low_traffic_panels,
    message_variation,
    new_campaigns,
    objective_reached,
    paused_adsets,
    stalled_campaigns,
)
from scripts.lib import config  # noqa: E402
from scripts.lib.formatting import local_today, short_date  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.snapshot_store import (  # noqa: E402
    KIND_CAMPAIGNS,
    KIND_PANEL_TRAFFIC,
    load_for_date,
)
from scripts.lib.utils import atomic_write_text  # noqa: E402

logger = setup_logger("generate_shift_report")


# ---------------------------------------------------------------------------
# Line formatting
# ---------------------------------------------------------------------------

def describe_campaign(row: CampaignRow) -> str:
    cost = row.cost_per_message or 0.0
    return (
        f"{row.name} | Estado: {row.status} | Msj: {row.messages} | "
        f"${row.spend:.2f} | Costo/Msj: ${cost:.2f}"
    )


def describe_adset(pair: Tuple[CampaignRow, Adset]) -> str:
    row, adset = pair
    return (
        f"{row.name} | Adset: {adset.adset_name} | Msj: {adset.resultados} | "
        f"Costo/Resultado: ${adset.costoPorResultado:.2f}"
    )


def _bullets(lines: List[str], empty: str) -> str:
    return "\n".join(f"- {line}" for line in lines) if lines else f"- {empty}"


def panel_sections(
    panels: List[Dict[str, Any]],
    threshold: int,
) -> Tuple[List[str], List[str]]:
    """(summary lines, low-traffic lines)."""
    summary = []
    for panel in panels:
        origins = ", ".join(
            f"{origin}: {count}" for origin, count in (panel.get("detalle_por_origen") or {}).items()
        )
        summary.append(
            f"Panel {panel.get('panel')} | Msj: {panel.get('total_mensajes_hoy', 0)} | "
            f"Origenes: {origins}"
        )
    low = [
        f"Panel {p.get('panel')} ({p.get('total_mensajes_hoy', 0)})"
        for p in low_traffic_panels(panels, threshold)
    ]
    return summary, low


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def build_shift_report(
    report_date: date,
    shift: str,
    campaigns: List[CampaignRow],
    panels: List[Dict[str, Any]],
    objective: int = config.OBJECTIVE_MESSAGES,
    panel_threshold: int = config.PANEL_MESSAGE_THRESHOLD,
    cost_threshold: float = config.COST_PER_RESULT_THRESHOLD,
) -> str:
    summary, low = panel_sections(panels, panel_threshold)
    return "\n".join([
        f"📌 INFORME TURNO {shift.upper()} ({short_date(report_date)})",
        "Panorama Inicial:",
        "- [Completar con resumen del turno]",
        "",
        "> 🚀 CAMPAÑAS",
        "✅ NUEVAS:",
        _bullets([describe_campaign(r) for r in new_campaigns(campaigns, report_date)],
                 "(Sin registros automáticos)"),
        "",
        "♻ REACTIVACIONES 00:00",
        "- [Completar en base a control manual]",
        "",
        "🚨 Pausadas (últimas 24 h):",
        _bullets([describe_adset(p) for p in paused_adsets(campaigns)],
                 "(Sin adsets en pausa detectados)"),
        "",
        f"⚠️ Costos elevados (>${cost_threshold} por resultado):",
        _bullets([describe_adset(p) for p in expensive_adsets(campaigns, cost_threshold)],
                 "(Sin alertas)"),
        "",
        "🏁 LLEGARON AL OBJETIVO 🏁",
        _bullets([describe_campaign(r) for r in objective_reached(campaigns, objective)],
                 f"(Ninguna campaña alcanzó {objective} mensajes)"),
        "",
        "⚠ CAÍDAS:",
        _bullets([describe_campaign(r) for r in stalled_campaigns(campaigns)],
                 "(Sin caídas detectadas)"),
        "",
        "🖥 PANELES:",
        _bullets(summary, "(Sin información de paneles)"),
        "",
        f"Paneles a reforzar (< {panel_threshold} msj):",
        _bullets(low, "Todos los paneles superan el umbral"),
        "",
        "🛠 TAREAS REALIZADAS:",
        "- [Enumerar tareas del turno]",
        "",
        "📢 IMPORTANTE:",
        "- [Agregar avisos y recordatorios]",
    ])


def build_daily_report(
    report_date: date,
    campaigns_today: List[CampaignRow],
    campaigns_yesterday: List[CampaignRow],
    panels: List[Dict[str, Any]],
    panel_threshold: int = config.PANEL_MESSAGE_THRESHOLD,
    cost_threshold: float = config.COST_PER_RESULT_THRESHOLD,
) -> str:
    _, low = panel_sections(panels, panel_threshold)
    lines = [
        f"✨ Informe diario – {short_date(report_date)}",
        "",
        f"📊 Paneles con menos de {panel_threshold} msj. (REFORZAR EL CAUDAL):",
        _bullets(low, "Todos los paneles superan el umbral"),
        "",
        f"📊 Costo por resultado > ${cost_threshold} (chequear gasto y creatividades):",
        _bullets([describe_adset(p) for p in expensive_adsets(campaigns_today, cost_threshold)],
                 "Todas las campañas dentro del presupuesto esperado"),
        "",
        "✅ MEJORES CAMPAÑAS Y FLYERS",
        _bullets([describe_campaign(r) for r in best_campaigns(campaigns_today)],
                 "No hay campañas activas con mensajes registrados"),
    ]

    variation = message_variation(campaigns_today, campaigns_yesterday)
    if variation is not None:
        lines += [
            "",
            "📈 Variación vs ayer:",
            _bullets([f"{r.name} | Variación mensajes: {delta:+d}" for r, delta in variation],
                     "Sin cambios respecto a ayer"),
        ]
    return "\n".join(lines)


def run(report_date: date, shift: str, output_dir: Optional[Path] = None) -> Tuple[Path, Path]:
    output_dir = output_dir or config.REPORTS_DIR
    today = flatten_campaigns(load_for_date(KIND_CAMPAIGNS, report_date))
    yesterday = flatten_campaigns(load_for_date(KIND_CAMPAIGNS, report_date - timedelta(days=1)))
    panels = load_for_date(KIND_PANEL_TRAFFIC, report_date) or []

    if not today:
        logger.warning("No campaign data for %s, report sections will be empty", report_date)

    stamp = report_date.isoformat()
    shift_path = atomic_write_text(
        build_shift_report(report_date, shift, today, panels),
        output_dir / f"turno_{stamp}_{shift}.md",
    )
    daily_path = atomic_write_text(
        build_daily_report(report_date, today, yesterday, panels),
        output_dir / f"diario_{stamp}.md",
    )
    logger.info("Reports written: %s, %s", shift_path, daily_path)
    return shift_path, daily_path


def _parse_args():
    parser = argparse.ArgumentParser(description="Generate shift and daily Markdown reports")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Report date YYYY-MM-DD (default: today)")
    parser.add_argument("--shift", default="manana", help="Shift name (default: manana)")
    parser.add_argument("--output-dir", type=Path, default=None)
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    try:
        run(args.date or local_today(), args.shift.lower(), args.output_dir)
    except Exception as e:
        logger.error("Report generation failed: %s", e, exc_info=True)
        sys.exit(1)
