"""
CRM Panel Load Report
======================

Counts, per panel, the contacts the agents tagged in Clientify remarks on
the report day and how many of them loaded credit ("!" marker), broken down
by campaign letter. Only codes whose DD-MM matches the report date count;
a contact tagged twice today counts twice.

Outputs data/processed/reporte_paneles_crm/<date>.json as a list of rows
sorted by panel number:
    {panel, total_mensajes_hoy, cargas_hoy, porcentaje_carga, campanias,
     detalle_por_origen}

Usage:
    python scripts/crm_panel_report.py
    python scripts/crm_panel_report.py --date 2026-10-18
    python scripts/crm_panel_report.py --input contactos_crm.json
"""
from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.crm_models import CrmContact  # noqa: E402
from scripts.lib.errors import DataFetchError, SchemaValidationError  # noqa: E402
from scripts.lib.formatting import local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.remarks import extract_remark_entries  # noqa: E402
from scripts.lib.run_context import RunContext  # noqa: E402
from scripts.lib.snapshot_store import (  # noqa: E402
    KIND_CRM_CONTACTS,
    KIND_CRM_PANELS,
    load_for_date,
    save_snapshot,
)
from scripts.lib.utils import read_json  # noqa: E402

logger = setup_logger("crm_panel_report")

ORIGIN = "clientify"


def load_percentage(loads: int, total: int) -> str:
    pct = (loads / total * 100) if total else 0.0
    return f"{pct:.1f}%"


def parse_crm_contacts(raw: Any, ctx: Optional[RunContext] = None) -> List[CrmContact]:
    if not isinstance(raw, list):
        raise SchemaValidationError(
            f"Expected a list of CRM contacts, got {type(raw).__name__}",
        )
    contacts = []
    for index, item in enumerate(raw):
        try:
            contacts.append(CrmContact.model_validate(item))
        except ValidationError as e:
            if ctx is not None:
                ctx.record_error("parse_crm_contact", e, index=index)
            else:
                logger.warning("Skipping unreadable CRM contact #%d: %s", index, e)
    return contacts


def build_crm_panel_report(
    contacts: Iterable[CrmContact],
    day: date,
    ctx: Optional[RunContext] = None,
) -> List[Dict[str, Any]]:
    panels: Dict[str, Dict[str, Any]] = {}
    tagged_contacts = 0

    for contact in contacts:
        entries = [e for e in extract_remark_entries(contact.remarks) if e.is_on(day.day, day.month)]
        if not entries:
            continue
        tagged_contacts += 1
        if len(entries) > 1:
            logger.debug("Contact %s has %d codes for today", contact.id, len(entries))

        for entry in entries:
            info = panels.setdefault(entry.panel, {"total": 0, "cargas": 0, "campanias": {}})
            info["total"] += 1
            if entry.is_load:
                info["cargas"] += 1
            label = entry.campaign_label
            info["campanias"][label] = info["campanias"].get(label, 0) + 1

    if ctx is not None:
        ctx.set_metric("contactos_con_codigo_hoy", tagged_contacts)

    return [
        {
            "panel": panel,
            "total_mensajes_hoy": info["total"],
            "cargas_hoy": info["cargas"],
            "porcentaje_carga": load_percentage(info["cargas"], info["total"]),
            "campanias": info["campanias"],
            "detalle_por_origen": [ORIGIN],
        }
        for panel, info in sorted(panels.items(), key=lambda item: int(item[0]))
    ]


def run(day: date, input_path: Optional[Path] = None) -> List[Dict[str, Any]]:
    ctx = RunContext("crm_panel_report")

    raw = read_json(input_path) if input_path else load_for_date(KIND_CRM_CONTACTS, day)
    if raw is None:
        raise DataFetchError(
            f"No CRM contacts found for {day.isoformat()}", source=KIND_CRM_CONTACTS,
        )

    contacts = parse_crm_contacts(raw, ctx)
    rows = build_crm_panel_report(contacts, day, ctx)

    total = sum(r["total_mensajes_hoy"] for r in rows)
    loads = sum(r["cargas_hoy"] for r in rows)
    ctx.set_metric("contactos", len(contacts))
    ctx.set_metric("paneles", len(rows))
    ctx.set_metric("cargas", loads)

    save_snapshot(KIND_CRM_PANELS, rows, day)
    ctx.write_log()

    for row in rows:
        logger.info(
            "Panel %-6s %5d tagged  %5d loads  %s",
            row["panel"], row["total_mensajes_hoy"], row["cargas_hoy"], row["porcentaje_carga"],
        )
    logger.info("Overall load rate for %s: %d/%d (%s)",
                day.isoformat(), loads, total, load_percentage(loads, total))
    return rows


def _parse_args():
    parser = argparse.ArgumentParser(description="Per-panel load report from CRM remarks")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Report date YYYY-MM-DD (default: today)")
    parser.add_argument("--input", type=Path, default=None,
                        help="Read CRM contacts from this JSON file instead of the raw store")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    try:
        run(args.date or local_today(), args.input)
    except Exception as e:
        logger.error("CRM panel report failed: %s", e, exc_info=True)
        sys.exit(1)
