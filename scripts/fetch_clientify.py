"""
Clientify Contact Fetcher
==========================

Pulls the CRM contacts created or modified during the report day from the
Clientify REST API and writes them to the raw snapshot store:

    data/raw/contactos_crm/<date>.json   list of contacts (id, names, remarks, tags, dates)

The API is queried twice (by `created` and by `modified`), both in
parallel; each query follows the `next` page links. Contacts are merged by
id and filtered again to the local day, since agents append panel codes to
the remarks of older contacts too.

Usage:
    python scripts/fetch_clientify.py                # today
    python scripts/fetch_clientify.py --yesterday
"""
from __future__ import annotations

import argparse
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.conversation_models import parse_timestamp  # noqa: E402
from scripts.lib import config  # noqa: E402
from scripts.lib.errors import APIError, ConfigError  # noqa: E402
from scripts.lib.formatting import local_day_bounds, local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.run_context import RunContext  # noqa: E402
from scripts.lib.snapshot_store import KIND_CRM_CONTACTS, save_snapshot  # noqa: E402
from scripts.lib.utils import request_json  # noqa: E402

logger = setup_logger("fetch_clientify")

SERVICE = "clientify"
PAGE_PAUSE_SECONDS = 0.5
DATE_FIELDS = ("created", "modified")
KEPT_FIELDS = ("id", "first_name", "last_name", "remarks", "tags", "created", "modified")


class ClientifyClient:
    """Clientify REST client bound to one API token."""

    def __init__(self, api_token: str, base_url: str = config.CLIENTIFY_BASE_URL):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")

    def _get(self, url: str, params: Optional[dict] = None) -> Any:
        return request_json(
            SERVICE, url, params=params,
            headers={"Authorization": f"Token {self.api_token}"},
        )

    def contacts_page(
        self,
        field: str,
        since: datetime,
        until: datetime,
        next_url: Optional[str] = None,
    ) -> dict:
        """One page of contacts whose *field* falls in [since, until)."""
        if next_url:
            return self._get(next_url)
        return self._get(f"{self.base_url}/contacts/", {
            f"{field}[gte]": _utc_iso(since),
            f"{field}[lt]": _utc_iso(until),
        })


def _utc_iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def slim_contact(raw: dict) -> dict:
    return {key: raw.get(key) for key in KEPT_FIELDS}


def touched_in_window(contact: dict, since: datetime, until: datetime) -> bool:
    for field in DATE_FIELDS:
        stamp = parse_timestamp(contact.get(field))
        if stamp is not None and since <= stamp < until:
            return True
    return False


def fetch_contacts_by(
    client: ClientifyClient,
    field: str,
    since: datetime,
    until: datetime,
    ctx: RunContext,
    max_pages: int = config.CLIENTIFY_MAX_PAGES,
) -> List[dict]:
    """Follow the page links of one date-filtered query. Stops at the first failed page."""
    contacts: List[dict] = []
    next_url = None
    for page in range(1, max_pages + 1):
        try:
            data = client.contacts_page(field, since, until, next_url)
        except APIError as e:
            ctx.record_error(
                "clientify.contacts", e, filtro=field, pagina=page, status=e.status_code,
            )
            break

        results = data.get("results")
        if not isinstance(results, list):
            ctx.record_alert("Página sin resultados", filtro=field, pagina=page)
            break
        contacts.extend(slim_contact(c) for c in results if isinstance(c, dict))
        logger.info("[%s] Page %d: %d contacts (total %d)", field, page, len(results), len(contacts))

        next_url = data.get("next")
        if not next_url:
            break
        time.sleep(PAGE_PAUSE_SECONDS)
    else:
        ctx.record_alert("Límite de páginas alcanzado", filtro=field, paginas=max_pages)

    return contacts


def merge_contacts(*batches: List[dict]) -> List[dict]:
    """Union by id; later batches win, first-seen order is kept."""
    merged: Dict[str, dict] = {}
    for batch in batches:
        for contact in batch:
            if contact.get("id") is None:
                continue
            merged[str(contact["id"])] = contact
    return list(merged.values())


def run(day: date) -> Dict[str, int]:
    if not config.CLIENTIFY_API_TOKEN:
        raise ConfigError("Missing CLIENTIFY_API_TOKEN environment variable")

    ctx = RunContext("fetch_clientify")
    since, until = local_day_bounds(day)
    client = ClientifyClient(config.CLIENTIFY_API_TOKEN)

    with ThreadPoolExecutor(max_workers=len(DATE_FIELDS)) as pool:
        batches = list(pool.map(
            lambda field: fetch_contacts_by(client, field, since, until, ctx), DATE_FIELDS,
        ))

    contacts = [c for c in merge_contacts(*batches) if touched_in_window(c, since, until)]

    for field, batch in zip(DATE_FIELDS, batches):
        ctx.set_metric(f"contactos_{field}", len(batch))
    ctx.set_metric("contactos", len(contacts))
    if not contacts:
        ctx.record_alert("Sin contactos CRM en la ventana", fecha=day.isoformat())

    save_snapshot(KIND_CRM_CONTACTS, contacts, day)
    ctx.write_log()
    logger.info("Clientify extraction for %s: %d contacts", day.isoformat(), len(contacts))
    return {"contactos": len(contacts), "errores": len(ctx.errors)}


def _parse_args():
    parser = argparse.ArgumentParser(description="Fetch Clientify contacts for the day")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Day to fetch YYYY-MM-DD (default: today)")
    parser.add_argument("--yesterday", action="store_true", help="Fetch yesterday")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    target = args.date or local_today()
    if args.yesterday:
        target -= timedelta(days=1)
    try:
        run(target)
    except Exception as e:
        logger.error("Clientify extraction failed: %s", e, exc_info=True)
        sys.exit(1)
