"""
Callbell Data Fetcher
======================

Pulls the day's contacts (with their messages and details) and the team
membership lists from the Callbell REST API for every configured API key,
and writes them to the raw snapshot store:

    data/raw/contactos/<date>.json   list of contacts with `messages` + `info`
    data/raw/equipos/<date>.json     {key suffix: [team + membersList]}

Contacts are listed newest first; paging stops on a short page or after
CALLBELL_EMPTY_PAGES_LIMIT consecutive pages with nothing inside the window.
A contact whose messages or details cannot be fetched is kept with a
`fetch_error` sentinel and no messages; the run goes on.

Usage:
    python scripts/fetch_callbell.py                # today
    python scripts/fetch_callbell.py --yesterday
"""
from __future__ import annotations

import argparse
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.conversation_models import parse_timestamp  # noqa: E402
from scripts.lib import config  # noqa: E402
from scripts.lib.errors import APIError, ConfigError, error_sentinel, sentinel_from_exception  # noqa: E402
from scripts.lib.formatting import local_day_bounds, local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.run_context import RunContext  # noqa: E402
from scripts.lib.snapshot_store import KIND_CONVERSATIONS, KIND_TEAMS, save_snapshot  # noqa: E402
from scripts.lib.utils import request_json  # noqa: E402

logger = setup_logger("fetch_callbell")

SERVICE = "callbell"
PAGE_PAUSE_SECONDS = 0.3
DETAIL_WORKERS = 8


class CallbellClient:
    """Callbell REST client bound to one API key."""

    def __init__(self, api_key: str, base_url: str = config.CALLBELL_BASE_URL):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    @property
    def label(self) -> str:
        return self.api_key[-6:]

    def _get(self, path: str, params: Optional[dict] = None) -> Any:
        return request_json(
            SERVICE,
            f"{self.base_url}/{path.lstrip('/')}",
            params=params,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def list_contacts(self, page: int) -> List[dict]:
        data = self._get("contacts", {"page": page, "sort": "-createdAt"})
        return data.get("contacts") or []

    def contact_messages(self, contact_uuid: str) -> List[dict]:
        return self._get(f"contacts/{contact_uuid}/messages").get("messages") or []

    def contact_info(self, contact_uuid: str) -> dict:
        return self._get(f"contacts/{contact_uuid}")

    def teams(self) -> List[dict]:
        return self._get("teams").get("teams") or []

    def team_members(self, team_uuid: str) -> List[dict]:
        return self._get(f"teams/{team_uuid}/members").get("users") or []


def _in_window(contact: dict, since: datetime, until: datetime) -> bool:
    created = parse_timestamp(contact.get("createdAt"))
    return created is not None and since <= created < until


def _older_than(contact: dict, since: datetime) -> bool:
    created = parse_timestamp(contact.get("createdAt"))
    return created is not None and created < since


def _attach_details(client: CallbellClient, contact: dict, ctx: RunContext) -> dict:
    uuid = contact.get("uuid")
    try:
        contact["messages"] = client.contact_messages(uuid)
        contact["info"] = client.contact_info(uuid)
    except APIError as e:
        ctx.record_error(
            "callbell.contact_details", e,
            contacto=uuid, cuenta=client.label, status=e.status_code,
        )
        contact.setdefault("messages", [])
        contact["fetch_error"] = sentinel_from_exception(e)
    except Exception as e:
        ctx.record_error("callbell.contact_details", e, contacto=uuid, cuenta=client.label)
        contact.setdefault("messages", [])
        contact["fetch_error"] = error_sentinel("critical_error", str(e))
    return contact


def fetch_contacts(
    client: CallbellClient,
    since: datetime,
    until: datetime,
    ctx: RunContext,
    empty_pages_limit: int = config.CALLBELL_EMPTY_PAGES_LIMIT,
) -> List[dict]:
    """All contacts created in [since, until), with messages and details attached."""
    contacts: List[dict] = []
    page = 1
    empty_pages = 0
    found_any = False

    while True:
        try:
            page_contacts = client.list_contacts(page)
        except APIError as e:
            ctx.record_error(
                "callbell.list_contacts", e,
                cuenta=client.label, pagina=page, status=e.status_code,
            )
            break

        in_window = [c for c in page_contacts if _in_window(c, since, until)]
        if in_window:
            found_any = True
            empty_pages = 0
            with ThreadPoolExecutor(max_workers=DETAIL_WORKERS) as pool:
                contacts.extend(pool.map(lambda c: _attach_details(client, c, ctx), in_window))
            logger.info("[%s] Page %d: %d contacts in window", client.label, page, len(in_window))
        elif found_any:
            empty_pages += 1
            logger.info(
                "[%s] Page %d: 0 contacts in window (%d/%d)",
                client.label, page, empty_pages, empty_pages_limit,
            )
            if empty_pages >= empty_pages_limit:
                break

        if page_contacts and all(_older_than(c, since) for c in page_contacts):
            # Sorted newest first: nothing further back can be in the window
            break
        if len(page_contacts) < config.CALLBELL_PAGE_SIZE:
            break
        page += 1
        time.sleep(PAGE_PAUSE_SECONDS)

    return contacts


def fetch_teams(client: CallbellClient, ctx: RunContext) -> List[dict]:
    try:
        teams = client.teams()
    except APIError as e:
        ctx.record_error("callbell.teams", e, cuenta=client.label, status=e.status_code)
        return []
    for team in teams:
        try:
            team["membersList"] = client.team_members(team.get("uuid"))
        except APIError as e:
            ctx.record_error(
                "callbell.team_members", e,
                equipo=team.get("name"), cuenta=client.label, status=e.status_code,
            )
            team["membersList"] = []
    logger.info("[%s] %d teams", client.label, len(teams))
    return teams


def run(day: date) -> Dict[str, int]:
    if not config.CALLBELL_API_KEYS:
        raise ConfigError("Missing CALLBELL_API_KEYS environment variable")

    ctx = RunContext("fetch_callbell")
    since, until = local_day_bounds(day)
    clients = [CallbellClient(key) for key in config.CALLBELL_API_KEYS]

    with ThreadPoolExecutor(max_workers=len(clients)) as pool:
        per_account = list(pool.map(lambda c: fetch_contacts(c, since, until, ctx), clients))
    contacts = [contact for batch in per_account for contact in batch]

    teams = {client.label: fetch_teams(client, ctx) for client in clients}

    ctx.set_metric("contactos", len(contacts))
    ctx.set_metric("equipos", sum(len(t) for t in teams.values()))
    if not contacts:
        ctx.record_alert("Sin contactos en la ventana", fecha=day.isoformat())

    save_snapshot(KIND_CONVERSATIONS, contacts, day)
    save_snapshot(KIND_TEAMS, teams, day)
    ctx.write_log()
    logger.info("Callbell extraction for %s: %d contacts", day.isoformat(), len(contacts))
    return {"contactos": len(contacts), "errores": len(ctx.errors)}


def _parse_args():
    parser = argparse.ArgumentParser(description="Fetch Callbell contacts and teams")
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
        logger.error("Callbell extraction failed: %s", e, exc_info=True)
        sys.exit(1)
