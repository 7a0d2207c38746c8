"""
Meta Ads Data Fetcher
======================

Pulls today's campaign metrics from the Meta Graph API for every ad account
listed in META_ACCOUNTS_FILE and writes the campaign snapshot:

    data/processed/campanias_meta_ads/<date>.json
    {fecha_inicio, fecha_fin, datos: [{nombre, cuentas: [{id, saldos, campanias}]}]}

Per campaign: basic fields, the day's insights (messaging connections and
spend), the first ad's creative images, and per-adset results. Failures are
recorded on the RunContext and stored as error sentinels:

  - campaign lookup fails      -> campaign kept as an ERROR row
  - insights fail on ACTIVE    -> critical, campaign kept
  - images/adsets/paused insights fail -> minor; kept only with activity

Accounts file format:
    [{"nombre": "Equipo A", "token": "...", "idsCuentasAnuncios": ["act_1", ...]}]

Usage:
    python scripts/fetch_meta_ads.py
"""
from __future__ import annotations

import argparse
import json
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.campaign_models import ACTIVE, ERROR_STATUS  # noqa: E402
from scripts.lib import config  # noqa: E402
from scripts.lib.errors import (  # noqa: E402
    APIError,
    ConfigError,
    error_sentinel,
    sentinel_from_exception,
)
from scripts.lib.formatting import local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.run_context import RunContext  # noqa: E402
from scripts.lib.snapshot_store import KIND_CAMPAIGNS, save_snapshot  # noqa: E402
from scripts.lib.utils import request_json  # noqa: E402

logger = setup_logger("fetch_meta_ads")

SERVICE = "meta"
CAMPAIGN_WORKERS = 8
STATUS_FILTER = '[{"field":"effective_status","operator":"IN","value":["ACTIVE","PAUSED"]}]'


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

def count_messaging_actions(actions: Optional[List[dict]]) -> int:
    total = 0
    for action in actions or []:
        if action.get("action_type") == config.META_MESSAGING_ACTION:
            total += int(float(action.get("value") or 0))
    return total


def summarize_insights(rows: Optional[List[dict]]) -> Tuple[int, float]:
    """(messages, spend) summed over the insight rows."""
    messages, spend = 0, 0.0
    for row in rows or []:
        spend += float(row.get("spend") or 0)
        messages += count_messaging_actions(row.get("actions"))
    return messages, spend


def build_adset_row(adset: dict) -> Dict[str, Any]:
    insight = ((adset.get("insights") or {}).get("data") or [{}])[0]
    results = count_messaging_actions(insight.get("actions"))
    spend = float(insight.get("spend") or 0)
    cost = spend / results if results > 0 else 0.0
    return {
        "adset_id": adset.get("id"),
        "adset_name": adset.get("name"),
        "status": adset.get("status"),
        "daily_budget": adset.get("daily_budget"),
        "lifetime_budget": adset.get("lifetime_budget"),
        "start_time": adset.get("start_time"),
        "end_time": adset.get("end_time"),
        "region": (adset.get("targeting") or {}).get("geo_locations"),
        "gasto": spend,
        "resultados": results,
        "costoPorResultado": round(cost, 2),
    }


def error_campaign(
    campaign_id: str,
    error_type: str,
    error_message: str,
    error_code: Any = None,
    name: str = "CAMPAÑA CON ERROR",
) -> Dict[str, Any]:
    return {
        "id": campaign_id,
        "nombre": name,
        "estado": ERROR_STATUS,
        **error_sentinel(error_type, error_message, error_code),
        "metricas_diarias": {"messages": 0, "spend": 0, "costoPorMensaje": 0},
    }


def should_include_campaign(campaign: Dict[str, Any], critical_error: bool) -> bool:
    """Keep campaigns with activity, errored campaigns, and critical failures."""
    metrics = campaign.get("metricas_diarias") or {}
    has_activity = (metrics.get("spend") or 0) > 0 or (metrics.get("messages") or 0) > 0
    return has_activity or critical_error or bool(campaign.get("error"))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class MetaAdsClient:
    """Meta Graph API reads for one access token."""

    def __init__(self, token: str, base_url: str = config.META_GRAPH_URL):
        self.token = token
        self.base_url = base_url.rstrip("/")

    def get(self, path: str, **params) -> Any:
        params["access_token"] = self.token
        return request_json(SERVICE, f"{self.base_url}/{path.lstrip('/')}", params=params)

    def get_url(self, url: str) -> Any:
        # Paging URLs already carry the token and cursor
        return request_json(SERVICE, url)

    def account_balance(self, account_id: str) -> dict:
        return self.get(account_id, fields="spend_cap,amount_spent,balance")

    def campaigns(self, account_id: str, max_pages: int = config.META_MAX_CAMPAIGN_PAGES) -> List[dict]:
        data = self.get(
            f"{account_id}/campaigns",
            fields="id,name,status,start_time,stop_time,effective_status",
            filtering=STATUS_FILTER,
        )
        campaigns = list(data.get("data") or [])
        pages = 1
        next_url = (data.get("paging") or {}).get("next")
        while next_url and pages < max_pages:
            data = self.get_url(next_url)
            campaigns.extend(data.get("data") or [])
            next_url = (data.get("paging") or {}).get("next")
            pages += 1
        return campaigns

    def campaign(self, campaign_id: str) -> dict:
        return self.get(
            campaign_id,
            fields="id,name,status,objective,special_ad_category,start_time,stop_time",
        )

    def insights(self, campaign_id: str, day: str) -> List[dict]:
        data = self.get(
            f"{campaign_id}/insights",
            fields="spend,actions",
            time_range=json.dumps({"since": day, "until": day}),
        )
        return data.get("data") or []

    def ad_images(self, campaign_id: str) -> Optional[dict]:
        data = self.get(
            f"{campaign_id}/ads",
            fields="id,name,creative{thumbnail_url,image_url,object_story_spec}",
        )
        ads = data.get("data") or []
        if not ads:
            return None
        ad = ads[0]
        creative = ad.get("creative") or {}
        link_data = (creative.get("object_story_spec") or {}).get("link_data") or {}
        return {
            "thumbnail_url": creative.get("thumbnail_url"),
            "image_url": creative.get("image_url"),
            "story_image_url": link_data.get("image_url"),
            "ad_id": ad.get("id"),
            "ad_name": ad.get("name"),
        }

    def adsets(self, campaign_id: str, day: str) -> List[dict]:
        time_range = json.dumps({"since": day, "until": day})
        data = self.get(
            f"{campaign_id}/adsets",
            fields=(
                "id,name,status,daily_budget,lifetime_budget,start_time,end_time,targeting,"
                f"insights.time_range({time_range}).fields(spend,actions)"
            ),
        )
        return [build_adset_row(a) for a in data.get("data") or []]


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

def collect_campaign(
    client: MetaAdsClient,
    campaign_id: str,
    day: str,
    ctx: RunContext,
) -> Optional[Dict[str, Any]]:
    """
    One campaign with its day metrics, images and adsets, or None when it
    has nothing to report. Any unexpected failure keeps the campaign as a
    `critical_error` entry so the rest of the account is still collected.
    """
    try:
        return _collect_campaign(client, campaign_id, day, ctx)
    except Exception as e:
        ctx.record_error("meta.campaign", e, campaignId=campaign_id)
        return error_campaign(campaign_id, "critical_error", str(e))


def _collect_campaign(
    client: MetaAdsClient,
    campaign_id: str,
    day: str,
    ctx: RunContext,
) -> Optional[Dict[str, Any]]:
    try:
        basic = client.campaign(campaign_id)
    except APIError as e:
        ctx.record_error("meta.campaign", e, campaignId=campaign_id, status=e.status_code)
        sentinel = sentinel_from_exception(e)
        return error_campaign(
            campaign_id, sentinel["error_type"], sentinel["error_message"],
            sentinel.get("error_code"),
        )

    status = basic.get("status")
    critical = False

    insights_error = None
    try:
        messages, spend = summarize_insights(client.insights(campaign_id, day))
    except APIError as e:
        ctx.record_error("meta.insights", e, campaignId=campaign_id, status=e.status_code)
        insights_error = {**sentinel_from_exception(e), "error_type": "insights_error"}
        messages, spend = 0, 0.0
        critical = status == ACTIVE

    if insights_error is None and messages == 0 and spend == 0 and status == ACTIVE:
        ctx.record_alert("Campaña activa sin insights del día", campaignId=campaign_id,
                         nombre=basic.get("name"))

    campaign: Dict[str, Any] = {
        "id": campaign_id,
        "nombre": basic.get("name"),
        "estado": status,
        "objetivo": basic.get("objective"),
        "metricas_diarias": {
            "messages": messages,
            "spend": spend,
            "costoPorMensaje": spend / (messages or 1),
        },
        "imagenes": None,
        "adsets": [],
    }
    if insights_error:
        campaign["insights_error"] = insights_error

    try:
        campaign["imagenes"] = client.ad_images(campaign_id)
    except APIError as e:
        ctx.record_error("meta.ad_images", e, campaignId=campaign_id, status=e.status_code)
        campaign["imagenes_error"] = sentinel_from_exception(e)

    try:
        campaign["adsets"] = client.adsets(campaign_id, day)
    except APIError as e:
        ctx.record_error("meta.adsets", e, campaignId=campaign_id, status=e.status_code)
        campaign["adsets_error"] = sentinel_from_exception(e)

    if should_include_campaign(campaign, critical):
        return campaign
    logger.debug("Campaign %s excluded: no activity", campaign_id)
    return None


def collect_account(
    client: MetaAdsClient,
    account_id: str,
    day: str,
    ctx: RunContext,
) -> Dict[str, Any]:
    account: Dict[str, Any] = {"id": account_id}

    try:
        account["saldos"] = client.account_balance(account_id)
    except APIError as e:
        ctx.record_error("meta.account_balance", e, idCuenta=account_id, status=e.status_code)
        account["saldos"] = sentinel_from_exception(e)

    try:
        listed = client.campaigns(account_id)
    except APIError as e:
        ctx.record_error("meta.campaigns", e, idCuenta=account_id, status=e.status_code)
        listed = []

    if not listed:
        ctx.record_alert("No se encontraron campañas para la cuenta", idCuenta=account_id)

    with ThreadPoolExecutor(max_workers=CAMPAIGN_WORKERS) as pool:
        collected = list(pool.map(
            lambda c: collect_campaign(client, str(c.get("id")), day, ctx), listed,
        ))
    account["campanias"] = [c for c in collected if c is not None]

    active = [c for c in account["campanias"] if not c.get("error") and (
        c["metricas_diarias"]["spend"] > 0 or c["metricas_diarias"]["messages"] > 0)]
    ctx.set_metric(f"campanias_encontradas_{account_id}", len(listed))
    ctx.set_metric(f"campanias_con_actividad_{account_id}", len(active))
    if listed and not account["campanias"]:
        ctx.record_alert("Todas las campañas de la cuenta quedaron sin datos",
                         idCuenta=account_id, campanias_totales=len(listed))
    return account


def load_accounts(path: Path = config.META_ACCOUNTS_FILE) -> List[dict]:
    if not path.exists():
        raise ConfigError(f"Accounts file not found: {path}", config_path=str(path))
    with open(path, "r", encoding="utf-8") as f:
        accounts = json.load(f)
    if not isinstance(accounts, list):
        raise ConfigError("Accounts file must contain a list", config_path=str(path))
    return accounts


def run(day: date, accounts: Optional[List[dict]] = None) -> Dict[str, Any]:
    ctx = RunContext("fetch_meta_ads")
    accounts = accounts if accounts is not None else load_accounts()
    ctx.set_metric("cuentas_totales", len(accounts))
    day_str = day.isoformat()

    output = []
    for team in accounts:
        client = MetaAdsClient(team["token"])
        ids = team.get("idsCuentasAnuncios") or []
        cuentas = [collect_account(client, account_id, day_str, ctx) for account_id in ids]
        output.append({"nombre": team.get("nombre"), "cuentas": cuentas})

    total = sum(len(c["campanias"]) for t in output for c in t["cuentas"])
    ctx.set_metric("campanias_con_datos_final", total)
    ctx.set_metric("ejecucion_exitosa", total > 0)
    if total == 0:
        ctx.record_alert("CRÍTICO: Ejecución completa sin obtener datos de campañas",
                         errores_total=len(ctx.errors))

    summary = ctx.finalize()
    snapshot = {
        "fecha_inicio": summary["fecha_inicio"],
        "fecha_fin": summary["fecha_fin"],
        "datos": output,
    }
    save_snapshot(KIND_CAMPAIGNS, snapshot, day)
    ctx.write_log()
    logger.info("Meta Ads extraction: %d campaigns, %d errors", total, len(ctx.errors))
    return snapshot


def _parse_args():
    parser = argparse.ArgumentParser(description="Fetch Meta Ads campaign metrics")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Insights day YYYY-MM-DD (default: today)")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    try:
        run(args.date or local_today())
    except Exception as e:
        logger.error("Meta Ads extraction failed: %s", e, exc_info=True)
        sys.exit(1)
