"""
Runtime configuration for the panel reporting pipeline.

Values come from the environment (optionally a `.env` at the repo root) and
are exposed as module-level constants.

Usage:
    from scripts.lib import config
    config.GRAVE_THRESHOLD_MINUTES
"""
import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

load_dotenv(PROJECT_ROOT / ".env")


def _env_list(name: str) -> list:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


# --------- PATHS ---------

DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"
ARCHIVE_DIR = DATA_DIR / "archive"
REPORTS_DIR = DATA_DIR / "reports"
RUN_LOG_DIR = DATA_DIR / "logs"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "America/Argentina/Buenos_Aires")

# --------- RESPONSE LATENCY ---------

LEVE_THRESHOLD_MINUTES = float(os.getenv("LEVE_THRESHOLD_MINUTES", "5"))
GRAVE_THRESHOLD_MINUTES = float(os.getenv("GRAVE_THRESHOLD_MINUTES", "10"))

FLAG_KEYWORD = os.getenv("FLAG_KEYWORD", "c4rgado")
CLOSING_PHRASE = os.getenv(
    "CLOSING_PHRASE",
    "¡Gracias por comunicarte con nosotros! Ya podés desestimar este chat. \n"
    "Para la próxima escribinos directamente al Principal que te enviamos. 😊",
)

MESSAGE_PREVIEW_CHARS = int(os.getenv("MESSAGE_PREVIEW_CHARS", "50"))

UNKNOWN_PANEL = "Desconocido"
UNASSIGNED_PANEL = "Sin Asignar"
NO_CAMPAIGN_ORIGIN = "Sin campaña"
NO_CAMPAIGN_TAG = "SIN_CAMPAÑA"

# --------- CAMPAIGN REPORTS ---------

OBJECTIVE_MESSAGES = int(os.getenv("OBJECTIVE_MESSAGES", "60"))
PANEL_MESSAGE_THRESHOLD = int(os.getenv("PANEL_MESSAGE_THRESHOLD", "100"))
COST_PER_RESULT_THRESHOLD = float(os.getenv("COST_PER_RESULT_THRESHOLD", "1.2"))
TOP_CAMPAIGNS_LIMIT = int(os.getenv("TOP_CAMPAIGNS_LIMIT", "10"))
VARIATION_LIMIT = int(os.getenv("VARIATION_LIMIT", "10"))

# --------- CALLBELL API ---------

CALLBELL_BASE_URL = os.getenv("CALLBELL_BASE_URL", "https://api.callbell.eu/v1")
CALLBELL_API_KEYS = _env_list("CALLBELL_API_KEYS")
CALLBELL_PAGE_SIZE = 20
CALLBELL_EMPTY_PAGES_LIMIT = int(os.getenv("CALLBELL_EMPTY_PAGES_LIMIT", "5"))
PANEL_ADMIN_EMAILS = _env_list("PANEL_ADMIN_EMAILS")

# --------- CLIENTIFY CRM ---------

CLIENTIFY_BASE_URL = os.getenv("CLIENTIFY_BASE_URL", "https://api.clientify.net/v1")
CLIENTIFY_API_TOKEN = os.getenv("CLIENTIFY_API_TOKEN", "")
CLIENTIFY_MAX_PAGES = int(os.getenv("CLIENTIFY_MAX_PAGES", "200"))

# --------- META ADS API ---------

META_GRAPH_URL = os.getenv("META_GRAPH_URL", "https://graph.facebook.com/v19.0")
META_ACCOUNTS_FILE = Path(
    os.getenv("META_ACCOUNTS_FILE", str(PROJECT_ROOT / "cuentas_meta_ads.json"))
)
META_MESSAGING_ACTION = "onsite_conversion.total_messaging_connection"
META_MAX_CAMPAIGN_PAGES = int(os.getenv("META_MAX_CAMPAIGN_PAGES", "10"))

# --------- HTTP ---------

HTTP_TIMEOUT = int(os.getenv("HTTP_TIMEOUT", "30"))
HTTP_MAX_RETRIES = int(os.getenv("HTTP_MAX_RETRIES", "3"))
