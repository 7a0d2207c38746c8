"""
Dated JSON snapshot storage.

Every run persists its output as `data/processed/<kind>/<YYYY-MM-DD>.json`
and refreshes `data/processed/<kind>/latest.json`. Both writes are atomic,
so a failed run leaves the previous snapshot in place for readers.

Raw fetches use the same layout under `data/raw/`.

Usage:
    from scripts.lib.snapshot_store import save_snapshot, load_latest

    save_snapshot(KIND_RESPONSES, result, day)
    latest = load_latest(KIND_RESPONSES)
"""
import shutil
from datetime import date
from pathlib import Path
from typing import Any, List, Optional

from scripts.lib.config import ARCHIVE_DIR, PROCESSED_DIR, RAW_DIR
from scripts.lib.logger import setup_logger
from scripts.lib.utils import atomic_write_json, read_json

logger = setup_logger(__name__)

# Raw kinds (data/raw)
KIND_CONVERSATIONS = "contactos"
KIND_TEAMS = "equipos"
KIND_CRM_CONTACTS = "contactos_crm"

# Processed kinds (data/processed)
KIND_RESPONSES = "respuestas_paneles"
KIND_PANEL_TRAFFIC = "reporte_paneles"
KIND_CAMPAIGNS = "campanias_meta_ads"
KIND_CAMPAIGN_SUMMARY = "resumen_campanias"
KIND_CRM_PANELS = "reporte_paneles_crm"

RAW_KINDS = {KIND_CONVERSATIONS, KIND_TEAMS, KIND_CRM_CONTACTS}

LATEST = "latest"


def _root_for(kind: str, root: Optional[Path]) -> Path:
    if root is not None:
        return Path(root)
    return RAW_DIR if kind in RAW_KINDS else PROCESSED_DIR


def snapshot_path(kind: str, day: date, root: Path = None) -> Path:
    return _root_for(kind, root) / kind / f"{day.isoformat()}.json"


def save_snapshot(kind: str, data: Any, day: date, root: Path = None) -> Path:
    """Persist *data* for *day* and point `latest.json` at it."""
    path = snapshot_path(kind, day, root)
    atomic_write_json(data, path)
    atomic_write_json(data, path.parent / f"{LATEST}.json")
    logger.info("Saved %s snapshot for %s -> %s", kind, day.isoformat(), path)
    return path


def load_for_date(kind: str, day: date, root: Path = None) -> Optional[Any]:
    return read_json(snapshot_path(kind, day, root))


def load_latest(kind: str, root: Path = None) -> Optional[Any]:
    return read_json(_root_for(kind, root) / kind / f"{LATEST}.json")


def available_dates(kind: str, root: Path = None) -> List[date]:
    """Calendar dates with a snapshot of *kind*, oldest first."""
    folder = _root_for(kind, root) / kind
    if not folder.exists():
        return []
    days = []
    for path in folder.glob("*.json"):
        try:
            days.append(date.fromisoformat(path.stem))
        except ValueError:
            continue
    return sorted(days)


def archive_day(
    day: date,
    kinds: List[str],
    archive_root: Path = None,
    root: Path = None,
) -> List[Path]:
    """Copy each kind's snapshot for *day* into `archive/<day>/<kind>.json`."""
    target_dir = (Path(archive_root) if archive_root else ARCHIVE_DIR) / day.isoformat()
    copied = []
    for kind in kinds:
        source = snapshot_path(kind, day, root)
        if not source.exists():
            logger.warning("No %s snapshot for %s, skipping archive", kind, day.isoformat())
            continue
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"{kind}.json"
        shutil.copy2(source, target)
        copied.append(target)
    logger.info("Archived %d snapshots for %s -> %s", len(copied), day.isoformat(), target_dir)
    return copied
