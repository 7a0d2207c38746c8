"""
Panel label normalization.

Callbell team names come as "Panel Norte", "panel: Norte", "Norte", ...
`normalize_panel_name` strips the leading "panel" token and separators and
keeps the rest as typed; `panel_key` is the grouping key (case-insensitive)
so labels that only differ in prefix, whitespace or case land together.
"""
import re
from typing import Optional

from scripts.lib.config import UNKNOWN_PANEL

_PANEL_PREFIX = re.compile(r"^panel[:\s]+", re.IGNORECASE)


def normalize_panel_name(raw: Optional[str]) -> str:
    if not raw or not raw.strip():
        return UNKNOWN_PANEL
    name = _PANEL_PREFIX.sub("", raw.lstrip()).strip()
    return name or UNKNOWN_PANEL


def panel_key(raw: Optional[str]) -> str:
    return normalize_panel_name(raw).casefold()
