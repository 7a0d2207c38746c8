"""
Panel codes typed into CRM contact remarks.

Agents write one code per contact interaction, `DD-MM-<panel>[letter][!]`,
in free text: codes may be separated by commas, new lines or spaces, dots
may stand in for dashes, and the load marker "!" may be detached from its
code ("18-10-3B !", "18-10-3B,,!", "18-10-3B-!").

`extract_remark_entries` splits a remarks blob into codes and
`normalize_remark_entry` parses one of them; text that does not parse is
dropped.
"""
import re
from typing import List, Optional

from models.crm_models import RemarkEntry

_CODE_START = re.compile(r"^\d{1,2}[-.]\d{1,2}-.+")
_DETACHED_LOAD = re.compile(
    r"(\d{1,2}[-.]\d{1,2}-[^\s,!]+)[\s,]*!(?=[\s,]*(?:\d{1,2}[-.]\d{1,2}-|$))"
)
_ENTRY = re.compile(r"^(\d{1,2})-(\d{1,2})-(.+)$")
_PANEL = re.compile(r"^(\d+)([A-Za-z]?)")


def _attach_load_markers(remarks: str) -> str:
    text = _DETACHED_LOAD.sub(r"\1!", remarks)
    text = re.sub(r"\s*,\s*", ",", text)
    text = re.sub(r",+", ",", text)
    return re.sub(r"\s+", " ", text)


def normalize_remark_entry(entry: Optional[str]) -> Optional[RemarkEntry]:
    if not entry or not entry.strip():
        return None

    text = re.sub(r"\s+", " ", entry.strip())
    text = re.sub(r"\s*[-.]\s*", "-", text)
    text = re.sub(r",+", ",", text)
    text = re.sub(r"\s*,\s*", ",", text)

    match = _ENTRY.match(text)
    if not match:
        return None
    day, month, rest = match.groups()

    rest = rest.strip()
    is_load = rest.endswith("!")
    if is_load:
        rest = rest[:-1]
    rest = re.sub(r"[\s,\-]+$", "", rest)

    panel_match = _PANEL.match(rest)
    if not panel_match:
        return None
    panel = str(int(panel_match.group(1)))
    campaign = panel_match.group(2).upper() or None

    return RemarkEntry(
        day=int(day),
        month=int(month),
        panel=panel,
        campaign=campaign,
        is_load=is_load,
        original=entry,
        normalized=f"{int(day)}-{int(month)}-{panel}{campaign or ''}{'!' if is_load else ''}",
    )


def extract_remark_entries(remarks: Optional[str]) -> List[RemarkEntry]:
    """Every parseable panel code in a remarks blob, in written order."""
    if not remarks or not isinstance(remarks, str):
        return []

    text = _attach_load_markers(remarks.replace("\n", ","))

    pieces: List[str] = []
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        codes = [token for token in chunk.split() if _CODE_START.match(token)]
        # Several codes on one line separated only by spaces
        pieces.extend(codes if len(codes) > 1 else [chunk])

    entries = []
    for piece in pieces:
        entry = normalize_remark_entry(piece)
        if entry is not None:
            entries.append(entry)
    return entries
