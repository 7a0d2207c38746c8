"""
Panel Response-Latency Analyzer
=================================

Reads the conversations fetched from Callbell for one day and measures how
long each panel takes to answer customers.

Per conversation:
  - messages are ordered by `createdAt` (stable; unparseable timestamps go
    last and are left out of pairing)
  - every inbound ("received") message is paired with the first outbound
    ("sent") message after it; inbound messages in between are part of the
    same wait and are not paired on their own
  - each pairing becomes a DelayRecord: >10 min is "grave", >5 min is
    "leve", anything faster is only kept for the averages
  - the flag keyword (once per conversation) and the closing phrase (once
    per message containing it) are counted for the panel

Per panel the records are concatenated in processing order and the overall
average is computed once at the end. Panels without records carry no
average fields at all.

Pairing runs over the sorted sequence, so a reply stamped before the inbound
message it follows in the payload is never matched to it and latencies are
never negative.

Outputs data/processed/respuestas_paneles/<date>.json.

Usage:
    python scripts/response_analyzer.py                    # today
    python scripts/response_analyzer.py --date 2026-10-18
    python scripts/response_analyzer.py --input contactos.json
"""
from __future__ import annotations

import argparse
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from models.conversation_models import (  # noqa: E402
    RECEIVED,
    SENT,
    Conversation,
    ConversationAverage,
    DelayRecord,
    Message,
    PanelStats,
    Severity,
)
from scripts.lib import config  # noqa: E402
from scripts.lib.errors import DataFetchError, ReportingError, SchemaValidationError  # noqa: E402
from scripts.lib.formatting import local_today  # noqa: E402
from scripts.lib.logger import setup_logger  # noqa: E402
from scripts.lib.panel_names import normalize_panel_name, panel_key  # noqa: E402
from scripts.lib.run_context import RunContext  # noqa: E402
from scripts.lib.snapshot_store import (  # noqa: E402
    KIND_CONVERSATIONS,
    KIND_RESPONSES,
    load_for_date,
    save_snapshot,
)
from scripts.lib.utils import read_json  # noqa: E402

logger = setup_logger("response_analyzer")

_UNORDERABLE = datetime.max.replace(tzinfo=timezone.utc)
_MS = timedelta(milliseconds=1)


# ---------------------------------------------------------------------------
# Pairing
# ---------------------------------------------------------------------------

def classify_latency(
    latency_ms: float,
    leve_minutes: float = config.LEVE_THRESHOLD_MINUTES,
    grave_minutes: float = config.GRAVE_THRESHOLD_MINUTES,
) -> Severity:
    minutes = latency_ms / 1000 / 60
    if minutes > grave_minutes:
        return Severity.GRAVE
    if minutes > leve_minutes:
        return Severity.LEVE
    return Severity.NONE


def order_messages(messages: Iterable[Message]) -> List[Message]:
    """Sort by timestamp; `sorted` is stable, messages without one go last."""
    return sorted(
        messages,
        key=lambda m: (m.created_at is None, m.created_at or _UNORDERABLE),
    )


def _next_reply_index(ordered: List[Message], start: int) -> Optional[int]:
    for j in range(start, len(ordered)):
        if ordered[j].status == SENT:
            return j
    return None


def pair_delays(
    conversation: Conversation,
    ctx: Optional[RunContext] = None,
) -> List[DelayRecord]:
    """Pair each inbound message with the next outbound reply (forward scan)."""
    ordered = order_messages(conversation.messages)
    undated = sum(1 for m in ordered if m.created_at is None)
    if undated:
        logger.warning(
            "Conversation %s: %d message(s) without a usable timestamp, left out of pairing",
            conversation.uuid, undated,
        )
        if ctx is not None:
            ctx.increment("mensajes_sin_fecha", undated)
        ordered = ordered[: len(ordered) - undated]

    href = conversation.resolved_conversation_href()
    ad_source = conversation.resolved_ad_source_url()

    records: List[DelayRecord] = []
    i = 0
    while i < len(ordered):
        current = ordered[i]
        if current.status != RECEIVED:
            i += 1
            continue

        j = _next_reply_index(ordered, i + 1)
        if j is None:
            # Remaining inbound messages have no reply yet
            break

        reply = ordered[j]
        latency_ms = int((reply.created_at - current.created_at) / _MS)
        records.append(DelayRecord(
            conversation_id=conversation.uuid,
            inbound_at=current.created_at,
            outbound_at=reply.created_at,
            latency_ms=latency_ms,
            severity=classify_latency(latency_ms),
            inbound_text=current.text,
            outbound_text=reply.text,
            conversation_href=href,
            ad_source_url=ad_source,
        ))
        i = j

    return records


# ---------------------------------------------------------------------------
# Per-conversation analysis
# ---------------------------------------------------------------------------

class ConversationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    conversation_id: str
    panel_name: str
    delays: List[DelayRecord] = Field(default_factory=list)
    flagged: bool = False
    closing_phrase_count: int = 0
    average: Optional[ConversationAverage] = None


def mentions_keyword(messages: Iterable[Message], keyword: str = config.FLAG_KEYWORD) -> bool:
    needle = keyword.lower()
    return any(needle in m.text.lower() for m in messages)


def count_closing_phrase(messages: Iterable[Message], phrase: str = config.CLOSING_PHRASE) -> int:
    return sum(1 for m in messages if phrase in m.text)


def analyze_conversation(
    conversation: Conversation,
    ctx: Optional[RunContext] = None,
) -> ConversationResult:
    delays = pair_delays(conversation, ctx)

    average = None
    if delays:
        average = ConversationAverage(
            conversation_id=conversation.uuid,
            average_ms=sum(d.latency_ms for d in delays) / len(delays),
            delay_count=len(delays),
        )

    return ConversationResult(
        conversation_id=conversation.uuid,
        panel_name=normalize_panel_name(conversation.team_label),
        delays=delays,
        flagged=mentions_keyword(conversation.messages),
        closing_phrase_count=count_closing_phrase(conversation.messages),
        average=average,
    )


# ---------------------------------------------------------------------------
# Panel aggregation
# ---------------------------------------------------------------------------

class PanelAggregator:
    """Single-pass fold of conversation results into per-panel totals."""

    def __init__(self, ctx: Optional[RunContext] = None):
        self.ctx = ctx
        self._panels: Dict[str, PanelStats] = {}
        self._finalized = False

    def add(self, conversation: Conversation) -> ConversationResult:
        if self._finalized:
            raise ReportingError("Aggregator already finalized", code="AGGREGATOR_CLOSED")

        result = analyze_conversation(conversation, self.ctx)
        key = panel_key(result.panel_name)
        stats = self._panels.get(key)
        if stats is None:
            stats = PanelStats(panel_name=result.panel_name)
            self._panels[key] = stats

        stats.conversation_count += 1
        if result.flagged:
            stats.flagged_keyword_count += 1
        stats.closing_phrase_count += result.closing_phrase_count

        for record in result.delays:
            stats.delay_records.append(record)
            if record.severity is Severity.GRAVE:
                stats.grave.append(record)
            elif record.severity is Severity.LEVE:
                stats.leve.append(record)

        if result.average is not None:
            stats.averages.append(result.average)
        return result

    def finalize(self) -> Dict[str, PanelStats]:
        """Compute panel averages. Returns panels keyed by display name."""
        if not self._finalized:
            for stats in self._panels.values():
                stats.finalize()
            self._finalized = True
        return {stats.panel_name: stats for stats in self._panels.values()}


def analyze_conversations(
    conversations: Iterable[Conversation],
    ctx: Optional[RunContext] = None,
) -> Dict[str, PanelStats]:
    aggregator = PanelAggregator(ctx)
    for conversation in conversations:
        aggregator.add(conversation)
    return aggregator.finalize()


def build_snapshot(panels: Dict[str, PanelStats]) -> Dict[str, Any]:
    return {name: stats.to_snapshot() for name, stats in panels.items()}


def parse_conversations(raw: Any, ctx: Optional[RunContext] = None) -> List[Conversation]:
    """Validate raw contact dicts; records that cannot be read are skipped and reported."""
    if not isinstance(raw, list):
        raise SchemaValidationError(
            f"Expected a list of conversations, got {type(raw).__name__}",
        )
    conversations = []
    for index, item in enumerate(raw):
        try:
            conversations.append(Conversation.model_validate(item))
        except ValidationError as e:
            uuid = item.get("uuid") if isinstance(item, dict) else None
            if ctx is not None:
                ctx.record_error("parse_conversation", e, index=index, uuid=uuid)
            else:
                logger.warning("Skipping unreadable conversation #%d (%s): %s", index, uuid, e)
    return conversations


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def run(day: date, input_path: Optional[Path] = None) -> Dict[str, Any]:
    ctx = RunContext("response_analyzer")

    raw = read_json(input_path) if input_path else load_for_date(KIND_CONVERSATIONS, day)
    if raw is None:
        raise DataFetchError(
            f"No conversations found for {day.isoformat()}", source=KIND_CONVERSATIONS,
        )

    conversations = parse_conversations(raw, ctx)
    panels = analyze_conversations(conversations, ctx)
    snapshot = build_snapshot(panels)

    ctx.set_metric("conversaciones", len(conversations))
    ctx.set_metric("paneles", len(panels))
    ctx.set_metric("demoras_analizadas", sum(len(p.delay_records) for p in panels.values()))

    save_snapshot(KIND_RESPONSES, snapshot, day)
    ctx.write_log()

    logger.info(
        "Analyzed %d conversations across %d panels for %s",
        len(conversations), len(panels), day.isoformat(),
    )
    return snapshot


def _parse_args():
    parser = argparse.ArgumentParser(description="Analyze panel response latency")
    parser.add_argument("--date", type=date.fromisoformat, default=None,
                        help="Report date YYYY-MM-DD (default: today)")
    parser.add_argument("--yesterday", action="store_true",
                        help="Analyze yesterday's conversations")
    parser.add_argument("--input", type=Path, default=None,
                        help="Read conversations from this JSON file instead of the raw store")
    return parser.parse_args()


if __name__ == "__main__":
    args = _parse_args()
    report_day = args.date or local_today()
    if args.yesterday:
        report_day -= timedelta(days=1)
    try:
        run(report_day, args.input)
    except Exception as e:
        logger.error("Response analysis failed: %s", e, exc_info=True)
        sys.exit(1)
