"""
Messaging Platform Pydantic Models
====================================

Boundary models for the conversation payloads fetched from Callbell
(contacts + their messages + team) and the derived delay-analysis entities
persisted in the per-panel response snapshot.

Raw payloads are loose: timestamps may be missing or malformed, text may be
null, the team may be absent, and drill-down links live at different depths.
All of that is resolved here so the analyzer works on explicit optional
fields only.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scripts.lib.formatting import format_duration, format_local_datetime, format_minutes, truncate

RECEIVED = "received"
SENT = "sent"

AD_SOURCE_FIELD = "whatsapp cloud ad source url"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Lenient timestamp parsing. Returns an aware UTC datetime or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as most JSON APIs emit them
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


# ─── Raw payload models ─────────────────────────────────────

class Message(BaseModel):
    """One message of a conversation."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    text: str = ""
    status: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return None if v is None else str(v)

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return "" if v is None else str(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v):
        return parse_timestamp(v)


class Team(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: Optional[str] = None
    name: Optional[str] = None


class TeamMember(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    name: Optional[str] = None


class TeamWithMembers(Team):
    """Team as stored in the teams snapshot (members resolved per team)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    members: List[TeamMember] = Field(default_factory=list, alias="membersList")

    @field_validator("members", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []


class Conversation(BaseModel):
    """A Callbell contact with its messages, as fetched for one batch run."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uuid: str
    team: Optional[Team] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict, alias="customFields")
    messages: List[Message] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    assigned_user: Optional[str] = Field(None, alias="assignedUser")
    conversation_href: Optional[str] = Field(None, alias="conversationHref")
    info: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("uuid", mode="before")
    @classmethod
    def _coerce_uuid(cls, v):
        return None if v is None else str(v)

    @field_validator("custom_fields", "info", mode="before")
    @classmethod
    def _none_to_dict(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("messages", mode="before")
    @classmethod
    def _none_to_messages(cls, v):
        return v or []

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, v):
        return parse_timestamp(v)

    @property
    def team_label(self) -> Optional[str]:
        return self.team.name if self.team else None

    def _nested(self, key: str) -> Optional[Any]:
        contact = self.info.get("contact") if isinstance(self.info.get("contact"), dict) else {}
        return self.info.get(key) or contact.get(key)

    def resolved_conversation_href(self) -> Optional[str]:
        return self.conversation_href or self._nested("conversationHref")

    def resolved_ad_source_url(self) -> Optional[str]:
        if self.custom_fields.get(AD_SOURCE_FIELD):
            return self.custom_fields[AD_SOURCE_FIELD]
        for source in (self.info, self.info.get("contact")):
            if isinstance(source, dict):
                fields = source.get("customFields")
                if isinstance(fields, dict) and fields.get(AD_SOURCE_FIELD):
                    return fields[AD_SOURCE_FIELD]
        return None


# ─── Derived analysis models ────────────────────────────────

class Severity(str, Enum):
    NONE = "none"
    LEVE = "leve"
    GRAVE = "grave"


class DelayRecord(BaseModel):
    """One inbound message paired with the first reply that followed it."""
    model_config = ConfigDict(frozen=True)

    conversation_id: str
    inbound_at: datetime
    outbound_at: datetime
    latency_ms: int
    severity: Severity
    inbound_text: str = ""
    outbound_text: str = ""
    conversation_href: Optional[str] = None
    ad_source_url: Optional[str] = None

    def to_snapshot(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {"contactoUuid": self.conversation_id}
        if self.conversation_href:
            row["conversationHref"] = self.conversation_href
        if self.ad_source_url:
            row["whatsappCloudAdSourceUrl"] = self.ad_source_url
        row.update({
            "horaInicio": format_local_datetime(self.inbound_at),
            "horaRespuesta": format_local_datetime(self.outbound_at),
            "demoraFormateada": format_duration(self.latency_ms),
            "demoraMs": self.latency_ms,
            "demoraMinutos": format_minutes(self.latency_ms),
            "mensajeInicio": truncate(self.inbound_text),
            "mensajeRespuesta": truncate(self.outbound_text),
        })
        return row


class ConversationAverage(BaseModel):
    """Mean reply latency of a single conversation (drill-down entry)."""
    model_config = ConfigDict(frozen=True)

    conversation_id: str
    average_ms: float
    delay_count: int

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "contactoUuid": self.conversation_id,
            "promedioFormateado": format_duration(self.average_ms),
            "promedioMinutos": format_minutes(self.average_ms),
            "cantidadMensajes": self.delay_count,
        }


class PanelStats(BaseModel):
    """Per-panel totals built up over one analysis pass."""

    panel_name: str
    conversation_count: int = 0
    flagged_keyword_count: int = 0
    closing_phrase_count: int = 0
    leve: List[DelayRecord] = Field(default_factory=list)
    grave: List[DelayRecord] = Field(default_factory=list)
    averages: List[ConversationAverage] = Field(default_factory=list)
    delay_records: List[DelayRecord] = Field(default_factory=list)
    average_latency_ms: Optional[float] = None

    @property
    def leve_count(self) -> int:
        return len(self.leve)

    @property
    def grave_count(self) -> int:
        return len(self.grave)

    def finalize(self) -> None:
        """Compute the panel-wide average once every conversation is in."""
        if self.delay_records:
            total = sum(r.latency_ms for r in self.delay_records)
            self.average_latency_ms = total / len(self.delay_records)
        else:
            self.average_latency_ms = None

    def to_snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "conversaciones": self.conversation_count,
            "veces_c4rgado": self.flagged_keyword_count,
            "veces_frase_cierre": self.closing_phrase_count,
            "demoras_leves": {
                "cantidad": self.leve_count,
                "detalles": [r.to_snapshot() for r in self.leve],
            },
            "demoras_graves": {
                "cantidad": self.grave_count,
                "detalles": [r.to_snapshot() for r in self.grave],
            },
            "promedios": [a.to_snapshot() for a in self.averages],
            "demoras_totales": [r.to_snapshot() for r in self.delay_records],
        }
        # Absent (not 0.00) when there is nothing to average
        if self.delay_records and self.average_latency_ms is not None:
            data["promedioGeneralMinutos"] = format_minutes(self.average_latency_ms)
            data["promedioGeneralFormateado"] = format_duration(self.average_latency_ms)
            data["totalDemorasAnalizadas"] = len(self.delay_records)
        return data
