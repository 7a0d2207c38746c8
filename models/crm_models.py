"""
CRM Pydantic Models
=====================

Boundary model for the contacts fetched from Clientify, and the panel code
entries the agents type into each contact's remarks:

    DD-MM-<panel><campaign letter>[!]      e.g. "18-10-3B!"

A trailing "!" marks a contact that loaded credit ("carga").
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.conversation_models import parse_timestamp
from scripts.lib.config import NO_CAMPAIGN_TAG


class CrmContact(BaseModel):
    """One Clientify contact, reduced to the fields the panel report reads."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    first_name: str = ""
    last_name: str = ""
    remarks: str = ""
    tags: List[Any] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(None, alias="created")
    modified_at: Optional[datetime] = Field(None, alias="modified")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return None if v is None else str(v)

    @field_validator("first_name", "last_name", "remarks", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return "" if v is None else str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v):
        return v if isinstance(v, list) else []

    @field_validator("created_at", "modified_at", mode="before")
    @classmethod
    def _parse_timestamps(cls, v):
        return parse_timestamp(v)


class RemarkEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: int
    month: int
    panel: str
    campaign: Optional[str] = None
    is_load: bool = False
    original: str
    normalized: str

    @property
    def campaign_label(self) -> str:
        return self.campaign or NO_CAMPAIGN_TAG

    def is_on(self, day: int, month: int) -> bool:
        return self.day == day and self.month == month
