"""
Ad Platform Pydantic Models
=============================

Campaign snapshot as persisted by the Meta Ads fetch step:

    {fecha_inicio, fecha_fin, datos: [team -> cuentas -> campanias -> adsets]}

Any node that failed upstream carries the error sentinel fields
(`error`, `error_type`, `error_code`, `error_message`) instead of, or next
to, its data. Field names follow the persisted JSON so snapshots round-trip.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ACTIVE = "ACTIVE"
PAUSED = "PAUSED"
ERROR_STATUS = "ERROR"


class ErrorSentinel(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: bool = True
    error_type: Optional[str] = None
    error_code: Optional[Any] = None
    error_message: Optional[str] = None


class Adset(BaseModel):
    model_config = ConfigDict(extra="allow")

    adset_id: Optional[str] = None
    adset_name: Optional[str] = None
    status: Optional[str] = None
    daily_budget: Optional[str] = None
    lifetime_budget: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    region: Optional[Any] = None
    gasto: float = 0.0
    resultados: int = 0
    costoPorResultado: float = 0.0


class DailyMetrics(BaseModel):
    model_config = ConfigDict(extra="allow")

    messages: int = 0
    spend: float = 0.0
    costoPorMensaje: Optional[float] = None

    @field_validator("messages", "spend", mode="before")
    @classmethod
    def _none_to_zero(cls, v):
        return 0 if v is None else v


class Campaign(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    nombre: Optional[str] = None
    estado: Optional[str] = None
    objetivo: Optional[str] = None
    metricas_diarias: DailyMetrics = Field(default_factory=DailyMetrics)
    imagenes: Optional[Dict[str, Any]] = None
    adsets: List[Adset] = Field(default_factory=list)
    error: bool = False
    error_type: Optional[str] = None
    error_code: Optional[Any] = None
    error_message: Optional[str] = None
    insights_error: Optional[ErrorSentinel] = None
    imagenes_error: Optional[ErrorSentinel] = None
    adsets_error: Optional[ErrorSentinel] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return None if v is None else str(v)

    @field_validator("metricas_diarias", mode="before")
    @classmethod
    def _none_to_metrics(cls, v):
        return v or {}

    @field_validator("adsets", mode="before")
    @classmethod
    def _adsets_list(cls, v):
        # An adsets fetch failure is stored as a sentinel under adsets_error
        return v if isinstance(v, list) else []

    @property
    def messages(self) -> int:
        return self.metricas_diarias.messages

    @property
    def spend(self) -> float:
        return self.metricas_diarias.spend


class AdAccount(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    nombre: Optional[str] = None
    saldos: Optional[Dict[str, Any]] = None
    campanias: List[Campaign] = Field(default_factory=list)

    @field_validator("campanias", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []


class CampaignTeam(BaseModel):
    model_config = ConfigDict(extra="allow")

    nombre: str
    cuentas: List[AdAccount] = Field(default_factory=list)

    @field_validator("cuentas", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []


class CampaignSnapshot(BaseModel):
    model_config = ConfigDict(extra="allow")

    fecha_inicio: Optional[str] = None
    fecha_fin: Optional[str] = None
    datos: List[CampaignTeam] = Field(default_factory=list)

    @field_validator("datos", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []


class CampaignRow(BaseModel):
    """One campaign flattened out of the team/account tree for reporting."""
    model_config = ConfigDict(frozen=True)

    team: str
    account_id: str
    account_name: str
    campaign_id: str
    name: str
    status: str
    messages: int
    spend: float
    cost_per_message: Optional[float]
    cost_per_result: float
    adsets: List[Adset] = Field(default_factory=list)
    error: bool = False
