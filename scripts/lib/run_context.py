"""
Run-scoped bookkeeping for one batch execution.

A RunContext is created at the start of a script run and handed to every
collaborator that can fail or notice something odd. It accumulates errors,
alerts and metrics; `finalize()` stamps the end time and computes summary
counts. Nothing here is process-global.

Usage:
    ctx = RunContext("fetch_meta_ads")
    ctx.record_error("obtener saldos", exc, idCuenta=account_id)
    ctx.set_metric("cuentas_totales", 3)
    summary = ctx.finalize()
"""
from __future__ import annotations

import json
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from scripts.lib.config import REPORT_TIMEZONE, RUN_LOG_DIR
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


def _local_now() -> str:
    return datetime.now(ZoneInfo(REPORT_TIMEZONE)).isoformat(timespec="seconds")


class RunContext:
    """Errors, alerts and metrics collected during one run."""

    def __init__(self, run_name: str):
        self.run_name = run_name
        self.run_id = int(time.time() * 1000)
        self.started_at = _local_now()
        self.finished_at: Optional[str] = None
        self.errors: List[Dict[str, Any]] = []
        self.alerts: List[Dict[str, Any]] = []
        self.metrics: Dict[str, Any] = {}

    def record_error(self, context: str, error: Exception | str, **data) -> None:
        """Record a non-fatal failure (one entity, one upstream call)."""
        message = str(error)
        self.errors.append({
            "timestamp": _local_now(),
            "context": context,
            "error": message,
            "error_type": type(error).__name__ if isinstance(error, Exception) else "str",
            "data": data,
        })
        logger.error("[%s] %s %s", context, message, data or "")

    def record_alert(self, message: str, **data) -> None:
        self.alerts.append({"timestamp": _local_now(), "mensaje": message, "data": data})
        logger.warning("ALERTA: %s %s", message, data or "")

    def set_metric(self, key: str, value: Any) -> None:
        self.metrics[key] = value

    def increment(self, key: str, amount: int = 1) -> None:
        self.metrics[key] = self.metrics.get(key, 0) + amount

    def finalize(self) -> Dict[str, Any]:
        """Close the run and return its summary."""
        if self.finished_at is None:
            self.finished_at = _local_now()
        return {
            "run": self.run_name,
            "ejecucion_id": self.run_id,
            "fecha_inicio": self.started_at,
            "fecha_fin": self.finished_at,
            "errores": list(self.errors),
            "alertas": list(self.alerts),
            "metricas": dict(self.metrics),
            "total_errores": len(self.errors),
            "total_alertas": len(self.alerts),
        }

    def should_persist_log(self) -> bool:
        return bool(self.errors or self.alerts)

    def write_log(self, log_dir: Path = None) -> Optional[Path]:
        """Append the finalized summary to the run log when there is something to triage."""
        summary = self.finalize()
        if not self.should_persist_log():
            return None
        target_dir = Path(log_dir) if log_dir else RUN_LOG_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        log_path = target_dir / "run_log.jsonl"
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(summary, ensure_ascii=False, default=str) + "\n")
        logger.info(
            "Run log appended to %s (%d errors, %d alerts)",
            log_path, summary["total_errores"], summary["total_alertas"],
        )
        return log_path
