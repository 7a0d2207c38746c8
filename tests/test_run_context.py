"""Tests for the run-scoped error/alert/metric collector."""

import json

from scripts.lib.run_context import RunContext


class TestRunContext:
    def test_collects_errors_alerts_metrics(self):
        ctx = RunContext("fetch_meta_ads")
        ctx.record_error("meta.insights", ValueError("boom"), campaignId="1")
        ctx.record_alert("Sin campañas", idCuenta="act_1")
        ctx.set_metric("cuentas_totales", 3)
        ctx.increment("mensajes_sin_fecha")
        ctx.increment("mensajes_sin_fecha", 2)

        summary = ctx.finalize()
        assert summary["run"] == "fetch_meta_ads"
        assert summary["total_errores"] == 1
        assert summary["total_alertas"] == 1
        assert summary["errores"][0]["error_type"] == "ValueError"
        assert summary["errores"][0]["data"] == {"campaignId": "1"}
        assert summary["metricas"] == {"cuentas_totales": 3, "mensajes_sin_fecha": 3}

    def test_finalize_keeps_first_end_time(self):
        ctx = RunContext("x")
        first = ctx.finalize()["fecha_fin"]
        assert ctx.finalize()["fecha_fin"] == first

    def test_independent_contexts(self):
        a, b = RunContext("a"), RunContext("b")
        a.record_error("ctx", "fallo")
        assert b.errors == []

    def test_clean_run_writes_nothing(self, tmp_path):
        ctx = RunContext("x")
        ctx.set_metric("n", 1)
        assert ctx.write_log(tmp_path) is None
        assert not (tmp_path / "run_log.jsonl").exists()

    def test_run_with_errors_appends_log(self, tmp_path):
        for name in ("primero", "segundo"):
            ctx = RunContext(name)
            ctx.record_error("step", "fallo")
            ctx.write_log(tmp_path)

        lines = (tmp_path / "run_log.jsonl").read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["run"] for line in lines] == ["primero", "segundo"]
