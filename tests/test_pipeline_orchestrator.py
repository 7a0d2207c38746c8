"""Tests for pipeline phase wiring and step bookkeeping."""

from datetime import date

from scripts.pipeline_orchestrator import SCRIPT_DIR, build_phases, run_script, run_steps_sequential, summarize


class TestPipeline:
    def test_phases_reference_existing_scripts(self):
        phases = build_phases(date(2026, 10, 18), "tarde")
        assert list(phases) == ["fetch", "analyze", "report"]
        for _, steps, _ in phases.values():
            for _, script, args in steps:
                assert (SCRIPT_DIR / script).exists()
                assert args[:2] == ["--date", "2026-10-18"]

    def test_fetch_runs_in_parallel(self):
        phases = build_phases(date(2026, 10, 18), "tarde")
        assert phases["fetch"][2] is True
        assert phases["analyze"][2] is False

    def test_crm_steps_are_wired(self):
        phases = build_phases(date(2026, 10, 18), "tarde")
        assert "fetch_clientify.py" in [s[1] for s in phases["fetch"][1]]
        assert "crm_panel_report.py" in [s[1] for s in phases["analyze"][1]]

    def test_report_gets_shift(self):
        _, steps, _ = build_phases(date(2026, 10, 18), "tarde")["report"]
        assert steps[0][2][-2:] == ["--shift", "tarde"]

    def test_dry_run_skips_everything(self):
        steps = build_phases(date(2026, 10, 18), "tarde")["analyze"][1]
        results = run_steps_sequential(steps, dry_run=True)
        assert {r["status"] for r in results} == {"skipped"}
        assert summarize(results, 0.1) == 0

    def test_missing_script_fails(self):
        success, _, error = run_script("no_existe.py")
        assert success is False
        assert "not found" in error

    def test_summarize_counts_failures(self):
        results = [
            {"name": "a", "script": "a.py", "status": "success", "duration_ms": 5, "error": None},
            {"name": "b", "script": "b.py", "status": "failed", "duration_ms": 7, "error": "boom"},
        ]
        assert summarize(results, 1.0) == 1
