"""Tests for the Meta Ads campaign aggregator."""

import json
from datetime import date

import pytest

from scripts.campaign_aggregator import (
    best_campaigns,
    build_summary,
    cost_per_result,
    expensive_adsets,
    flatten_campaigns,
    low_traffic_panels,
    message_variation,
    new_campaigns,
    objective_reached,
    paused_adsets,
    run,
    stalled_campaigns,
    with_activity,
)
from scripts.lib import snapshot_store
from scripts.lib.errors import DataFetchError, SchemaValidationError
from scripts.lib.snapshot_store import KIND_CAMPAIGNS, save_snapshot
from tests.factories import campaign, campaign_snapshot

DAY = date(2026, 10, 18)


def _rows(*campaigns):
    return flatten_campaigns(campaign_snapshot(*campaigns))


class TestFlatten:
    def test_one_row_per_campaign(self):
        rows = _rows(
            campaign("1", messages=5, spend=2.5, cost=0.5),
            campaign("2", status="PAUSED"),
        )
        assert [r.campaign_id for r in rows] == ["1", "2"]
        assert rows[0].team == "Equipo A"
        assert rows[0].account_id == "act_1"
        assert rows[0].cost_per_result == pytest.approx(0.5)

    def test_none_snapshot(self):
        assert flatten_campaigns(None) == []

    def test_error_campaign_flagged(self):
        rows = _rows(campaign("1", status="ERROR", error=True, error_type="http_error"))
        assert rows[0].error is True

    def test_adsets_sentinel_becomes_empty_list(self):
        rows = _rows(campaign("1", adsets={"error": True, "error_type": "http_error"}))
        assert rows[0].adsets == []

    def test_malformed_snapshot_raises(self):
        with pytest.raises(SchemaValidationError):
            flatten_campaigns({"datos": [{"cuentas": []}]})

    def test_cost_per_result(self):
        assert cost_per_result(10.0, 4) == 2.5
        assert cost_per_result(10.0, 0) == 0.0


class TestCampaignViews:
    def test_with_activity(self):
        rows = _rows(
            campaign("1", messages=3),
            campaign("2", spend=1.0),
            campaign("3"),
            campaign("4", spend=5.0, status="ERROR", error=True),
        )
        assert [r.campaign_id for r in with_activity(rows)] == ["1", "2"]

    def test_stalled_regardless_of_spend(self):
        rows = _rows(
            campaign("1", status="ACTIVE", spend=12.0),
            campaign("2", status="PAUSED"),
            campaign("3", status="ACTIVE", messages=4),
            campaign("4", status="ERROR", error=True),
        )
        assert [r.campaign_id for r in stalled_campaigns(rows)] == ["1", "2"]

    def test_best_ranks_by_messages_then_cost(self):
        rows = _rows(
            campaign("a", messages=10, cost=0.5),
            campaign("b", messages=10, cost=1.0),
            campaign("c", messages=10, cost=0.1),
            campaign("d", messages=30, cost=2.0),
            campaign("e", messages=0, cost=0.01),
        )
        assert [r.campaign_id for r in best_campaigns(rows)] == ["d", "c", "a", "b"]

    def test_best_ties_broken_by_cheaper_message(self):
        rows = _rows(
            campaign("a", messages=10, cost=1.0),
            campaign("b", messages=10, cost=0.5),
            campaign("c", messages=5, cost=0.1),
        )
        assert [r.cost_per_message for r in best_campaigns(rows)] == [0.5, 1.0, 0.1]

    def test_best_unknown_cost_sorts_last(self):
        rows = _rows(
            campaign("a", messages=10, cost=None),
            campaign("b", messages=10, cost=3.0),
        )
        assert [r.campaign_id for r in best_campaigns(rows)] == ["b", "a"]

    def test_best_respects_limit(self):
        rows = _rows(*[campaign(str(i), messages=i + 1, cost=1.0) for i in range(15)])
        assert len(best_campaigns(rows, limit=10)) == 10

    def test_new_campaigns_by_name_tag(self):
        rows = _rows(
            campaign("1", name="Promo (18/10)"),
            campaign("2", name="Promo (17/10)"),
            campaign("3", name="Sin fecha"),
        )
        assert [r.campaign_id for r in new_campaigns(rows, DAY)] == ["1"]

    def test_objective_reached(self):
        rows = _rows(campaign("1", messages=60), campaign("2", messages=59))
        assert [r.campaign_id for r in objective_reached(rows, 60)] == ["1"]

    def test_expensive_and_paused_adsets(self):
        adsets = [
            {"adset_id": "s1", "adset_name": "caro", "status": "ACTIVE", "costoPorResultado": 1.5},
            {"adset_id": "s2", "adset_name": "barato", "status": "PAUSED", "costoPorResultado": 0.4},
        ]
        rows = _rows(campaign("1", adsets=adsets))
        assert [a.adset_id for _, a in expensive_adsets(rows, 1.2)] == ["s1"]
        assert [a.adset_id for _, a in paused_adsets(rows)] == ["s2"]

    def test_low_traffic_panels(self):
        panels = [{"panel": "Norte", "total_mensajes_hoy": 150}, {"panel": "Sur", "total_mensajes_hoy": 20}]
        assert [p["panel"] for p in low_traffic_panels(panels, 100)] == ["Sur"]


class TestMessageVariation:
    def test_none_when_a_side_is_empty(self):
        today = _rows(campaign("1", messages=5))
        assert message_variation(today, []) is None
        assert message_variation([], today) is None

    def test_deltas_sorted_by_magnitude(self):
        today = _rows(
            campaign("1", messages=10),
            campaign("2", messages=2),
            campaign("3", messages=7),
            campaign("4", messages=9),
        )
        yesterday = _rows(
            campaign("1", messages=8),
            campaign("2", messages=12),
            campaign("3", messages=7),
        )
        result = message_variation(today, yesterday)
        assert [(r.campaign_id, delta) for r, delta in result] == [("2", -10), ("1", 2)]

    def test_no_changes_is_empty_list(self):
        today = _rows(campaign("1", messages=4))
        assert message_variation(today, _rows(campaign("1", messages=4))) == []


class TestSummary:
    def test_build_summary_sections(self):
        today = _rows(campaign("1", name="Nueva (18/10)", messages=70, spend=35.0, cost=0.5))
        summary = build_summary(today, [], DAY)
        assert summary["fecha"] == "2026-10-18"
        assert summary["total_campanias"] == 1
        assert summary["nuevas"][0]["id"] == "1"
        assert summary["objetivo"][0]["messages"] == 70
        assert summary["variacion"] is None

    def test_run_reads_and_writes_snapshots(self, tmp_path, monkeypatch):
        monkeypatch.setattr(snapshot_store, "PROCESSED_DIR", tmp_path)
        save_snapshot(KIND_CAMPAIGNS, campaign_snapshot(campaign("1", messages=3)), DAY)
        save_snapshot(KIND_CAMPAIGNS, campaign_snapshot(campaign("1", messages=1)), date(2026, 10, 17))

        summary = run(DAY)

        assert summary["variacion"] == [{"id": "1", "nombre": "Campaña 1", "diferencia": 2}]
        saved = json.loads((tmp_path / "resumen_campanias" / "2026-10-18.json").read_text("utf-8"))
        assert saved["total_campanias"] == 1

    def test_run_without_snapshot_raises(self, tmp_path, monkeypatch):
        monkeypatch.setattr(snapshot_store, "PROCESSED_DIR", tmp_path)
        with pytest.raises(DataFetchError):
            run(DAY)
