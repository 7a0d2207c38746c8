"""Tests for the Meta Ads fetcher (payload helpers and collection with a mocked client)."""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from scripts.fetch_meta_ads import (
    MetaAdsClient,
    build_adset_row,
    collect_account,
    collect_campaign,
    count_messaging_actions,
    error_campaign,
    load_accounts,
    run,
    should_include_campaign,
    summarize_insights,
)
from scripts.lib import config, snapshot_store
from scripts.lib.errors import APIError, APIUnavailableError, ConfigError

MESSAGING = config.META_MESSAGING_ACTION


def _client(status="ACTIVE", insights=None, adsets=None):
    client = MagicMock(spec=MetaAdsClient)
    client.campaign.return_value = {"id": "c1", "name": "Promo", "status": status, "objective": "MESSAGES"}
    client.insights.return_value = insights if insights is not None else []
    client.ad_images.return_value = None
    client.adsets.return_value = adsets or []
    return client


class TestPayloadHelpers:
    def test_count_messaging_actions(self):
        actions = [
            {"action_type": MESSAGING, "value": "7"},
            {"action_type": "link_click", "value": "40"},
            {"action_type": MESSAGING, "value": 3},
        ]
        assert count_messaging_actions(actions) == 10
        assert count_messaging_actions(None) == 0

    def test_summarize_insights(self):
        rows = [
            {"spend": "4.50", "actions": [{"action_type": MESSAGING, "value": "3"}]},
            {"spend": "1.50"},
        ]
        assert summarize_insights(rows) == (3, 6.0)

    def test_build_adset_row(self):
        row = build_adset_row({
            "id": "s1", "name": "Adset 1", "status": "ACTIVE",
            "targeting": {"geo_locations": {"countries": ["AR"]}},
            "insights": {"data": [{"spend": "9", "actions": [{"action_type": MESSAGING, "value": "6"}]}]},
        })
        assert row["adset_id"] == "s1"
        assert row["resultados"] == 6
        assert row["costoPorResultado"] == 1.5
        assert row["region"] == {"countries": ["AR"]}

    def test_build_adset_row_without_insights(self):
        row = build_adset_row({"id": "s1"})
        assert row["resultados"] == 0
        assert row["costoPorResultado"] == 0.0

    def test_error_campaign(self):
        campaign = error_campaign("c1", "http_error", "boom", 500)
        assert campaign["estado"] == "ERROR"
        assert campaign["error"] is True
        assert campaign["error_code"] == 500
        assert campaign["metricas_diarias"]["messages"] == 0

    def test_should_include_campaign(self):
        idle = {"metricas_diarias": {"messages": 0, "spend": 0}}
        assert should_include_campaign(idle, critical_error=False) is False
        assert should_include_campaign(idle, critical_error=True) is True
        assert should_include_campaign({"metricas_diarias": {"spend": 1}}, False) is True
        assert should_include_campaign({"error": True}, False) is True


class TestCollectCampaign:
    def test_active_campaign_with_activity(self, ctx):
        client = _client(insights=[{"spend": "10", "actions": [{"action_type": MESSAGING, "value": "4"}]}])
        campaign = collect_campaign(client, "c1", "2026-10-18", ctx)
        assert campaign["metricas_diarias"] == {"messages": 4, "spend": 10.0, "costoPorMensaje": 2.5}
        assert campaign["estado"] == "ACTIVE"
        assert ctx.errors == []

    def test_idle_campaign_is_excluded_and_alerted(self, ctx):
        campaign = collect_campaign(_client(), "c1", "2026-10-18", ctx)
        assert campaign is None
        assert len(ctx.alerts) == 1

    def test_insights_failure_on_active_is_kept(self, ctx):
        client = _client()
        client.insights.side_effect = APIUnavailableError("https://graph", status_code=500)
        campaign = collect_campaign(client, "c1", "2026-10-18", ctx)
        assert campaign is not None
        assert campaign["insights_error"]["error_type"] == "insights_error"
        assert campaign["insights_error"]["error_code"] == 500
        assert len(ctx.errors) == 1

    def test_insights_failure_on_paused_is_dropped(self, ctx):
        client = _client(status="PAUSED")
        client.insights.side_effect = APIUnavailableError("https://graph", status_code=500)
        assert collect_campaign(client, "c1", "2026-10-18", ctx) is None

    def test_basic_fetch_failure_becomes_error_campaign(self, ctx):
        client = _client()
        client.campaign.side_effect = APIError("API Error: bad", status_code=400, api_code=100)
        campaign = collect_campaign(client, "c1", "2026-10-18", ctx)
        assert campaign["estado"] == "ERROR"
        assert campaign["error_type"] == "api_error"
        assert campaign["error_code"] == 100
        client.insights.assert_not_called()

    def test_adsets_failure_is_recorded_next_to_data(self, ctx):
        client = _client(insights=[{"spend": "2"}])
        client.adsets.side_effect = APIUnavailableError("https://graph", status_code=503)
        campaign = collect_campaign(client, "c1", "2026-10-18", ctx)
        assert campaign["adsets"] == []
        assert campaign["adsets_error"]["error"] is True


class TestCollectAccount:
    def test_balance_failure_is_sentinel(self, ctx):
        client = _client(insights=[{"spend": "2"}])
        client.account_balance.side_effect = APIUnavailableError("https://graph", status_code=502)
        client.campaigns.return_value = [{"id": "c1"}]
        account = collect_account(client, "act_1", "2026-10-18", ctx)
        assert account["saldos"]["error"] is True
        assert [c["id"] for c in account["campanias"]] == ["c1"]

    def test_no_campaigns_alerts(self, ctx):
        client = _client()
        client.account_balance.return_value = {"balance": "0"}
        client.campaigns.return_value = []
        account = collect_account(client, "act_1", "2026-10-18", ctx)
        assert account["campanias"] == []
        assert any("No se encontraron" in a["mensaje"] for a in ctx.alerts)


class TestLoadAccounts:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_accounts(tmp_path / "nope.json")

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "cuentas.json"
        path.write_text('{"nombre": "x"}', encoding="utf-8")
        with pytest.raises(ConfigError):
            load_accounts(path)


class TestRun:
    def test_run_saves_snapshot_tree(self, tmp_path, monkeypatch):
        monkeypatch.setattr(snapshot_store, "PROCESSED_DIR", tmp_path)
        client = _client(insights=[{"spend": "3", "actions": [{"action_type": MESSAGING, "value": "1"}]}])
        client.account_balance.return_value = {"balance": "100"}
        client.campaigns.return_value = [{"id": "c1"}]

        with patch("scripts.fetch_meta_ads.MetaAdsClient", return_value=client):
            snapshot = run(date(2026, 10, 18), accounts=[
                {"nombre": "Equipo A", "token": "t", "idsCuentasAnuncios": ["act_1"]},
            ])

        assert snapshot["datos"][0]["nombre"] == "Equipo A"
        assert snapshot["datos"][0]["cuentas"][0]["campanias"][0]["id"] == "c1"
        assert (tmp_path / "campanias_meta_ads" / "2026-10-18.json").exists()


class TestUnexpectedFailures:
    def test_non_json_responses_do_not_abort_the_account(self, ctx):
        response = MagicMock(spec=requests.Response)
        response.status_code = 200
        response.ok = True
        response.headers = {}
        response.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "", 0)

        with patch("scripts.lib.utils.circuit_breaker_request", return_value=response):
            account = collect_account(MetaAdsClient("tok"), "act_1", "2026-10-18", ctx)

        assert account["saldos"]["error"] is True
        assert account["saldos"]["error_type"] == "invalid_response"
        assert account["campanias"] == []
        assert len(ctx.errors) == 2

    def test_malformed_insight_value_keeps_campaign_as_critical(self, ctx):
        client = _client(insights=[{"spend": "3", "actions": [{"action_type": MESSAGING, "value": "n/a"}]}])
        campaign = collect_campaign(client, "c1", "2026-10-18", ctx)
        assert campaign["estado"] == "ERROR"
        assert campaign["error_type"] == "critical_error"
        assert len(ctx.errors) == 1

    def test_one_broken_campaign_does_not_stop_the_others(self, ctx):
        client = _client(insights=[{"spend": "2"}])
        client.account_balance.return_value = {"balance": "0"}
        client.campaigns.return_value = [{"id": "c1"}, {"id": "c2"}]
        client.campaign.side_effect = lambda cid: (
            {"id": cid, "name": "ok", "status": "ACTIVE"} if cid == "c1" else None
        )
        account = collect_account(client, "act_1", "2026-10-18", ctx)
        by_id = {c["id"]: c for c in account["campanias"]}
        assert by_id["c1"]["estado"] == "ACTIVE"
        assert by_id["c2"]["error_type"] == "critical_error"
