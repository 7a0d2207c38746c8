"""Tests for the panel response-latency analyzer."""

import json
import random

import pytest

from models.conversation_models import Conversation, Severity
from scripts.lib import config, snapshot_store
from scripts.lib.errors import ReportingError, SchemaValidationError
from scripts.response_analyzer import (
    PanelAggregator,
    analyze_conversation,
    analyze_conversations,
    build_snapshot,
    classify_latency,
    count_closing_phrase,
    mentions_keyword,
    order_messages,
    pair_delays,
    parse_conversations,
    run,
)
from tests.factories import conversation, minutes, msg


def _conv(uuid="c1", team="Panel Norte", messages=None, **extra):
    return Conversation.model_validate(conversation(uuid, team, messages, **extra))


class TestClassifyLatency:
    def test_exactly_five_minutes_is_not_a_delay(self):
        assert classify_latency(minutes(5)) is Severity.NONE

    def test_just_over_five_minutes_is_leve(self):
        assert classify_latency(minutes(5) + 1) is Severity.LEVE

    def test_exactly_ten_minutes_is_leve(self):
        assert classify_latency(minutes(10)) is Severity.LEVE

    def test_over_ten_minutes_is_grave(self):
        assert classify_latency(minutes(10.01)) is Severity.GRAVE

    def test_custom_thresholds(self):
        assert classify_latency(minutes(2), leve_minutes=1, grave_minutes=3) is Severity.LEVE


class TestPairDelays:
    def test_consecutive_inbound_pair_once(self):
        conv = _conv(messages=[
            msg("received", 0, "hola"),
            msg("received", minutes(1), "sigo esperando"),
            msg("sent", minutes(7), "buenas"),
        ])
        records = pair_delays(conv)
        assert len(records) == 1
        assert records[0].latency_ms == minutes(7)
        assert records[0].severity is Severity.LEVE
        assert records[0].inbound_text == "hola"

    def test_outbound_first_produces_nothing(self):
        conv = _conv(messages=[msg("sent", 0), msg("received", minutes(1))])
        assert pair_delays(conv) == []

    def test_only_outbound_produces_nothing(self):
        conv = _conv(messages=[msg("sent", 0), msg("sent", minutes(3))])
        assert pair_delays(conv) == []

    def test_each_exchange_paired(self):
        conv = _conv(messages=[
            msg("received", 0),
            msg("sent", minutes(2)),
            msg("received", minutes(3)),
            msg("sent", minutes(15)),
        ])
        records = pair_delays(conv)
        assert [r.latency_ms for r in records] == [minutes(2), minutes(12)]
        assert [r.severity for r in records] == [Severity.NONE, Severity.GRAVE]

    def test_unanswered_tail_is_ignored(self):
        conv = _conv(messages=[
            msg("received", 0),
            msg("sent", minutes(1)),
            msg("received", minutes(2)),
        ])
        assert len(pair_delays(conv)) == 1

    def test_unordered_input_is_sorted_first(self):
        conv = _conv(messages=[
            msg("sent", minutes(6)),
            msg("received", 0),
        ])
        records = pair_delays(conv)
        assert len(records) == 1
        assert records[0].latency_ms == minutes(6)

    def test_equal_timestamps_keep_payload_order(self):
        conv = _conv(messages=[
            msg("sent", 0, "x"),
            msg("received", 0, "y"),
            msg("sent", minutes(1), "z"),
        ])
        records = pair_delays(conv)
        assert len(records) == 1
        assert records[0].inbound_text == "y"
        assert records[0].outbound_text == "z"
        assert records[0].latency_ms == minutes(1)

    def test_equal_timestamps_reply_listed_after_inbound(self):
        conv = _conv(messages=[
            msg("received", 0, "y"),
            msg("sent", 0, "x"),
            msg("sent", minutes(1), "z"),
        ])
        records = pair_delays(conv)
        assert len(records) == 1
        assert records[0].outbound_text == "x"
        assert records[0].latency_ms == 0

    def test_reply_stamped_before_inbound_is_not_paired(self):
        conv = _conv(messages=[
            msg("received", minutes(5), "hola"),
            msg("sent", 0, "respuesta vieja"),
        ])
        records = pair_delays(conv)
        assert records == []

    def test_latencies_never_negative_for_shuffled_payloads(self):
        rng = random.Random(7)
        messages = [
            msg(rng.choice(["received", "sent"]), minutes(rng.randint(0, 30)))
            for _ in range(40)
        ]
        records = pair_delays(_conv(messages=messages))
        assert all(r.latency_ms >= 0 for r in records)

    def test_undated_messages_left_out(self, ctx):
        conv = _conv(messages=[
            msg("received", 0),
            msg("sent", None, "sin fecha"),
            msg("sent", minutes(2), "respuesta"),
        ])
        records = pair_delays(conv, ctx)
        assert len(records) == 1
        assert records[0].outbound_text == "respuesta"
        assert ctx.metrics["mensajes_sin_fecha"] == 1

    def test_never_more_records_than_inbound_messages(self):
        messages = []
        for i in range(20):
            messages.append(msg("received" if i % 3 else "sent", minutes(i)))
        conv = _conv(messages=messages)
        inbound = sum(1 for m in messages if m["status"] == "received")
        assert len(pair_delays(conv)) <= inbound

    def test_records_carry_drill_down_links(self):
        conv = _conv(
            messages=[msg("received", 0), msg("sent", minutes(1))],
            info={"contact": {
                "conversationHref": "https://dash.callbell.eu/chat/c1",
                "customFields": {"whatsapp cloud ad source url": "https://fb.me/ad1"},
            }},
        )
        record = pair_delays(conv)[0]
        assert record.conversation_href == "https://dash.callbell.eu/chat/c1"
        assert record.ad_source_url == "https://fb.me/ad1"
        row = record.to_snapshot()
        assert row["conversationHref"] == "https://dash.callbell.eu/chat/c1"
        assert row["whatsappCloudAdSourceUrl"] == "https://fb.me/ad1"

    def test_snapshot_omits_missing_links(self):
        conv = _conv(messages=[msg("received", 0), msg("sent", minutes(1))])
        row = pair_delays(conv)[0].to_snapshot()
        assert "conversationHref" not in row
        assert "whatsappCloudAdSourceUrl" not in row
        assert row["demoraMinutos"] == "1.00"
        assert row["demoraFormateada"] == "0h 1m 0s"
        # 13:00 UTC is 10:00 in Buenos Aires
        assert row["horaInicio"] == "18/10/2026, 10:00:00"


class TestOrderMessages:
    def test_undated_go_last_in_original_order(self):
        conv = _conv(messages=[
            msg("sent", None, "a"),
            msg("received", minutes(1), "b"),
            msg("sent", None, "c"),
            msg("received", 0, "d"),
        ])
        assert [m.text for m in order_messages(conv.messages)] == ["d", "b", "a", "c"]


class TestTextCounters:
    def test_keyword_case_insensitive(self):
        conv = _conv(messages=[msg("sent", 0, "Cliente C4RGADO")])
        assert mentions_keyword(conv.messages) is True

    def test_closing_phrase_counted_per_message(self):
        phrase = config.CLOSING_PHRASE
        conv = _conv(messages=[
            msg("sent", 0, phrase),
            msg("sent", minutes(1), f"{phrase} de nuevo"),
            msg("sent", minutes(2), "otra cosa"),
        ])
        assert count_closing_phrase(conv.messages) == 2


class TestAnalyzeConversation:
    def test_average_per_conversation(self):
        conv = _conv(messages=[
            msg("received", 0),
            msg("sent", minutes(2)),
            msg("received", minutes(3)),
            msg("sent", minutes(7)),
        ])
        result = analyze_conversation(conv)
        assert result.panel_name == "Norte"
        assert result.average.average_ms == minutes(3)
        assert result.average.delay_count == 2

    def test_no_messages_has_no_average(self):
        result = analyze_conversation(_conv(messages=[]))
        assert result.delays == []
        assert result.average is None

    def test_missing_team_is_unknown_panel(self):
        result = analyze_conversation(_conv(team=None))
        assert result.panel_name == config.UNKNOWN_PANEL


class TestPanelAggregation:
    def test_prefix_and_case_variants_share_a_panel(self):
        panels = analyze_conversations([
            _conv("c1", "Panel: Norte", [msg("received", 0), msg("sent", minutes(2))]),
            _conv("c2", "norte", [msg("received", 0), msg("sent", minutes(4))]),
        ])
        assert list(panels) == ["Norte"]
        stats = panels["Norte"]
        assert stats.conversation_count == 2
        assert len(stats.delay_records) == 2
        assert stats.average_latency_ms == minutes(3)

    def test_conversation_without_messages_is_counted(self):
        panels = analyze_conversations([_conv("c1", "Sur", [])])
        assert panels["Sur"].conversation_count == 1
        assert panels["Sur"].delay_records == []

    def test_keyword_counted_once_per_conversation(self):
        flagged = [msg("sent", 0, "c4rgado"), msg("sent", minutes(1), "C4rgado otra vez")]
        panels = analyze_conversations([
            _conv("c1", "Norte", flagged),
            _conv("c2", "Norte", flagged),
            _conv("c3", "Norte", [msg("sent", 0, "nada")]),
        ])
        assert panels["Norte"].flagged_keyword_count == 2

    def test_closing_phrase_accumulates_across_conversations(self):
        phrase = config.CLOSING_PHRASE
        panels = analyze_conversations([
            _conv("c1", "Norte", [msg("sent", 0, phrase), msg("sent", 1, phrase)]),
            _conv("c2", "Norte", [msg("sent", 0, phrase)]),
        ])
        assert panels["Norte"].closing_phrase_count == 3

    def test_buckets(self):
        panels = analyze_conversations([
            _conv("c1", "Norte", [
                msg("received", 0), msg("sent", minutes(6)),
                msg("received", minutes(7)), msg("sent", minutes(20)),
                msg("received", minutes(21)), msg("sent", minutes(22)),
            ]),
        ])
        stats = panels["Norte"]
        assert stats.leve_count == 1
        assert stats.grave_count == 1
        assert len(stats.delay_records) == 3

    def test_panel_average_over_all_records(self):
        panels = analyze_conversations([
            _conv("c1", "Norte", [
                msg("received", 0), msg("sent", minutes(2)),
                msg("received", minutes(3)), msg("sent", minutes(7)),
            ]),
            _conv("c2", "Norte", [msg("received", 0), msg("sent", minutes(12))]),
        ])
        snapshot = build_snapshot(panels)["Norte"]
        assert snapshot["promedioGeneralMinutos"] == "6.00"
        assert snapshot["totalDemorasAnalizadas"] == 3
        assert [a["promedioMinutos"] for a in snapshot["promedios"]] == ["3.00", "12.00"]

    def test_panel_without_records_has_no_average_fields(self):
        snapshot = build_snapshot(analyze_conversations([_conv("c1", "Sur", [msg("sent", 0)])]))
        assert "promedioGeneralMinutos" not in snapshot["Sur"]
        assert "promedioGeneralFormateado" not in snapshot["Sur"]
        assert "totalDemorasAnalizadas" not in snapshot["Sur"]
        assert snapshot["Sur"]["demoras_totales"] == []

    def test_add_after_finalize_raises(self):
        aggregator = PanelAggregator()
        aggregator.add(_conv())
        aggregator.finalize()
        with pytest.raises(ReportingError):
            aggregator.add(_conv("c2"))

    def test_message_order_does_not_change_the_result(self):
        messages = [
            msg("received", 0, "a"),
            msg("received", minutes(1), "b"),
            msg("sent", minutes(8), "c"),
            msg("received", minutes(9), "d"),
            msg("sent", minutes(25), "e"),
            msg("sent", minutes(26), "f"),
        ]
        expected = build_snapshot(analyze_conversations([_conv(messages=messages)]))
        rng = random.Random(7)
        for _ in range(5):
            shuffled = list(messages)
            rng.shuffle(shuffled)
            assert build_snapshot(analyze_conversations([_conv(messages=shuffled)])) == expected

    def test_rerun_is_identical(self):
        convs = [
            _conv("c1", "Norte", [msg("received", 0), msg("sent", minutes(11))]),
            _conv("c2", "Sur", [msg("received", 0), msg("sent", minutes(1))]),
        ]
        first = json.dumps(build_snapshot(analyze_conversations(convs)), sort_keys=True)
        second = json.dumps(build_snapshot(analyze_conversations(convs)), sort_keys=True)
        assert first == second


class TestParseConversations:
    def test_unreadable_items_are_skipped_and_recorded(self, ctx):
        raw = [conversation("c1"), {"messages": []}, "basura"]
        parsed = parse_conversations(raw, ctx)
        assert [c.uuid for c in parsed] == ["c1"]
        assert len(ctx.errors) == 2

    def test_non_list_raises(self):
        with pytest.raises(SchemaValidationError):
            parse_conversations({"uuid": "c1"})

    def test_null_fields_are_tolerated(self):
        raw = [{"uuid": 42, "team": None, "messages": None, "customFields": None,
                "createdAt": "no es una fecha"}]
        conv = parse_conversations(raw)[0]
        assert conv.uuid == "42"
        assert conv.messages == []
        assert conv.created_at is None


class TestRun:
    def test_run_writes_snapshot(self, tmp_path, monkeypatch):
        from datetime import date

        monkeypatch.setattr(snapshot_store, "PROCESSED_DIR", tmp_path)
        source = tmp_path / "contactos.json"
        source.write_text(json.dumps([
            conversation("c1", "Panel Norte", [msg("received", 0), msg("sent", minutes(11))]),
        ]), encoding="utf-8")

        snapshot = run(date(2026, 10, 18), input_path=source)

        assert snapshot["Norte"]["demoras_graves"]["cantidad"] == 1
        saved = json.loads((tmp_path / "respuestas_paneles" / "2026-10-18.json").read_text("utf-8"))
        assert saved == snapshot
        assert (tmp_path / "respuestas_paneles" / "latest.json").exists()

    def test_run_without_input_raises(self, tmp_path, monkeypatch):
        from datetime import date

        monkeypatch.setattr(snapshot_store, "RAW_DIR", tmp_path)
        with pytest.raises(ReportingError):
            run(date(2026, 10, 18))
