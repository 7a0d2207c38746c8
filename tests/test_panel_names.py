"""Tests for panel label normalization."""

import pytest

from scripts.lib.config import UNKNOWN_PANEL
from scripts.lib.panel_names import normalize_panel_name, panel_key


class TestNormalizePanelName:
    @pytest.mark.parametrize("raw", ["Panel Norte", "panel: Norte", "PANEL:Norte", "  Panel   Norte ", "Norte"])
    def test_prefix_forms(self, raw):
        assert normalize_panel_name(raw) == "Norte"

    @pytest.mark.parametrize("raw", [None, "", "   ", "Panel:", "panel:  ", "Panel ", "  panel\t"])
    def test_empty_labels_are_unknown(self, raw):
        assert normalize_panel_name(raw) == UNKNOWN_PANEL

    def test_case_is_preserved_for_display(self):
        assert normalize_panel_name("panel norte") == "norte"

    def test_prefix_only_removed_at_start(self):
        assert normalize_panel_name("Norte Panel 2") == "Norte Panel 2"

    def test_word_starting_with_panel_is_kept(self):
        assert normalize_panel_name("Paneles") == "Paneles"


class TestPanelKey:
    def test_case_variants_collide(self):
        assert panel_key("Panel: Norte") == panel_key("norte") == panel_key("NORTE")

    def test_distinct_panels_stay_apart(self):
        assert panel_key("Norte") != panel_key("Sur")
