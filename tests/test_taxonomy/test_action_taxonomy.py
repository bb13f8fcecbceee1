"""Tests for the action, sort and rating taxonomy."""

from __future__ import annotations

import pytest

from analyst_tracker.taxonomy.action_taxonomy import (
    ACTION_SCORES,
    DEFAULT_SORT_MODE,
    RATING_SCALE,
    ActionKind,
    SortMode,
    action_kind_label,
    action_kind_value,
    classify_action,
    first_match,
    parse_action_kind,
    parse_sort_mode,
)


class TestActionKind:
    def test_values_are_unique(self):
        values = [k.value for k in ActionKind]
        assert len(values) == len(set(values))

    def test_every_kind_has_label(self):
        for kind in ActionKind:
            assert kind.label

    def test_phrase_replaces_hyphen(self):
        assert ActionKind.TARGET_SET.phrase == "target set"

    @pytest.mark.parametrize("text, expected", [
        ("target raised by", ActionKind.RAISED),
        ("Target Lowered By", ActionKind.LOWERED),
        ("upgraded by", ActionKind.UPGRADED),
        ("downgraded by", ActionKind.DOWNGRADED),
        ("initiated by", ActionKind.INITIATED),
        ("reiterated by", ActionKind.REITERATED),
        ("target set by", ActionKind.TARGET_SET),
        ("price target maintained", None),
        ("", None),
    ])
    def test_classify_action(self, text, expected):
        assert classify_action(text) is expected

    def test_label_and_value_fallbacks(self):
        assert action_kind_label("target raised by") == "Target Raised"
        assert action_kind_label("price  target maintained") == "Price Target Maintained"
        assert action_kind_value("price  target maintained") == "price-target-maintained"
        assert action_kind_value("target set by") == "target-set"

    @pytest.mark.parametrize("value, expected", [
        ("raised", ActionKind.RAISED),
        (" LOWERED ", ActionKind.LOWERED),
        ("target-set", ActionKind.TARGET_SET),
        ("all", None),
        ("", None),
        (None, None),
        ("exploded", None),
    ])
    def test_parse_action_kind(self, value, expected):
        assert parse_action_kind(value) is expected


class TestSortMode:
    def test_default_is_ticker(self):
        assert DEFAULT_SORT_MODE is SortMode.TICKER_A_Z

    @pytest.mark.parametrize("value, expected", [
        ("analysis-newest", SortMode.ANALYSIS_NEWEST),
        ("Company-A-Z", SortMode.COMPANY_A_Z),
        ("sideways", SortMode.TICKER_A_Z),
        (None, SortMode.TICKER_A_Z),
    ])
    def test_parse_sort_mode(self, value, expected):
        assert parse_sort_mode(value) is expected

    def test_every_mode_has_label(self):
        assert all(mode.label for mode in SortMode)


class TestPhraseTables:
    def test_first_match_is_case_insensitive(self):
        assert first_match("STRONG-BUY", RATING_SCALE) == 80.0

    def test_first_match_respects_order(self):
        table = (("target", 1.0), ("target raised", 2.0))
        assert first_match("target raised by", table) == 1.0

    def test_no_match(self):
        assert first_match("speculative", RATING_SCALE) is None
        assert first_match(None, ACTION_SCORES) is None

    def test_action_scores(self):
        assert first_match("initiated by", ACTION_SCORES) == 10.0
        assert first_match("target raised by", ACTION_SCORES) == 12.0
        assert first_match("target lowered by", ACTION_SCORES) == -8.0
        assert first_match("price target maintained", ACTION_SCORES) == 5.0
        assert first_match("upgraded by", ACTION_SCORES) is None
