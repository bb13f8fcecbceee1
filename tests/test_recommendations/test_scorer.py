"""Tests for recommendation scoring: components, confidence and reasoning."""

from __future__ import annotations

import pytest

from analyst_tracker.recommendations.scorer import (
    BASE_SCORE,
    build_reason,
    compute_coverage_score,
    compute_rating_change_score,
    compute_target_change_score,
    determine_confidence,
    extract_price,
    rating_score,
    score_actions,
)
from analyst_tracker.taxonomy.action_taxonomy import Confidence


class TestPrimitives:
    @pytest.mark.parametrize("rating, expected", [
        ("Strong-Buy", 80.0), ("Buy", 80.0), ("Sector Outperform", 70.0),
        ("Overweight", 70.0), ("Hold", 50.0), ("Neutral", 50.0),
        ("Underperform", 30.0), ("Underweight", 30.0), ("Sell", 10.0),
        ("Speculative", 50.0), ("", 50.0),
    ])
    def test_rating_scale(self, rating, expected):
        assert rating_score(rating) == expected

    @pytest.mark.parametrize("text, expected", [
        ("$4.20", 4.20), ("$1,234.50", 1234.50), ("", 0.0), ("N/A", 0.0), ("1.2.3", 0.0),
    ])
    def test_extract_price(self, text, expected):
        assert extract_price(text) == pytest.approx(expected)

    @pytest.mark.parametrize("total, expected", [
        (75.0, Confidence.HIGH), (74.99, Confidence.MEDIUM),
        (60.0, Confidence.MEDIUM), (59.99, Confidence.LOW), (-20.0, Confidence.LOW),
    ])
    def test_confidence_buckets(self, total, expected):
        assert determine_confidence(total) is expected


class TestComponents:
    def test_upgrade_and_downgrade(self, make_action):
        assert compute_rating_change_score(make_action(rating_from="Hold", rating_to="Buy")) == 15.0
        assert compute_rating_change_score(make_action(rating_from="Buy", rating_to="Sell")) == -10.0
        assert compute_rating_change_score(make_action(rating_from="Buy", rating_to="Buy")) == 0.0

    def test_unmapped_rating_side_is_no_change(self, make_action):
        action = make_action(rating_from="Speculative", rating_to="Buy")
        assert compute_rating_change_score(action) == 0.0

    @pytest.mark.parametrize("target_from, target_to, expected", [
        ("$10.00", "$12.00", 20.0),    # +20%
        ("$10.00", "$11.00", 10.0),    # +10% is not above 10%
        ("$10.00", "$10.50", 0.0),     # +5% is not above 5%
        ("$10.00", "$10.40", 0.0),
        ("$10.00", "$9.40", -8.0),     # −6%
        ("$10.00", "$8.00", -15.0),    # −20%
        ("", "$8.00", 0.0),
        ("$10.00", "", 0.0),
    ])
    def test_target_buckets(self, make_action, target_from, target_to, expected):
        action = make_action(target_from=target_from, target_to=target_to)
        assert compute_target_change_score(action) == expected

    def test_coverage(self, make_action):
        buys = [make_action(i, rating_to="Buy") for i in range(3)]
        holds = [make_action(i, rating_to="Hold") for i in range(3)]
        assert compute_coverage_score(buys) == 13.0
        assert compute_coverage_score(holds) == 5.0
        assert compute_coverage_score(buys[:2]) == 8.0
        assert compute_coverage_score(holds[:1]) == 0.0


class TestScoreActions:
    def test_upgrade_with_target_raise(self, make_action):
        action = make_action(
            action_id=42,
            action="Upgraded",
            brokerage="X",
            rating_from="Hold",
            rating_to="Buy",
            target_from="$10",
            target_to="$12",
        )
        components = score_actions([action])

        assert components.rating_score == 30.0
        assert components.rating_change_score == 15.0
        assert components.target_change_score == 20.0
        assert components.action_score == 0.0
        assert components.coverage_score == 0.0
        assert components.total == 115.0
        assert components.confidence is Confidence.HIGH
        assert components.latest_action_id == 42
        assert components.reason == "Buy rating from X, Price target raised by 20.0%"

    def test_no_actions(self):
        components = score_actions([])
        assert components.total == BASE_SCORE
        assert components.confidence is Confidence.LOW
        assert components.reason == "No recent analyst coverage"
        assert components.latest_action_id is None

    def test_only_first_action_drives_latest_components(self, make_action):
        newest = make_action(1, action="target lowered by", rating_to="Sell")
        older = make_action(2, action="initiated by", rating_to="Buy")
        components = score_actions([newest, older])
        assert components.rating_score == -40.0
        assert components.action_score == -8.0
        assert components.latest_action_id == 1

    def test_total_can_go_negative(self, make_action):
        action = make_action(
            action="target lowered by", rating_from="Buy", rating_to="Sell",
            target_from="$10", target_to="$5",
        )
        assert score_actions([action]).total == 50 - 40 - 10 - 15 - 8

    def test_deterministic(self, make_action):
        actions = [make_action(i, rating_to="Buy", action="raised") for i in range(4)]
        assert score_actions(actions) == score_actions(actions)

    def test_to_score(self, make_action):
        score = score_actions([make_action(rating_to="Buy")]).to_score(stock_id=7)
        assert score.stock_id == 7
        assert score.total_score == 80.0
        assert score.confidence is Confidence.HIGH


class TestBuildReason:
    def test_initiated_outperform_with_coverage(self, make_action):
        actions = [
            make_action(1, action="initiated by", rating_to="Outperform", brokerage="Wedbush"),
            make_action(2),
            make_action(3),
        ]
        assert build_reason(actions) == (
            "Outperform rating from Wedbush, New analyst coverage, Multiple recent analyst updates"
        )

    def test_fallback_names_brokerage(self, make_action):
        assert build_reason([make_action(brokerage="Jefferies", rating_to="Hold")]) == (
            "Analyst coverage available from Jefferies"
        )

    def test_small_target_raise_not_mentioned(self, make_action):
        action = make_action(rating_to="Buy", brokerage="GS", target_from="$10", target_to="$10.80")
        assert build_reason([action]) == "Buy rating from GS"
