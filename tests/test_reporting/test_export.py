"""Tests for analyst_tracker.reporting.export."""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path

from analyst_tracker.models.score import RecommendationScore, RecommendationView
from analyst_tracker.models.stock import Stock, StockView
from analyst_tracker.reporting.export import (
    RECOMMENDATION_COLUMNS,
    export_to_csv,
    export_to_json,
    flatten_recommendations_for_export,
)
from analyst_tracker.taxonomy.action_taxonomy import Confidence

CALCULATED = datetime(2025, 2, 1, 9, 0, 0, tzinfo=timezone.utc)


def _view(symbol: str, total: float, make_action=None) -> RecommendationView:
    actions = [make_action(brokerage="GS", action="target raised by")] if make_action else []
    return RecommendationView(
        score=RecommendationScore(
            stock_id=1,
            total_score=total,
            rating_score=30.0,
            rating_change_score=15.0,
            target_change_score=20.0,
            action_score=0.0,
            coverage_score=0.0,
            confidence=Confidence.HIGH,
            reason="Buy rating from GS",
            calculated_at=CALCULATED,
        ),
        stock=StockView(stock=Stock(stock_id=1, symbol=symbol, name=f"{symbol} Inc."),
                        latest_actions=actions),
    )


# ── export_to_csv ─────────────────────────────────────────────────────────────


def test_export_to_csv_basic(tmp_path: Path) -> None:
    """Writes a valid CSV with correct headers and values."""
    records = [
        {"symbol": "AAPL", "total_score": 115.0},
        {"symbol": "MSFT", "total_score": 72.5},
    ]
    out = tmp_path / "test.csv"
    result = export_to_csv(records, out)

    assert result == out
    with out.open(encoding="utf-8") as f:
        reader = list(csv.DictReader(f))
    assert len(reader) == 2
    assert reader[1]["symbol"] == "MSFT"


def test_export_to_csv_creates_parent_dirs(tmp_path: Path) -> None:
    out = tmp_path / "nested" / "deep" / "out.csv"
    export_to_csv([{"a": 1}], out)
    assert out.exists()


def test_export_to_csv_empty_records_with_fieldnames(tmp_path: Path) -> None:
    """An empty export still carries the header row."""
    out = tmp_path / "empty.csv"
    export_to_csv([], out, fieldnames=RECOMMENDATION_COLUMNS)
    header = out.read_text(encoding="utf-8").splitlines()[0]
    assert header.split(",") == RECOMMENDATION_COLUMNS


# ── export_to_json ────────────────────────────────────────────────────────────


def test_export_to_json_serialises_datetimes(tmp_path: Path) -> None:
    out = tmp_path / "out.json"
    export_to_json([{"when": CALCULATED}], out)
    assert json.loads(out.read_text(encoding="utf-8")) == [{"when": "2025-02-01 09:00:00+00:00"}]


# ── flatten_recommendations_for_export ────────────────────────────────────────


def test_flatten_recommendations_rank_and_columns(make_action) -> None:
    rows = flatten_recommendations_for_export(
        [_view("AAPL", 115.0, make_action), _view("MSFT", 80.0)], start_rank=21
    )

    assert [r["rank"] for r in rows] == [21, 22]
    assert list(rows[0].keys()) == RECOMMENDATION_COLUMNS
    assert rows[0]["symbol"] == "AAPL"
    assert rows[0]["confidence"] == "High"
    assert rows[0]["latest_brokerage"] == "GS"
    assert rows[0]["latest_analysis_date"].startswith("2025-01-01")
    assert rows[0]["calculated_at"] == CALCULATED.isoformat()


def test_flatten_recommendations_without_actions() -> None:
    row = flatten_recommendations_for_export([_view("MSFT", 80.0)])[0]
    assert row["rank"] == 1
    assert row["latest_brokerage"] == ""
    assert row["latest_action"] == ""
    assert row["latest_analysis_date"] == ""
