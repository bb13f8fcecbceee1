"""
Export helpers for spreadsheets and manual analysis.

All writers create parent directories and return the written ``Path``.
They accept generic ``list[dict]`` data to stay decoupled from specific
report shapes.

``flatten_recommendations_for_export()`` converts nested
``RecommendationView`` objects into one flat row per stock with every
score component as its own column.
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Iterable

from analyst_tracker.models.score import RecommendationView

RECOMMENDATION_COLUMNS = [
    "rank",
    "symbol",
    "name",
    "total_score",
    "rating_score",
    "rating_change_score",
    "target_change_score",
    "action_score",
    "coverage_score",
    "confidence",
    "reason",
    "latest_brokerage",
    "latest_action",
    "latest_analysis_date",
    "calculated_at",
]


def export_to_csv(
    records: list[dict],
    path: Path,
    fieldnames: list[str] | None = None,
) -> Path:
    """Write ``records`` to a UTF-8 CSV file.

    Args:
        records:    List of row dicts.
        path:       Destination file path (parent dirs created if missing).
        fieldnames: Column order.  If None, uses the keys of the first record.

    Returns:
        ``path`` as written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    cols = fieldnames or (list(records[0].keys()) if records else [])
    with path.open("w", newline="", encoding="utf-8") as f:
        if not cols:
            return path
        writer = csv.DictWriter(f, fieldnames=cols, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(records)
    return path


def export_to_json(data: dict | list, path: Path) -> Path:
    """Write ``data`` to a pretty-printed JSON file (non-JSON values via ``str``)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    return path


def flatten_recommendations_for_export(
    views: Iterable[RecommendationView],
    start_rank: int = 1,
) -> list[dict]:
    """Flatten recommendation views into export rows.

    Args:
        views:      Recommendations in rank order.
        start_rank: Rank of the first view (``(page - 1) * page_size + 1``).

    Returns:
        One dict per view with the keys in ``RECOMMENDATION_COLUMNS``.
    """
    rows: list[dict] = []
    for rank, view in enumerate(views, start=start_rank):
        score = view.score
        latest = view.stock.latest_actions[0] if view.stock.latest_actions else None
        rows.append({
            "rank":                 rank,
            "symbol":               view.stock.stock.symbol,
            "name":                 view.stock.stock.name,
            "total_score":          round(score.total_score, 2),
            "rating_score":         score.rating_score,
            "rating_change_score":  score.rating_change_score,
            "target_change_score":  score.target_change_score,
            "action_score":         score.action_score,
            "coverage_score":       score.coverage_score,
            "confidence":           score.confidence.value,
            "reason":               score.reason,
            "latest_brokerage":     latest.brokerage if latest else "",
            "latest_action":        latest.action if latest else "",
            "latest_analysis_date": latest.analysis_date.isoformat() if latest else "",
            "calculated_at":        score.calculated_at.isoformat() if score.calculated_at else "",
        })
    return rows
