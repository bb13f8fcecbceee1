"""
Repository for the recommendation score projection.

One row per stock. ``upsert`` always overwrites every computed field and
stamps ``calculated_at`` and ``updated_at`` with the same instant;
``created_at`` records when the stock was first scored.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from analyst_tracker.db.repositories.base import BaseRepository
from analyst_tracker.models.score import RecommendationScore
from analyst_tracker.taxonomy.action_taxonomy import Confidence
from analyst_tracker.utils.time_utils import parse_timestamp, to_timestamp, utcnow

logger = logging.getLogger(__name__)


class RecommendationScoreRepository(BaseRepository):
    """Read/write access to the ``recommendation_scores`` table."""

    def upsert(self, score: RecommendationScore, now: Optional[datetime] = None) -> int:
        """Insert or fully replace the score row for ``score.stock_id``.

        Args:
            score: Computed score (``score_id`` and timestamps are ignored).
            now:   Calculation timestamp; defaults to the current UTC time.

        Returns:
            The ``score_id`` (existing or new).

        Raises:
            StoreError: On any SQLite failure.
        """
        ts = to_timestamp(now or utcnow())
        with self.store_operation("upsert_score", score.stock_id):
            self.execute(
                """
                INSERT INTO recommendation_scores (
                    stock_id, total_score, rating_score, rating_change_score,
                    target_change_score, action_score, coverage_score,
                    confidence, reason, latest_action_id,
                    calculated_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(stock_id) DO UPDATE SET
                    total_score         = excluded.total_score,
                    rating_score        = excluded.rating_score,
                    rating_change_score = excluded.rating_change_score,
                    target_change_score = excluded.target_change_score,
                    action_score        = excluded.action_score,
                    coverage_score      = excluded.coverage_score,
                    confidence          = excluded.confidence,
                    reason              = excluded.reason,
                    latest_action_id    = excluded.latest_action_id,
                    calculated_at       = excluded.calculated_at,
                    updated_at          = excluded.updated_at;
                """,
                (
                    score.stock_id,
                    score.total_score,
                    score.rating_score,
                    score.rating_change_score,
                    score.target_change_score,
                    score.action_score,
                    score.coverage_score,
                    score.confidence.value,
                    score.reason,
                    score.latest_action_id,
                    ts,
                    ts,
                    ts,
                ),
            )
            row = self.fetchone(
                "SELECT score_id FROM recommendation_scores WHERE stock_id = ?;",
                (score.stock_id,),
            )
        assert row is not None
        return int(row["score_id"])

    def get_by_stock_id(self, stock_id: int) -> Optional[RecommendationScore]:
        """Fetch the score for a stock, or ``None`` if it was never scored."""
        row = self.fetchone(
            "SELECT * FROM recommendation_scores WHERE stock_id = ?;", (stock_id,)
        )
        return row_to_score(row) if row else None

    def count(self) -> int:
        """Return the number of scored stocks."""
        return int(self.scalar("SELECT COUNT(*) FROM recommendation_scores;"))


def row_to_score(row: sqlite3.Row) -> RecommendationScore:
    """Map a ``recommendation_scores`` row (or a join exposing its columns)."""
    return RecommendationScore(
        score_id=row["score_id"],
        stock_id=row["stock_id"],
        total_score=row["total_score"],
        rating_score=row["rating_score"],
        rating_change_score=row["rating_change_score"],
        target_change_score=row["target_change_score"],
        action_score=row["action_score"],
        coverage_score=row["coverage_score"],
        confidence=Confidence(row["confidence"]),
        reason=row["reason"],
        latest_action_id=row["latest_action_id"],
        calculated_at=parse_timestamp(row["calculated_at"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )
