"""
Market overview analytics.

Plain aggregations over ``analyst_actions`` (by ``created_at``, i.e. when the
action entered the store), ``stocks`` and ``recommendation_scores``:

  recent_analysis        actions created in the last 30 days
  upgrades               … whose action mentions raised/upgrade/initiated or
                         whose rating_to mentions buy/outperform
  downgrades             … whose action mentions lowered/downgrade or whose
                         rating_to mentions sell/underperform
  top_brokerages         5 most active brokerages over 30 days
  top_action_kinds       5 most common action labels over 30 days
                         (unrecognised actions grouped as "Other")
  recent_activity_trend  actions per UTC day over the last 7 days, newest first
  selection_rate         scored stocks / all stocks × 100

Top-5 percentages are relative to the top-5 total.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from analyst_tracker.db.repositories.base import BaseRepository
from analyst_tracker.models.query import (
    ActionKindShare,
    ActivityPoint,
    BrokerageShare,
    Overview,
)
from analyst_tracker.taxonomy.action_taxonomy import ActionKind
from analyst_tracker.utils.time_utils import to_timestamp, utcnow

logger = logging.getLogger(__name__)

RECENT_WINDOW_DAYS = 30
TREND_WINDOW_DAYS = 7
TOP_N = 5

_UPGRADE_SQL = """
    (LOWER(action) LIKE '%raised%' OR LOWER(action) LIKE '%upgrade%'
     OR LOWER(action) LIKE '%initiated%'
     OR LOWER(rating_to) LIKE '%buy%' OR LOWER(rating_to) LIKE '%outperform%')
"""

_DOWNGRADE_SQL = """
    (LOWER(action) LIKE '%lowered%' OR LOWER(action) LIKE '%downgrade%'
     OR LOWER(rating_to) LIKE '%sell%' OR LOWER(rating_to) LIKE '%underperform%')
"""


def _action_label_case() -> str:
    whens = "\n".join(
        f"        WHEN LOWER(action) LIKE '%{kind.phrase}%' THEN '{kind.label}'"
        for kind in ActionKind
    )
    return f"CASE\n{whens}\n        ELSE 'Other'\n    END"


def _percent(count: int, total: int) -> float:
    return count / total * 100 if total else 0.0


class OverviewQuery(BaseRepository):
    """Builds the ``Overview`` analytics snapshot."""

    def build(self, now: Optional[datetime] = None) -> Overview:
        """Compute all overview figures as of ``now`` (default: UTC now)."""
        now = now or utcnow()
        recent_cutoff = to_timestamp(now - timedelta(days=RECENT_WINDOW_DAYS))
        trend_cutoff = to_timestamp(now - timedelta(days=TREND_WINDOW_DAYS))

        total_stocks = int(self.scalar("SELECT COUNT(*) FROM stocks;"))
        recent_analysis = int(self.scalar(
            "SELECT COUNT(*) FROM analyst_actions WHERE created_at >= ?;",
            (recent_cutoff,),
        ))
        upgrades = int(self.scalar(
            f"SELECT COUNT(*) FROM analyst_actions WHERE created_at >= ? AND {_UPGRADE_SQL};",
            (recent_cutoff,),
        ))
        downgrades = int(self.scalar(
            f"SELECT COUNT(*) FROM analyst_actions WHERE created_at >= ? AND {_DOWNGRADE_SQL};",
            (recent_cutoff,),
        ))

        rec_stats = self.fetchone(
            """
            SELECT COUNT(*)                                            AS total,
                   SUM(CASE WHEN confidence = 'High' THEN 1 ELSE 0 END) AS high,
                   AVG(total_score)                                    AS avg_score
            FROM recommendation_scores;
            """
        )
        total_recs = int(rec_stats["total"]) if rec_stats else 0
        high_conf = int(rec_stats["high"] or 0) if rec_stats else 0
        avg_score = float(rec_stats["avg_score"] or 0.0) if rec_stats else 0.0

        return Overview(
            total_stocks=total_stocks,
            total_recommendations=total_recs,
            recent_analysis=recent_analysis,
            upgrades=upgrades,
            downgrades=downgrades,
            high_confidence_recs=high_conf,
            selection_rate=_percent(total_recs, total_stocks),
            average_recommendation_score=avg_score,
            top_brokerages=self._top_brokerages(recent_cutoff),
            top_action_kinds=self._top_action_kinds(recent_cutoff),
            recent_activity_trend=self._activity_trend(trend_cutoff),
        )

    # ── Private helpers ───────────────────────────────────────────────────────

    def _top_brokerages(self, cutoff: str) -> list[BrokerageShare]:
        rows = self.fetchall(
            """
            SELECT brokerage, COUNT(*) AS n
            FROM analyst_actions
            WHERE created_at >= ? AND brokerage != ''
            GROUP BY brokerage
            ORDER BY n DESC, brokerage ASC
            LIMIT ?;
            """,
            (cutoff, TOP_N),
        )
        total = sum(int(r["n"]) for r in rows)
        return [
            BrokerageShare(
                brokerage=r["brokerage"],
                action_count=int(r["n"]),
                percentage=_percent(int(r["n"]), total),
            )
            for r in rows
        ]

    def _top_action_kinds(self, cutoff: str) -> list[ActionKindShare]:
        rows = self.fetchall(
            f"""
            SELECT {_action_label_case()} AS kind, COUNT(*) AS n
            FROM analyst_actions
            WHERE created_at >= ? AND action != ''
            GROUP BY kind
            ORDER BY n DESC, kind ASC
            LIMIT ?;
            """,
            (cutoff, TOP_N),
        )
        total = sum(int(r["n"]) for r in rows)
        return [
            ActionKindShare(
                action_kind=r["kind"],
                count=int(r["n"]),
                percentage=_percent(int(r["n"]), total),
            )
            for r in rows
        ]

    def _activity_trend(self, cutoff: str) -> list[ActivityPoint]:
        rows = self.fetchall(
            """
            SELECT substr(created_at, 1, 10) AS day, COUNT(*) AS n
            FROM analyst_actions
            WHERE created_at >= ?
            GROUP BY day
            ORDER BY day DESC
            LIMIT ?;
            """,
            (cutoff, TREND_WINDOW_DAYS),
        )
        return [ActivityPoint(date=r["day"], count=int(r["n"])) for r in rows]
