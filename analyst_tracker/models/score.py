"""
Recommendation score models.

A ``RecommendationScore`` is a derived projection: one row per stock,
recomputable at any time from the stock's retained actions and replaced
wholesale on every recomputation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from analyst_tracker.models.stock import StockView
from analyst_tracker.taxonomy.action_taxonomy import Confidence


class RecommendationScore(BaseModel):
    """Persisted score breakdown for one stock.

    Attributes:
        score_id:            Database PK.
        stock_id:            Scored stock (unique).
        total_score:         Base 50 plus all components; unclamped.
        rating_score:        Latest target rating relative to neutral.
        rating_change_score: Upgrade / downgrade bonus.
        target_change_score: Price-target move bucket.
        action_score:        Latest action-kind bonus.
        coverage_score:      Breadth-of-coverage bonus.
        confidence:          High / Medium / Low bucket of ``total_score``.
        reason:              Human-readable justification.
        latest_action_id:    Action that drove the latest-action components.
        calculated_at:       When the score was computed.
        created_at:          First time a score row existed for the stock.
        updated_at:          Last overwrite (equals ``calculated_at``).
    """

    model_config = ConfigDict(frozen=True)

    score_id: Optional[int] = None
    stock_id: int
    total_score: float
    rating_score: float
    rating_change_score: float
    target_change_score: float
    action_score: float
    coverage_score: float
    confidence: Confidence
    reason: str
    latest_action_id: Optional[int] = None
    calculated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecommendationView(BaseModel):
    """A score together with the stock and its latest actions."""

    model_config = ConfigDict(frozen=True)

    score: RecommendationScore
    stock: StockView
