"""
Recommendation scoring: converts a stock's retained analyst actions into a
score breakdown, a confidence bucket and a human-readable reason.

Score formula (additive, unclamped)
-----------------------------------
    total = 50                      # neutral base
          + rating_score            # latest rating_to vs. neutral
          + rating_change_score     # upgrade / downgrade bonus
          + target_change_score     # price-target move bucket
          + action_score            # latest action-kind bonus
          + coverage_score          # breadth of coverage

Totals can exceed 100 or drop below 0.

Component explanations
----------------------
rating_score:
    RATING_SCALE value of the latest action's ``rating_to`` minus 50.
    Unrecognised or empty ratings score 50, so contribute 0.

rating_change_score:
    Both ``rating_from`` and ``rating_to`` must be on the scale.
    to > from → +15, to < from → −10, otherwise 0.

target_change_score:
    Targets are parsed by keeping only digits and ``.``; both must be > 0.
    change = (to − from) / from
        > +10% → +20     > +5% → +10
        < −10% → −15     < −5% → −8      otherwise 0

action_score:
    First ACTION_SCORES phrase found in the latest action text:
    initiated +10, raised +12, lowered −8, maintained +5, otherwise 0.

coverage_score:
    +5 if at least 3 actions are retained, and independently
    +8 if at least 2 retained actions have a raw rating value > 60.

Confidence: total ≥ 75 → High, ≥ 60 → Medium, else Low.

"Latest action" is the first element of the input, which callers supply
newest first (``analysis_date DESC, action_id DESC``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from analyst_tracker.models.score import RecommendationScore
from analyst_tracker.models.stock import AnalystAction
from analyst_tracker.taxonomy.action_taxonomy import (
    ACTION_SCORES,
    NEUTRAL_RATING_SCORE,
    RATING_SCALE,
    Confidence,
    first_match,
)

BASE_SCORE = 50.0

_HIGH_CONFIDENCE = 75.0
_MEDIUM_CONFIDENCE = 60.0

_COVERAGE_MIN_ACTIONS = 3
_COVERAGE_BREADTH_BONUS = 5.0
_POSITIVE_RATING_THRESHOLD = 60.0
_POSITIVE_MIN_ACTIONS = 2
_COVERAGE_SENTIMENT_BONUS = 8.0

_UPGRADE_BONUS = 15.0
_DOWNGRADE_PENALTY = -10.0

# (lower bound exclusive, score) for upward moves, checked largest first
_TARGET_UP_BUCKETS: tuple[tuple[float, float], ...] = ((0.10, 20.0), (0.05, 10.0))
# (upper bound exclusive, score) for downward moves, checked largest first
_TARGET_DOWN_BUCKETS: tuple[tuple[float, float], ...] = ((-0.10, -15.0), (-0.05, -8.0))

_NO_COVERAGE_REASON = "No recent analyst coverage"


@dataclass(frozen=True)
class ScoreComponents:
    """All components of a recommendation score.

    Attributes:
        rating_score:        Latest rating relative to neutral (−40..+30).
        rating_change_score: +15 upgrade, −10 downgrade, else 0.
        target_change_score: Price-target move bucket (−15..+20).
        action_score:        Latest action-kind bonus (−8..+12).
        coverage_score:      0, 5, 8 or 13.
        confidence:          Bucket of ``total``.
        reason:              Comma-joined explanation clauses.
        latest_action_id:    ``action_id`` of the latest action, if any.
    """

    rating_score:        float
    rating_change_score: float
    target_change_score: float
    action_score:        float
    coverage_score:      float
    confidence:          Confidence
    reason:              str
    latest_action_id:    Optional[int] = None

    @property
    def total(self) -> float:
        """Base score plus every component."""
        return (
            BASE_SCORE
            + self.rating_score
            + self.rating_change_score
            + self.target_change_score
            + self.action_score
            + self.coverage_score
        )

    def to_score(self, stock_id: int) -> RecommendationScore:
        """Build the persistable ``RecommendationScore`` for ``stock_id``."""
        return RecommendationScore(
            stock_id=stock_id,
            total_score=self.total,
            rating_score=self.rating_score,
            rating_change_score=self.rating_change_score,
            target_change_score=self.target_change_score,
            action_score=self.action_score,
            coverage_score=self.coverage_score,
            confidence=self.confidence,
            reason=self.reason,
            latest_action_id=self.latest_action_id,
        )


# ── Primitive helpers ─────────────────────────────────────────────────────────

def rating_value(rating: Optional[str]) -> Optional[float]:
    """Ordinal value of a rating phrase, or ``None`` if it is not on the scale."""
    return first_match(rating, RATING_SCALE)


def rating_score(rating: Optional[str]) -> float:
    """Ordinal value of a rating phrase; unrecognised ratings are neutral (50)."""
    value = rating_value(rating)
    return NEUTRAL_RATING_SCORE if value is None else value


def extract_price(text: Optional[str]) -> float:
    """Parse a price target such as ``"$1,234.50"`` into a float.

    Every character other than ASCII digits and ``.`` is discarded. An empty
    or unparsable remainder (e.g. ``"1.2.3"``) yields ``0.0``, meaning absent.
    """
    cleaned = "".join(ch for ch in (text or "") if ch in "0123456789.")
    if not cleaned:
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def target_change_ratio(target_from: Optional[str], target_to: Optional[str]) -> Optional[float]:
    """Relative target move ``(to − from) / from``, or ``None`` if either side is absent."""
    from_price = extract_price(target_from)
    to_price = extract_price(target_to)
    if from_price <= 0 or to_price <= 0:
        return None
    return (to_price - from_price) / from_price


def determine_confidence(total: float) -> Confidence:
    """Map a total score onto its confidence bucket."""
    if total >= _HIGH_CONFIDENCE:
        return Confidence.HIGH
    if total >= _MEDIUM_CONFIDENCE:
        return Confidence.MEDIUM
    return Confidence.LOW


# ── Component scores ──────────────────────────────────────────────────────────

def compute_rating_score(latest: AnalystAction) -> float:
    return rating_score(latest.rating_to) - NEUTRAL_RATING_SCORE


def compute_rating_change_score(latest: AnalystAction) -> float:
    to_value = rating_value(latest.rating_to)
    from_value = rating_value(latest.rating_from)
    if to_value is None or from_value is None:
        return 0.0
    if to_value > from_value:
        return _UPGRADE_BONUS
    if to_value < from_value:
        return _DOWNGRADE_PENALTY
    return 0.0


def compute_target_change_score(latest: AnalystAction) -> float:
    change = target_change_ratio(latest.target_from, latest.target_to)
    if change is None:
        return 0.0
    for bound, score in _TARGET_UP_BUCKETS:
        if change > bound:
            return score
    for bound, score in _TARGET_DOWN_BUCKETS:
        if change < bound:
            return score
    return 0.0


def compute_action_score(latest: AnalystAction) -> float:
    value = first_match(latest.action, ACTION_SCORES)
    return 0.0 if value is None else value


def compute_coverage_score(actions: Sequence[AnalystAction]) -> float:
    score = 0.0
    if len(actions) >= _COVERAGE_MIN_ACTIONS:
        score += _COVERAGE_BREADTH_BONUS
    positive = sum(
        1 for a in actions if rating_score(a.rating_to) > _POSITIVE_RATING_THRESHOLD
    )
    if positive >= _POSITIVE_MIN_ACTIONS:
        score += _COVERAGE_SENTIMENT_BONUS
    return score


def build_reason(actions: Sequence[AnalystAction]) -> str:
    """Assemble the comma-joined explanation for a stock's score.

    Clauses, in order, all derived from the latest action except the last:
      1. ``"Buy rating from {brokerage}"`` / ``"Outperform rating from {brokerage}"``
      2. ``"Price target raised by {pct:.1f}%"`` when the target rose > 10%
      3. ``"New analyst coverage"`` when the action contains "initiated"
      4. ``"Multiple recent analyst updates"`` when ≥ 3 actions are retained

    Falls back to ``"Analyst coverage available from {brokerage}"`` when no
    clause applies, and ``"No recent analyst coverage"`` without actions.

    Args:
        actions: Retained actions, newest first.

    Returns:
        Non-empty reason string.
    """
    if not actions:
        return _NO_COVERAGE_REASON

    latest = actions[0]
    reasons: list[str] = []

    rating = latest.rating_to.lower()
    if "buy" in rating:
        reasons.append(f"Buy rating from {latest.brokerage}")
    elif "outperform" in rating:
        reasons.append(f"Outperform rating from {latest.brokerage}")

    change = target_change_ratio(latest.target_from, latest.target_to)
    if change is not None and change > 0.10:
        reasons.append(f"Price target raised by {change * 100:.1f}%")

    if "initiated" in latest.action.lower():
        reasons.append("New analyst coverage")

    if len(actions) >= _COVERAGE_MIN_ACTIONS:
        reasons.append("Multiple recent analyst updates")

    if not reasons:
        return f"Analyst coverage available from {latest.brokerage}"
    return ", ".join(reasons)


# ── Entry point ───────────────────────────────────────────────────────────────

def score_actions(actions: Sequence[AnalystAction]) -> ScoreComponents:
    """Compute all recommendation score components for one stock.

    Pure and deterministic: the same action list always yields the same
    components, confidence and reason.

    Args:
        actions: The stock's retained actions, newest first. May be empty.

    Returns:
        ScoreComponents with all fields populated. An empty list scores the
        neutral base (50, Low) with the no-coverage reason.
    """
    if not actions:
        return ScoreComponents(
            rating_score=0.0,
            rating_change_score=0.0,
            target_change_score=0.0,
            action_score=0.0,
            coverage_score=0.0,
            confidence=determine_confidence(BASE_SCORE),
            reason=_NO_COVERAGE_REASON,
        )

    latest = actions[0]
    rating = compute_rating_score(latest)
    rating_change = compute_rating_change_score(latest)
    target_change = compute_target_change_score(latest)
    action = compute_action_score(latest)
    coverage = compute_coverage_score(actions)
    total = BASE_SCORE + rating + rating_change + target_change + action + coverage

    return ScoreComponents(
        rating_score=rating,
        rating_change_score=rating_change,
        target_change_score=target_change,
        action_score=action,
        coverage_score=coverage,
        confidence=determine_confidence(total),
        reason=build_reason(actions),
        latest_action_id=latest.action_id,
    )
