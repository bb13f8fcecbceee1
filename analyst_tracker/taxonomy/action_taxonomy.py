"""
Action, rating and sort taxonomy for analyst coverage data.

Upstream records describe actions and ratings as free text ("target raised
by", "Sector Outperform", "Strong-Buy"). Everything downstream works with the
small controlled vocabularies defined here:

  - ``ActionKind`` — the filterable action categories, each with a display
    label and the lower-case phrase matched against the free-text action.
  - ``SortMode``   — the supported stock list orderings.
  - ``Confidence`` — recommendation confidence buckets.

``RATING_SCALE`` and ``ACTION_SCORES`` are ordered ``(phrase, value)`` pairs,
evaluated top to bottom with case-insensitive substring matching; the first
phrase contained in the text wins. Order matters wherever one phrase can be
found inside another text that also matches a later phrase, so these stay
tuples rather than dicts.

This module has NO imports from any other ``analyst_tracker`` package.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ActionKind(StrEnum):
    """Filterable category of an analyst action."""

    INITIATED = "initiated"
    """Brokerage starts covering the stock."""

    RAISED = "raised"
    """Price target raised."""

    LOWERED = "lowered"
    """Price target lowered."""

    UPGRADED = "upgraded"
    """Rating moved up the scale."""

    DOWNGRADED = "downgraded"
    """Rating moved down the scale."""

    REITERATED = "reiterated"
    """Rating restated without change."""

    TARGET_SET = "target-set"
    """Price target set without a previous target."""

    @property
    def label(self) -> str:
        """Human-readable label used by filter options and analytics."""
        return _ACTION_KIND_LABELS[self]

    @property
    def phrase(self) -> str:
        """Lower-case phrase searched for inside the free-text action."""
        return self.value.replace("-", " ")


_ACTION_KIND_LABELS: dict[ActionKind, str] = {
    ActionKind.INITIATED:  "Initiated",
    ActionKind.RAISED:     "Target Raised",
    ActionKind.LOWERED:    "Target Lowered",
    ActionKind.UPGRADED:   "Upgraded",
    ActionKind.DOWNGRADED: "Downgraded",
    ActionKind.REITERATED: "Reiterated",
    ActionKind.TARGET_SET: "Target Set",
}


class SortMode(StrEnum):
    """Ordering applied to the paginated stock list."""

    NEWEST = "newest"
    OLDEST = "oldest"
    TICKER_A_Z = "ticker-a-z"
    COMPANY_A_Z = "company-a-z"
    ANALYSIS_NEWEST = "analysis-newest"
    ANALYSIS_OLDEST = "analysis-oldest"

    @property
    def label(self) -> str:
        return _SORT_MODE_LABELS[self]


_SORT_MODE_LABELS: dict[SortMode, str] = {
    SortMode.NEWEST:          "Newest",
    SortMode.OLDEST:          "Oldest",
    SortMode.TICKER_A_Z:      "Ticker A-Z",
    SortMode.COMPANY_A_Z:     "Company A-Z",
    SortMode.ANALYSIS_NEWEST: "Analysis Date (Newest)",
    SortMode.ANALYSIS_OLDEST: "Analysis Date (Oldest)",
}

DEFAULT_SORT_MODE = SortMode.TICKER_A_Z

# Sentinel accepted from callers meaning "no filter".
ALL_VALUE = "all"


class Confidence(StrEnum):
    """Confidence bucket derived from a recommendation's total score."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# ── Ordered phrase tables ─────────────────────────────────────────────────────

NEUTRAL_RATING_SCORE = 50.0

RATING_SCALE: tuple[tuple[str, float], ...] = (
    ("strong buy",   80.0),
    ("buy",          80.0),
    ("outperform",   70.0),
    ("overweight",   70.0),
    ("hold",         50.0),
    ("neutral",      50.0),
    ("underperform", 30.0),
    ("underweight",  30.0),
    ("sell",         10.0),
    ("strong sell",  10.0),
)

ACTION_SCORES: tuple[tuple[str, float], ...] = (
    ("initiated",  10.0),
    ("raised",     12.0),
    ("lowered",    -8.0),
    ("maintained",  5.0),
)


def first_match(text: Optional[str], table: tuple[tuple[str, float], ...]) -> Optional[float]:
    """Return the value of the first phrase in ``table`` contained in ``text``.

    Matching is case-insensitive substring containment.

    Args:
        text:  Free text to inspect (``None`` treated as empty).
        table: Ordered ``(phrase, value)`` pairs.

    Returns:
        The matched value, or ``None`` if no phrase occurs in ``text``.
    """
    lowered = (text or "").lower()
    if not lowered:
        return None
    for phrase, value in table:
        if phrase in lowered:
            return value
    return None


# ── Normalisation helpers ─────────────────────────────────────────────────────

def classify_action(text: Optional[str]) -> Optional[ActionKind]:
    """Map a free-text action onto the first matching ``ActionKind``."""
    lowered = (text or "").lower()
    for kind in ActionKind:
        if kind.phrase in lowered:
            return kind
    return None


def action_kind_label(text: str) -> str:
    """Display label for a free-text action.

    Known kinds use their taxonomy label; anything else is title-cased word
    by word, e.g. ``"price target maintained"`` → ``"Price Target Maintained"``.
    """
    kind = classify_action(text)
    if kind is not None:
        return kind.label
    return " ".join(word[:1].upper() + word[1:] for word in text.lower().split())


def action_kind_value(text: str) -> str:
    """Filter value for a free-text action (lower-case, hyphenated)."""
    kind = classify_action(text)
    if kind is not None:
        return kind.value
    return "-".join(text.lower().split())


def parse_action_kind(value: Optional[str]) -> Optional[ActionKind]:
    """Parse a caller-supplied action filter; unknown values mean no filter."""
    text = (value or "").strip().lower()
    if not text or text == ALL_VALUE:
        return None
    try:
        return ActionKind(text)
    except ValueError:
        return None


def parse_sort_mode(value: Optional[str]) -> SortMode:
    """Parse a caller-supplied sort mode; unknown values fall back to ticker order."""
    text = (value or "").strip().lower()
    try:
        return SortMode(text)
    except ValueError:
        return DEFAULT_SORT_MODE
