"""
Read models returned by the query layer that are not entity views:
filter options and the market overview analytics.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FilterOption(BaseModel):
    """One selectable value for a list filter."""

    model_config = ConfigDict(frozen=True)

    label: str
    value: str


class FilterOptions(BaseModel):
    """All filter choices available for the stock list."""

    model_config = ConfigDict(frozen=True)

    action_kinds: list[FilterOption] = Field(default_factory=list)
    brokerages: list[FilterOption] = Field(default_factory=list)
    sort_modes: list[FilterOption] = Field(default_factory=list)


class BrokerageShare(BaseModel):
    model_config = ConfigDict(frozen=True)

    brokerage: str
    action_count: int
    percentage: float


class ActionKindShare(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_kind: str
    count: int
    percentage: float


class ActivityPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    count: int


class Overview(BaseModel):
    """Aggregate market analytics over the stored coverage.

    Windows: ``recent_analysis``, ``upgrades``, ``downgrades`` and the two
    top-5 lists cover actions created in the trailing 30 days; the activity
    trend covers the trailing 7 days. Top-5 percentages are shares of the
    top-5 total, not of all actions.
    """

    model_config = ConfigDict(frozen=True)

    total_stocks: int = 0
    total_recommendations: int = 0
    recent_analysis: int = 0
    upgrades: int = 0
    downgrades: int = 0
    high_confidence_recs: int = 0
    selection_rate: float = 0.0
    average_recommendation_score: float = 0.0
    top_brokerages: list[BrokerageShare] = Field(default_factory=list)
    top_action_kinds: list[ActionKindShare] = Field(default_factory=list)
    recent_activity_trend: list[ActivityPoint] = Field(default_factory=list)
