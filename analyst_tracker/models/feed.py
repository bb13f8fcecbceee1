"""
Feed record model.

``ActionRecord`` is the validated shape of one item on an upstream feed page.
Text fields are free-form and default to ``""`` (the feed sends empty strings
and occasionally ``null``); the ticker is required and normalised to
upper-case; ``time`` is parsed to an aware UTC datetime.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from analyst_tracker.utils.time_utils import parse_timestamp


def normalize_symbol(value: str) -> str:
    """Canonical ticker form used as the stock identity."""
    return value.strip().upper()


class ActionRecord(BaseModel):
    """One analyst action as delivered by the feed.

    Attributes:
        ticker:      Stock symbol (normalised to upper-case).
        company:     Company display name.
        action:      Free-text action kind, e.g. ``"target raised by"``.
        brokerage:   Issuing brokerage.
        rating_from: Previous rating text.
        rating_to:   New rating text.
        target_from: Previous price target text, e.g. ``"$4.20"``.
        target_to:   New price target text.
        time:        Business timestamp of the action (UTC).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    ticker: str
    company: str = ""
    action: str = ""
    brokerage: str = ""
    rating_from: str = ""
    rating_to: str = ""
    target_from: str = ""
    target_to: str = ""
    time: datetime

    @field_validator(
        "company", "action", "brokerage", "rating_from", "rating_to",
        "target_from", "target_to",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("ticker", mode="before")
    @classmethod
    def validate_ticker(cls, v: Any) -> Any:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("ticker must be a non-empty string.")
        return normalize_symbol(v)

    @field_validator("time", mode="before")
    @classmethod
    def parse_time(cls, v: Any) -> Any:
        if isinstance(v, str):
            parsed = parse_timestamp(v)
            if parsed is None:
                raise ValueError("time must not be empty.")
            return parsed
        return v
