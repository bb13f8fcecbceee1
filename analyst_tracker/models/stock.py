"""
Stock and analyst action models.

``Stock`` is identified by its ticker symbol; ``stock_id`` is the surrogate
key assigned on first insert and never changes afterwards.

``AnalystAction`` belongs to exactly one stock. Its natural key for
idempotent ingestion is ``(stock_id, analysis_date, brokerage)``.

``StockView`` is the read model served by the query layer: a stock plus its
most recent actions, newest first.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Stock(BaseModel):
    """A tracked equity.

    Attributes:
        stock_id:   Auto-assigned database PK; ``None`` before insertion.
        symbol:     Unique upper-case ticker.
        name:       Company display name (updated on every ingestion).
        created_at: First time the symbol was seen.
        updated_at: Last time the stock row was written.
    """

    model_config = ConfigDict(frozen=True)

    stock_id: Optional[int] = None
    symbol: str
    name: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnalystAction(BaseModel):
    """One brokerage's rating / target event for a stock.

    Attributes:
        action_id:     Auto-assigned database PK; ``None`` before insertion.
        stock_id:      Owning stock.
        action:        Free-text action kind.
        brokerage:     Issuing brokerage.
        rating_from:   Previous rating text.
        rating_to:     New rating text.
        target_from:   Previous price target text.
        target_to:     New price target text.
        analysis_date: Business date of the action.
        created_at:    When the row was first inserted; preserved by no-op upserts.
    """

    model_config = ConfigDict(frozen=True)

    action_id: Optional[int] = None
    stock_id: int
    action: str = ""
    brokerage: str = ""
    rating_from: str = ""
    rating_to: str = ""
    target_from: str = ""
    target_to: str = ""
    analysis_date: datetime
    created_at: Optional[datetime] = None


class StockView(BaseModel):
    """A stock with its latest actions (newest first)."""

    model_config = ConfigDict(frozen=True)

    stock: Stock
    latest_actions: list[AnalystAction] = Field(default_factory=list)
