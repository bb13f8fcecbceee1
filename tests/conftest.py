"""
Shared pytest fixtures for the Analyst Tracker test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied (and the ``stock_sync`` process row seeded).
  - ``db_file`` / ``app_config``: a file-backed database and matching
    ``AppConfig`` for code paths that open their own connections
    (sync orchestrator, service, CLI, background threads).
  - Record and action factories shared by several test modules.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import pytest

from analyst_tracker.config import AppConfig, DatabaseConfig, FeedConfig, SyncConfig
from analyst_tracker.db.connection import get_connection
from analyst_tracker.db.schema import apply_schema
from analyst_tracker.models.feed import ActionRecord
from analyst_tracker.models.stock import AnalystAction


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def db_file(tmp_path) -> str:
    """Path to an initialised file-backed database (interval 5 min)."""
    path = str(tmp_path / "tracker.db")
    with get_connection(path) as conn:
        apply_schema(conn, process_name="stock_sync", interval_minutes=5)
    return path


@pytest.fixture
def app_config(db_file) -> AppConfig:
    """AppConfig pointing at ``db_file`` with no page delay."""
    return AppConfig(
        database=DatabaseConfig(db_path=db_file),
        feed=FeedConfig(base_url="https://feed.test", page_delay_seconds=0.0),
        sync=SyncConfig(process_name="stock_sync", interval_minutes=5, retention_limit=10),
    )


# ── Sample domain object factories ────────────────────────────────────────────

@pytest.fixture
def make_record() -> Callable[..., ActionRecord]:
    """Factory for feed ``ActionRecord`` objects with sensible defaults."""

    def _make(
        ticker: str = "AAPL",
        day: int = 1,
        brokerage: str = "Goldman Sachs",
        **overrides,
    ) -> ActionRecord:
        payload = {
            "ticker": ticker,
            "company": f"{ticker} Inc.",
            "action": "target raised by",
            "brokerage": brokerage,
            "rating_from": "Hold",
            "rating_to": "Buy",
            "target_from": "$10.00",
            "target_to": "$12.00",
            "time": datetime(2025, 1, day, 12, 0, 0, tzinfo=timezone.utc),
        }
        payload.update(overrides)
        return ActionRecord.model_validate(payload)

    return _make


@pytest.fixture
def make_action() -> Callable[..., AnalystAction]:
    """Factory for in-memory ``AnalystAction`` objects used by the scorer."""

    def _make(action_id: int = 1, **overrides) -> AnalystAction:
        payload = {
            "action_id": action_id,
            "stock_id": 1,
            "action": "reiterated by",
            "brokerage": "Goldman Sachs",
            "rating_from": "",
            "rating_to": "",
            "target_from": "",
            "target_to": "",
            "analysis_date": datetime(2025, 1, 1, tzinfo=timezone.utc),
        }
        payload.update(overrides)
        return AnalystAction.model_validate(payload)

    return _make


# ── Clock ─────────────────────────────────────────────────────────────────────

CLOCK_START = datetime(2025, 2, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock returning an aware UTC datetime."""

    def __init__(self, now: datetime = CLOCK_START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """A ``FakeClock`` starting at 2025-02-01 09:00 UTC."""
    return FakeClock()
