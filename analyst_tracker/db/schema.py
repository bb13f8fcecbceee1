"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. stocks                 (no FKs)
  2. analyst_actions        (→ stocks)
  3. recommendation_scores  (→ stocks, analyst_actions)
  4. process_control        (no FKs)

Timestamps are TEXT in ``analyst_tracker.utils.time_utils.TIMESTAMP_FORMAT``
and are always written by the repositories, never by column defaults, so a
single clock drives every write in a sync run.
"""

from __future__ import annotations

import logging
import sqlite3

from analyst_tracker.db.repositories.process_repo import ProcessControlRepository
from analyst_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_STOCKS = """
CREATE TABLE IF NOT EXISTS stocks (
    stock_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol      TEXT    NOT NULL UNIQUE,
    name        TEXT    NOT NULL DEFAULT '',
    created_at  TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);
"""

_DDL_ANALYST_ACTIONS = """
CREATE TABLE IF NOT EXISTS analyst_actions (
    action_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    stock_id       INTEGER NOT NULL REFERENCES stocks(stock_id) ON DELETE CASCADE,
    action         TEXT    NOT NULL DEFAULT '',
    brokerage      TEXT    NOT NULL DEFAULT '',
    rating_from    TEXT    NOT NULL DEFAULT '',
    rating_to      TEXT    NOT NULL DEFAULT '',
    target_from    TEXT    NOT NULL DEFAULT '',
    target_to      TEXT    NOT NULL DEFAULT '',
    analysis_date  TEXT    NOT NULL,
    created_at     TEXT    NOT NULL,
    UNIQUE (stock_id, analysis_date, brokerage)
);
"""

_DDL_ANALYST_ACTIONS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_actions_stock_date
    ON analyst_actions (stock_id, analysis_date DESC);
CREATE INDEX IF NOT EXISTS idx_actions_brokerage
    ON analyst_actions (brokerage);
CREATE INDEX IF NOT EXISTS idx_actions_created
    ON analyst_actions (created_at);
"""

_DDL_RECOMMENDATION_SCORES = """
CREATE TABLE IF NOT EXISTS recommendation_scores (
    score_id             INTEGER PRIMARY KEY AUTOINCREMENT,
    stock_id             INTEGER NOT NULL UNIQUE REFERENCES stocks(stock_id) ON DELETE CASCADE,
    total_score          REAL    NOT NULL,
    rating_score         REAL    NOT NULL,
    rating_change_score  REAL    NOT NULL,
    target_change_score  REAL    NOT NULL,
    action_score         REAL    NOT NULL,
    coverage_score       REAL    NOT NULL,
    confidence           TEXT    NOT NULL CHECK (confidence IN ('High', 'Medium', 'Low')),
    reason               TEXT    NOT NULL,
    latest_action_id     INTEGER REFERENCES analyst_actions(action_id) ON DELETE SET NULL,
    calculated_at        TEXT    NOT NULL,
    created_at           TEXT    NOT NULL,
    updated_at           TEXT    NOT NULL
);
"""

_DDL_RECOMMENDATION_SCORES_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_scores_total
    ON recommendation_scores (total_score DESC);
"""

_DDL_PROCESS_CONTROL = """
CREATE TABLE IF NOT EXISTS process_control (
    process_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    process_name      TEXT    NOT NULL UNIQUE,
    is_running        INTEGER NOT NULL DEFAULT 0,
    last_execution    TEXT,
    interval_minutes  INTEGER NOT NULL DEFAULT 5,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL
);
"""

_ALL_DDL = [
    _DDL_STOCKS,
    _DDL_ANALYST_ACTIONS,
    _DDL_ANALYST_ACTIONS_INDEXES,
    _DDL_RECOMMENDATION_SCORES,
    _DDL_RECOMMENDATION_SCORES_INDEXES,
    _DDL_PROCESS_CONTROL,
]

ALL_TABLE_NAMES = [
    "stocks",
    "analyst_actions",
    "recommendation_scores",
    "process_control",
]


def apply_schema(
    conn: sqlite3.Connection,
    process_name: str | None = "stock_sync",
    interval_minutes: int = 5,
) -> None:
    """Apply all DDL statements to ``conn`` and seed the sync process row.

    Idempotent — safe to call on an already-initialized database. The
    process row is inserted with ``INSERT OR IGNORE`` so an existing row
    (and its running flag / last execution) is left untouched.

    Args:
        conn:             An open ``sqlite3.Connection`` (FK enforcement should be ON).
        process_name:     ProcessControl row to seed; ``None`` skips seeding.
        interval_minutes: Minimum minutes between executions for a new row.
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    if process_name:
        ProcessControlRepository(conn).ensure(process_name, interval_minutes, utcnow())

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the names of user tables present in the database, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
