"""
Repositories for stocks and their analyst actions.

Upsert semantics
----------------
``StockRepository.upsert``:
    Insert by symbol; on conflict update the name and ``updated_at`` only.
    The ``stock_id`` assigned on first insert is returned unchanged.

``AnalystActionRepository.upsert``:
    Change-aware write keyed by ``(stock_id, analysis_date, brokerage)``.
    The existing row is read and its mutable fields compared as a tuple:
      - no row          → INSERT                         (``INSERTED``)
      - row, different  → UPDATE the mutable fields      (``UPDATED``)
      - row, identical  → no write at all                (``UNCHANGED``)
    ``action_id`` and ``created_at`` are never rewritten.

Retention
---------
``AnalystActionRepository.prune`` keeps the ``keep`` most recent actions per
stock. "Most recent" is ``analysis_date DESC`` with ``action_id DESC``
(insertion order) as the tie-break, the same order used by every
latest-N read in this module.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from enum import StrEnum
from typing import Optional, Sequence

from analyst_tracker.db.repositories.base import BaseRepository
from analyst_tracker.models.feed import ActionRecord, normalize_symbol
from analyst_tracker.models.stock import AnalystAction, Stock
from analyst_tracker.utils.time_utils import parse_timestamp, to_timestamp, utcnow

logger = logging.getLogger(__name__)

# Ordering shared by prune and every latest-N read.
LATEST_FIRST = "analysis_date DESC, action_id DESC"


class UpsertOutcome(StrEnum):
    """What an action upsert did to the store."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class StockRepository(BaseRepository):
    """Read/write access to the ``stocks`` table."""

    def upsert(self, symbol: str, name: str, now: Optional[datetime] = None) -> int:
        """Insert a stock or refresh its name, returning its ``stock_id``.

        Args:
            symbol: Ticker (normalised to upper-case).
            name:   Company display name.
            now:    Write timestamp; defaults to the current UTC time.

        Returns:
            The existing or newly assigned ``stock_id``.

        Raises:
            StoreError: On any SQLite failure.
        """
        symbol = normalize_symbol(symbol)
        ts = to_timestamp(now or utcnow())
        with self.store_operation("upsert_stock", symbol):
            self.execute(
                """
                INSERT INTO stocks (symbol, name, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(symbol) DO UPDATE SET
                    name       = excluded.name,
                    updated_at = excluded.updated_at;
                """,
                (symbol, name, ts, ts),
            )
            row = self.fetchone("SELECT stock_id FROM stocks WHERE symbol = ?;", (symbol,))
        assert row is not None
        return int(row["stock_id"])

    def get_by_symbol(self, symbol: str) -> Optional[Stock]:
        """Fetch a stock by ticker (case-insensitive input)."""
        row = self.fetchone(
            "SELECT * FROM stocks WHERE symbol = ?;", (normalize_symbol(symbol),)
        )
        return row_to_stock(row) if row else None

    def get_by_id(self, stock_id: int) -> Optional[Stock]:
        """Fetch a stock by primary key."""
        row = self.fetchone("SELECT * FROM stocks WHERE stock_id = ?;", (stock_id,))
        return row_to_stock(row) if row else None

    def count(self) -> int:
        """Return the number of stocks."""
        return int(self.scalar("SELECT COUNT(*) FROM stocks;"))


class AnalystActionRepository(BaseRepository):
    """Read/write access to the ``analyst_actions`` table."""

    def upsert(
        self,
        stock_id: int,
        record: ActionRecord,
        now: Optional[datetime] = None,
    ) -> tuple[int, UpsertOutcome]:
        """Change-aware upsert of one action by its natural key.

        Args:
            stock_id: Owning stock.
            record:   Validated feed record.
            now:      Creation timestamp for new rows; defaults to UTC now.

        Returns:
            ``(action_id, outcome)``.

        Raises:
            StoreError: On any SQLite failure.
        """
        analysis_date = to_timestamp(record.time)
        key = (stock_id, analysis_date, record.brokerage)
        fields = (
            record.action,
            record.rating_from,
            record.rating_to,
            record.target_from,
            record.target_to,
        )

        with self.store_operation("upsert_action", key):
            existing = self.fetchone(
                """
                SELECT action_id, action, rating_from, rating_to, target_from, target_to
                FROM analyst_actions
                WHERE stock_id = ? AND analysis_date = ? AND brokerage = ?;
                """,
                key,
            )

            if existing is None:
                self.execute(
                    """
                    INSERT INTO analyst_actions (
                        stock_id, analysis_date, brokerage,
                        action, rating_from, rating_to, target_from, target_to,
                        created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (*key, *fields, to_timestamp(now or utcnow())),
                )
                return self.last_insert_rowid(), UpsertOutcome.INSERTED

            action_id = int(existing["action_id"])
            current = (
                existing["action"],
                existing["rating_from"],
                existing["rating_to"],
                existing["target_from"],
                existing["target_to"],
            )
            if current == fields:
                return action_id, UpsertOutcome.UNCHANGED

            self.execute(
                """
                UPDATE analyst_actions
                SET action = ?, rating_from = ?, rating_to = ?,
                    target_from = ?, target_to = ?
                WHERE action_id = ?;
                """,
                (*fields, action_id),
            )
            return action_id, UpsertOutcome.UPDATED

    def prune(self, stock_id: int, keep: int = 10) -> int:
        """Delete all but the ``keep`` most recent actions of a stock.

        Args:
            stock_id: Stock whose history is trimmed.
            keep:     Number of actions to retain.

        Returns:
            Number of rows deleted.

        Raises:
            StoreError: On any SQLite failure.
        """
        with self.store_operation("prune_actions", stock_id):
            cursor = self.execute(
                f"""
                DELETE FROM analyst_actions
                WHERE stock_id = ?
                  AND action_id NOT IN (
                      SELECT action_id FROM analyst_actions
                      WHERE stock_id = ?
                      ORDER BY {LATEST_FIRST}
                      LIMIT ?
                  );
                """,
                (stock_id, stock_id, keep),
            )
        deleted = cursor.rowcount
        if deleted:
            logger.debug("Pruned %d action(s) for stock_id=%d", deleted, stock_id)
        return deleted

    def get_latest(self, stock_id: int, limit: Optional[int] = None) -> list[AnalystAction]:
        """Return a stock's actions, newest first, optionally capped at ``limit``."""
        sql = f"SELECT * FROM analyst_actions WHERE stock_id = ? ORDER BY {LATEST_FIRST}"
        params: tuple = (stock_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (stock_id, limit)
        return [row_to_action(r) for r in self.fetchall(sql + ";", params)]

    def get_latest_for_stocks(
        self,
        stock_ids: Sequence[int],
        limit: int,
    ) -> dict[int, list[AnalystAction]]:
        """Return up to ``limit`` newest actions for each of ``stock_ids``.

        One windowed query partitions by stock, so every stock gets its own
        top-N regardless of how active the other stocks are.

        Returns:
            Mapping of stock_id → actions (newest first). Every requested id
            is present; stocks without actions map to an empty list.
        """
        result: dict[int, list[AnalystAction]] = {sid: [] for sid in stock_ids}
        if not stock_ids:
            return result

        placeholders = ", ".join("?" for _ in stock_ids)
        rows = self.fetchall(
            f"""
            SELECT * FROM (
                SELECT a.*,
                       ROW_NUMBER() OVER (
                           PARTITION BY a.stock_id
                           ORDER BY a.analysis_date DESC, a.action_id DESC
                       ) AS rn
                FROM analyst_actions a
                WHERE a.stock_id IN ({placeholders})
            )
            WHERE rn <= ?
            ORDER BY stock_id, rn;
            """,
            (*stock_ids, limit),
        )
        for row in rows:
            result[int(row["stock_id"])].append(row_to_action(row))
        return result

    def count_for_stock(self, stock_id: int) -> int:
        """Return the number of retained actions for a stock."""
        return int(
            self.scalar("SELECT COUNT(*) FROM analyst_actions WHERE stock_id = ?;", (stock_id,))
        )


# ── Row mappers ───────────────────────────────────────────────────────────────

def row_to_stock(row: sqlite3.Row) -> Stock:
    return Stock(
        stock_id=row["stock_id"],
        symbol=row["symbol"],
        name=row["name"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def row_to_action(row: sqlite3.Row) -> AnalystAction:
    return AnalystAction(
        action_id=row["action_id"],
        stock_id=row["stock_id"],
        action=row["action"],
        brokerage=row["brokerage"],
        rating_from=row["rating_from"],
        rating_to=row["rating_to"],
        target_from=row["target_from"],
        target_to=row["target_to"],
        analysis_date=parse_timestamp(row["analysis_date"]),
        created_at=parse_timestamp(row["created_at"]),
    )
