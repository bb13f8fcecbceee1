"""
Base repository providing shared SQLite execution helpers.

All repositories inherit from ``BaseRepository`` and receive a
``sqlite3.Connection`` at construction time. The connection is assumed
to be opened and managed by the caller (typically via ``get_connection()``);
repositories never commit. Transaction boundaries belong to the caller.

Design:
  - No ORM — all SQL is explicit and lives in repository methods.
  - Repositories speak Pydantic models, not raw dicts.
  - Write paths run inside ``store_operation()`` so any ``sqlite3.Error``
    surfaces as ``StoreError`` carrying the operation name and key.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from analyst_tracker.errors import StoreError

logger = logging.getLogger(__name__)


class BaseRepository:
    """Shared SQL execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(
        self,
        sql: str,
        params: tuple[Any, ...] | list[Any] | dict[str, Any] = (),
    ) -> sqlite3.Cursor:
        """Execute a single SQL statement.

        Args:
            sql: SQL string with ``?`` or ``:name`` placeholders.
            params: Positional tuple/list or named dict of parameters.

        Returns:
            The resulting ``sqlite3.Cursor``.
        """
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def fetchone(
        self,
        sql: str,
        params: tuple[Any, ...] | list[Any] | dict[str, Any] = (),
    ) -> Optional[sqlite3.Row]:
        """Execute a query and return the first row, or ``None``."""
        return self.execute(sql, params).fetchone()

    def fetchall(
        self,
        sql: str,
        params: tuple[Any, ...] | list[Any] | dict[str, Any] = (),
    ) -> list[sqlite3.Row]:
        """Execute a query and return all rows."""
        return self.execute(sql, params).fetchall()

    def scalar(
        self,
        sql: str,
        params: tuple[Any, ...] | list[Any] | dict[str, Any] = (),
        default: Any = 0,
    ) -> Any:
        """Execute a query and return the first column of the first row.

        Returns ``default`` when there is no row or the value is NULL.
        """
        row = self.fetchone(sql, params)
        if row is None or row[0] is None:
            return default
        return row[0]

    def last_insert_rowid(self) -> int:
        """Return the rowid of the last successful INSERT."""
        row = self.fetchone("SELECT last_insert_rowid() AS rowid;")
        assert row is not None
        return int(row["rowid"])

    @contextmanager
    def store_operation(self, operation: str, key: Any) -> Iterator[None]:
        """Wrap a block of SQL so SQLite failures raise ``StoreError``.

        Args:
            operation: Name of the repository operation, for diagnostics.
            key:       Identifying key of the affected row(s).

        Raises:
            StoreError: If the block raises ``sqlite3.Error``.
        """
        try:
            yield
        except sqlite3.Error as exc:
            raise StoreError(operation, key, exc) from exc
