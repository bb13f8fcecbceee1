"""
Repository for ``process_control`` rows.

The running flag is flipped with a conditional UPDATE
(``... WHERE is_running = 0``); SQLite serialises writers, so of any number
of concurrent callers exactly one sees ``rowcount == 1``. No in-process lock
is involved, which keeps the guarantee across processes and restarts that
share the database file.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from analyst_tracker.db.repositories.base import BaseRepository
from analyst_tracker.models.process import ProcessControl
from analyst_tracker.utils.time_utils import parse_timestamp, to_timestamp

logger = logging.getLogger(__name__)


class ProcessControlRepository(BaseRepository):
    """Read/write access to the ``process_control`` table."""

    def get(self, process_name: str) -> Optional[ProcessControl]:
        """Fetch a process row by name, or ``None`` if it does not exist."""
        row = self.fetchone(
            "SELECT * FROM process_control WHERE process_name = ?;", (process_name,)
        )
        return _row_to_process(row) if row else None

    def ensure(self, process_name: str, interval_minutes: int, now: datetime) -> None:
        """Create the process row if missing; an existing row is left as is."""
        ts = to_timestamp(now)
        with self.store_operation("ensure_process", process_name):
            self.execute(
                """
                INSERT OR IGNORE INTO process_control (
                    process_name, is_running, last_execution, interval_minutes,
                    created_at, updated_at
                ) VALUES (?, 0, NULL, ?, ?, ?);
                """,
                (process_name, interval_minutes, ts, ts),
            )

    def try_start(self, process_name: str, now: datetime) -> bool:
        """Atomically flip ``is_running`` from 0 to 1.

        Returns:
            ``True`` if this call acquired the flag, ``False`` if the row is
            already running or does not exist.
        """
        with self.store_operation("start_process", process_name):
            cursor = self.execute(
                """
                UPDATE process_control
                SET is_running = 1, updated_at = ?
                WHERE process_name = ? AND is_running = 0;
                """,
                (to_timestamp(now), process_name),
            )
        return cursor.rowcount == 1

    def finish(self, process_name: str, now: datetime) -> bool:
        """Clear the running flag and stamp ``last_execution``.

        Returns:
            ``True`` if the row exists.
        """
        ts = to_timestamp(now)
        with self.store_operation("finish_process", process_name):
            cursor = self.execute(
                """
                UPDATE process_control
                SET is_running = 0, last_execution = ?, updated_at = ?
                WHERE process_name = ?;
                """,
                (ts, ts, process_name),
            )
        return cursor.rowcount == 1

    def force_stop(self, process_name: str, now: datetime) -> bool:
        """Clear the running flag without touching ``last_execution``.

        Returns:
            ``True`` if the row exists.
        """
        with self.store_operation("force_stop_process", process_name):
            cursor = self.execute(
                """
                UPDATE process_control
                SET is_running = 0, updated_at = ?
                WHERE process_name = ?;
                """,
                (to_timestamp(now), process_name),
            )
        return cursor.rowcount == 1


def _row_to_process(row: sqlite3.Row) -> ProcessControl:
    return ProcessControl(
        process_id=row["process_id"],
        process_name=row["process_name"],
        is_running=bool(row["is_running"]),
        last_execution=parse_timestamp(row["last_execution"]),
        interval_minutes=row["interval_minutes"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )
