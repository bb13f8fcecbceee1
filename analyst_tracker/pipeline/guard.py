"""
Process guard — persisted mutual exclusion and cooldown for long runs.

State lives only in the ``process_control`` row, so the guard holds across
threads, processes and restarts sharing one database. Transitions:

    can_start()   advisory pre-check; never changes state
    start()       atomic running 0 → 1; the real exclusion point
    finish()      running → 0, last_execution = now (every exit path)
    force_stop()  running → 0, last_execution untouched (admin escape hatch)

A start is allowed when the row is not running and either has never run or
``now >= last_execution + interval_minutes``. ``can_start()`` and ``start()``
can race; the conditional UPDATE in ``start()`` decides the winner.

Every transition commits immediately so other connections observe it.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Callable

from analyst_tracker.db.repositories.process_repo import ProcessControlRepository
from analyst_tracker.errors import ProcessNotConfiguredError, SyncConflictError
from analyst_tracker.models.process import ProcessControl
from analyst_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ProcessGuard:
    """Guard for one named process.

    Args:
        conn:         Open connection; the guard commits after each transition.
        process_name: ``process_control.process_name`` to operate on.
        clock:        Returns the current aware UTC datetime (injectable for tests).
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        process_name: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.conn = conn
        self.process_name = process_name
        self.clock = clock
        self._repo = ProcessControlRepository(conn)

    def state(self) -> ProcessControl:
        """Return the current process row.

        Raises:
            ProcessNotConfiguredError: If the row does not exist.
        """
        process = self._repo.get(self.process_name)
        if process is None:
            raise ProcessNotConfiguredError(self.process_name)
        return process

    def can_start(self) -> bool:
        """Evaluate the running flag and cooldown without changing state.

        Raises:
            ProcessNotConfiguredError: If the row does not exist.
        """
        process = self.state()
        if process.is_running:
            return False
        if process.last_execution is None:
            return True
        next_allowed = process.last_execution + timedelta(minutes=process.interval_minutes)
        return self.clock() >= next_allowed

    def start(self) -> None:
        """Acquire the running flag.

        Raises:
            ProcessNotConfiguredError: If the row does not exist.
            SyncConflictError:         If another execution holds the flag.
        """
        acquired = self._repo.try_start(self.process_name, self.clock())
        self.conn.commit()
        if not acquired:
            # Distinguish a vanished row from a lost race.
            self.state()
            raise SyncConflictError(self.process_name, "already running")
        logger.info("Process '%s' started.", self.process_name)

    def finish(self) -> None:
        """Release the running flag and stamp ``last_execution``.

        Raises:
            ProcessNotConfiguredError: If the row does not exist.
        """
        found = self._repo.finish(self.process_name, self.clock())
        self.conn.commit()
        if not found:
            raise ProcessNotConfiguredError(self.process_name)
        logger.info("Process '%s' finished.", self.process_name)

    def force_stop(self) -> None:
        """Clear the running flag without recording an execution.

        Does not stop an in-flight run; it only unblocks future starts.

        Raises:
            ProcessNotConfiguredError: If the row does not exist.
        """
        found = self._repo.force_stop(self.process_name, self.clock())
        self.conn.commit()
        if not found:
            raise ProcessNotConfiguredError(self.process_name)
        logger.warning("Process '%s' force-stopped.", self.process_name)
