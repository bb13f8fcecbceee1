"""Scheduler daemon for periodic feed syncs.

No external scheduler library is required — uses stdlib ``time`` and
``signal`` only.

Typical usage via the CLI::

    analyst-tracker start-scheduler

Or import directly::

    from analyst_tracker.scheduler import SyncScheduler
    scheduler = SyncScheduler(StockService(config), poll_minutes=1.0)
    scheduler.start()  # blocks until Ctrl-C

Every ``poll_minutes`` the daemon asks the process guard whether a sync may
start; cooldown spacing is enforced by the guard's ``interval_minutes``, not
by the poll period. When admitted, one sync runs to completion on the
daemon's thread. A failed tick is logged and does not stop the daemon.
"""

from __future__ import annotations

import logging
import platform
import signal
import time
from datetime import datetime, timedelta

from analyst_tracker.errors import FeedError, SyncConflictError
from analyst_tracker.service import StockService

log = logging.getLogger(__name__)

_SLEEP_STEP_SECONDS = 1.0


class SyncScheduler:
    """Polls the process guard and runs syncs when allowed.

    Parameters
    ----------
    service:
        StockService used for guard checks and sync runs.
    poll_minutes:
        Minutes between guard checks.
    """

    def __init__(self, service: StockService, poll_minutes: float = 1.0) -> None:
        self.service = service
        self.poll_minutes = poll_minutes
        self._running = False

    def tick(self) -> bool:
        """Run one scheduling step.  Returns ``True`` if a sync completed."""
        try:
            if not self.service.can_start_sync():
                log.debug("Sync not due yet (running or cooling down).")
                return False
            result = self.service.run_sync()
        except SyncConflictError as exc:
            log.info("Sync skipped: %s", exc)
            return False
        except FeedError as exc:
            log.error("Sync aborted by feed error: %s", exc)
            return False
        except Exception as exc:
            log.error("Scheduled sync failed: %s", exc, exc_info=True)
            return False
        log.info("Scheduled sync completed with status=%s.", result.status)
        return True

    def stop(self) -> None:
        self._running = False

    def start(self) -> None:
        """Start the daemon.  Blocks until Ctrl-C (or SIGTERM on Linux/macOS)."""
        self._running = True

        def _shutdown(signum, frame):  # noqa: ANN001
            log.info("Signal %d received — stopping scheduler.", signum)
            self._running = False

        signal.signal(signal.SIGINT, _shutdown)
        if platform.system() != "Windows":
            signal.signal(signal.SIGTERM, _shutdown)

        log.info("Scheduler started.  poll_minutes=%s", self.poll_minutes)

        next_tick = datetime.now()
        while self._running:
            if datetime.now() >= next_tick:
                self.tick()
                next_tick = datetime.now() + timedelta(minutes=self.poll_minutes)
                log.debug("Next check: %s", next_tick.isoformat(timespec="seconds"))
            time.sleep(_SLEEP_STEP_SECONDS)

        log.info("Scheduler stopped.")
