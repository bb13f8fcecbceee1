"""
Service facade — the control boundary and query passthroughs.

Every method opens its own connection, so a ``StockService`` can be shared
between a request thread and the background sync thread.

Control operations:
  - ``can_start_sync()`` evaluates the process guard without changing it.
  - ``trigger_sync()`` performs admission synchronously (``can_start`` plus
    the atomic start) and then drains the feed on a daemon thread. A
    conflict is reported as ``SyncTrigger(accepted=False)``, not raised.
    Once the thread is joined, the trigger carries the run's ``result`` and
    the ``error`` that aborted it, if any.
  - ``run_sync()`` does the same on the calling thread and blocks.
  - ``refresh_one(symbol)`` checks the symbol exists and then triggers a
    full sync; the feed has no per-symbol endpoint.
  - ``force_stop()`` clears a stuck running flag.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from analyst_tracker.config import AppConfig
from analyst_tracker.db.connection import get_connection
from analyst_tracker.db.repositories.stock_repo import StockRepository
from analyst_tracker.errors import StockNotFoundError, SyncConflictError
from analyst_tracker.ingestion.feed_client import FeedClient, FeedSource
from analyst_tracker.models.feed import normalize_symbol
from analyst_tracker.models.query import FilterOptions, Overview
from analyst_tracker.models.score import RecommendationView
from analyst_tracker.models.stock import StockView
from analyst_tracker.pipeline.guard import ProcessGuard
from analyst_tracker.pipeline.sync import SyncOrchestrator, SyncResult
from analyst_tracker.query.overview import OverviewQuery
from analyst_tracker.query.pagination import Page
from analyst_tracker.query.stocks import StockFilters, StockQueries
from analyst_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class SyncTrigger:
    """Outcome of a sync trigger request.

    ``result`` and ``error`` are filled in by the background thread; read
    them only after ``thread`` has been joined.

    Attributes:
        accepted: True if a sync was admitted and launched.
        message:  Human-readable outcome.
        thread:   Background thread running the drain (``None`` if rejected).
        result:   Final ``SyncResult`` of the drain.
        error:    Exception that aborted the drain, if any.
    """

    accepted: bool
    message: str
    thread: Optional[threading.Thread] = None
    result: Optional[SyncResult] = None
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        """True if the background drain raised."""
        return self.error is not None


def default_client_factory(config: AppConfig) -> Callable[[], FeedSource]:
    """Return a factory building a ``FeedClient`` from ``config.feed``."""

    def _factory() -> FeedSource:
        return FeedClient(
            config.feed.base_url,
            token=config.feed.token,
            timeout_seconds=config.feed.timeout_seconds,
        )

    return _factory


class StockService:
    """Entry point used by the CLI and the scheduler.

    Args:
        config:         AppConfig.
        client_factory: Builds a fresh feed source per sync run.
        db_path:        Override DB path (defaults to config.database.db_path).
        clock:          Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        config: AppConfig,
        client_factory: Optional[Callable[[], FeedSource]] = None,
        db_path: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.client_factory = client_factory or default_client_factory(config)
        self.db_path = db_path or config.database.db_path
        self.clock = clock

    def _connect(self):
        return get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        )

    def _orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            self.config, self.client_factory(), db_path=self.db_path, clock=self.clock
        )

    # ── Control boundary ──────────────────────────────────────────────────────

    def can_start_sync(self) -> bool:
        """Return whether a sync may start now.

        Raises:
            ProcessNotConfiguredError: If the process row is missing.
        """
        with self._connect() as conn:
            return ProcessGuard(conn, self.config.sync.process_name, self.clock).can_start()

    def run_sync(self) -> SyncResult:
        """Run a full sync on the calling thread.

        Raises:
            SyncConflictError:         If a sync is running or cooling down.
            ProcessNotConfiguredError: If the process row is missing.
            FeedError:                 If the feed aborted the run.
        """
        return self._orchestrator().run()

    def trigger_sync(self) -> SyncTrigger:
        """Admit a sync synchronously and drain the feed in the background.

        Returns:
            SyncTrigger; ``accepted=False`` when another sync owns the guard.

        Raises:
            ProcessNotConfiguredError: If the process row is missing.
        """
        orchestrator = self._orchestrator()
        try:
            orchestrator.acquire()
        except SyncConflictError as exc:
            orchestrator.client.close()
            logger.info("Sync trigger rejected: %s", exc)
            return SyncTrigger(accepted=False, message=str(exc))
        except Exception:
            orchestrator.client.close()
            raise

        trigger = SyncTrigger(accepted=True, message="Sync started in background.")
        trigger.thread = threading.Thread(
            target=self._drain_in_background,
            args=(orchestrator, trigger),
            name=f"sync-{self.config.sync.process_name}",
            daemon=True,
        )
        try:
            trigger.thread.start()
        except RuntimeError:
            orchestrator.release()
            orchestrator.client.close()
            raise
        return trigger

    @staticmethod
    def _drain_in_background(orchestrator: SyncOrchestrator, trigger: SyncTrigger) -> None:
        try:
            orchestrator.drain()
        except Exception as exc:
            trigger.error = exc
            logger.error("Background sync failed: %s", exc, exc_info=True)
        finally:
            trigger.result = orchestrator.result

    def refresh_one(self, symbol: str) -> SyncTrigger:
        """Refresh a known stock by triggering a full sync.

        Raises:
            StockNotFoundError: If ``symbol`` is not in the store.
        """
        with self._connect() as conn:
            if StockRepository(conn).get_by_symbol(symbol) is None:
                raise StockNotFoundError(normalize_symbol(symbol))
        return self.trigger_sync()

    def force_stop(self) -> None:
        """Clear the sync running flag (administrative)."""
        with self._connect() as conn:
            ProcessGuard(conn, self.config.sync.process_name, self.clock).force_stop()

    # ── Query boundary ────────────────────────────────────────────────────────

    def list_stocks(
        self,
        page: Any = None,
        page_size: Any = None,
        action: Optional[str] = None,
        brokerage: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> Page[StockView]:
        filters = StockFilters.from_params(action=action, brokerage=brokerage, sort=sort)
        with self._connect() as conn:
            return StockQueries(conn, self.config.query).list_stocks(page, page_size, filters)

    def get_stock(self, symbol: str) -> Optional[StockView]:
        with self._connect() as conn:
            return StockQueries(conn, self.config.query).get_stock(symbol)

    def list_recommendations(self, page: Any = None, page_size: Any = None) -> Page[RecommendationView]:
        with self._connect() as conn:
            return StockQueries(conn, self.config.query).list_recommendations(page, page_size)

    def filter_options(self) -> FilterOptions:
        with self._connect() as conn:
            return StockQueries(conn, self.config.query).filter_options()

    def overview(self) -> Overview:
        with self._connect() as conn:
            return OverviewQuery(conn).build(self.clock())
