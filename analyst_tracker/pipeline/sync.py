"""
Sync orchestration — drains the feed into the store and rescores stocks.

State machine::

    IDLE → STARTING → DRAINING_FEED → FINISHED
                           │
                           └→ FAILED_FEED → FINISHED

Steps:
  1. Admission: ``ProcessGuard.can_start()`` then ``start()``. Either one
     refusing raises ``SyncConflictError`` before any data is touched.
  2. Drain: fetch pages following ``next_page`` until it is empty.
  3. Per record:
       a. upsert stock + change-aware upsert of the action, commit;
       b. prune the stock to ``retention_limit`` actions, rescore it from
          the retained actions, upsert the score, commit.
     Any exception in (a) or (b) is logged, counted and skipped; the rest
     of the page continues. Items that failed feed validation count as
     failures too.
  4. A ``FeedError`` aborts the drain. Writes committed so far remain.
  5. ``ProcessGuard.finish()`` runs exactly once on every exit path after
     a successful ``start()``.

``acquire()`` and ``drain()`` are separate so a caller can perform admission
synchronously and hand the drain to a background thread. Each opens its own
connection, so the two may run on different threads.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Callable, Optional

from analyst_tracker.config import AppConfig
from analyst_tracker.db.connection import get_connection
from analyst_tracker.db.repositories.score_repo import RecommendationScoreRepository
from analyst_tracker.db.repositories.stock_repo import (
    AnalystActionRepository,
    StockRepository,
    UpsertOutcome,
)
from analyst_tracker.errors import FeedError, SyncConflictError
from analyst_tracker.ingestion.feed_client import FeedPage, FeedSource, iter_pages
from analyst_tracker.models.feed import ActionRecord
from analyst_tracker.pipeline.guard import ProcessGuard
from analyst_tracker.recommendations.scorer import score_actions
from analyst_tracker.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class SyncState(StrEnum):
    """Lifecycle state of one sync run."""

    IDLE = "idle"
    STARTING = "starting"
    DRAINING_FEED = "draining_feed"
    FAILED_FEED = "failed_feed"
    FINISHED = "finished"


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class SyncResult:
    """Counters and outcome of one sync run.

    Attributes:
        process_name:      Guarded process name.
        state:             Current ``SyncState``.
        started_at:        UTC time the guard was acquired.
        finished_at:       UTC time the guard was released.
        pages:             Feed pages fetched.
        items_seen:        Items on fetched pages (valid + invalid).
        stocks_upserted:   Successful stock upserts.
        actions_inserted:  New action rows.
        actions_updated:   Existing action rows whose fields changed.
        actions_unchanged: Re-ingested actions left untouched.
        actions_pruned:    Rows removed by retention.
        scores_written:    Score rows upserted.
        items_failed:      Items skipped because of a per-item error.
        feed_error:        Message of the aborting ``FeedError``, if any.
        errors:            Per-item error messages.
    """

    process_name:      str
    state:             SyncState          = SyncState.IDLE
    started_at:        Optional[datetime] = None
    finished_at:       Optional[datetime] = None
    pages:             int                = 0
    items_seen:        int                = 0
    stocks_upserted:   int                = 0
    actions_inserted:  int                = 0
    actions_updated:   int                = 0
    actions_unchanged: int                = 0
    actions_pruned:    int                = 0
    scores_written:    int                = 0
    items_failed:      int                = 0
    feed_error:        Optional[str]      = None
    errors:            list[str]          = field(default_factory=list)

    @property
    def status(self) -> str:
        """``"failed"`` on a feed abort, ``"partial"`` with item errors, else ``"success"``."""
        if self.feed_error is not None:
            return "failed"
        if self.items_failed:
            return "partial"
        return "success"


# ── Orchestrator ──────────────────────────────────────────────────────────────

class SyncOrchestrator:
    """Runs one full-feed sync under the process guard.

    Args:
        config:  AppConfig for this run.
        client:  Feed source to drain.
        db_path: Override DB path (defaults to config.database.db_path).
        clock:   Returns the current aware UTC datetime (injectable for tests).
    """

    def __init__(
        self,
        config: AppConfig,
        client: FeedSource,
        db_path: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.client = client
        self.db_path = db_path or config.database.db_path
        self.clock = clock
        self.process_name = config.sync.process_name
        self.result = SyncResult(process_name=self.process_name)
        self._acquired = False

    def _connect(self):
        return get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        )

    def run(self) -> SyncResult:
        """Acquire the guard and drain the feed on the calling thread.

        Returns:
            SyncResult for the completed run.

        Raises:
            SyncConflictError:         If the guard refuses admission.
            ProcessNotConfiguredError: If the process row is missing.
            FeedError:                 If a feed page could not be fetched.
        """
        try:
            self.acquire()
        except Exception:
            self.client.close()
            raise
        return self.drain()

    def acquire(self) -> None:
        """Admission check and atomic start of the guarded process.

        Raises:
            SyncConflictError:         If running or cooling down.
            ProcessNotConfiguredError: If the process row is missing.
        """
        self.result.state = SyncState.STARTING
        with self._connect() as conn:
            guard = ProcessGuard(conn, self.process_name, self.clock)
            if not guard.can_start():
                self.result.state = SyncState.IDLE
                raise SyncConflictError(self.process_name, "already running or cooling down")
            try:
                guard.start()
            except SyncConflictError:
                self.result.state = SyncState.IDLE
                raise
        self._acquired = True
        self.result.started_at = self.clock()
        logger.info("Sync [%s] acquired guard.", self.process_name)

    def release(self) -> None:
        """Release a guard acquired by ``acquire()`` without draining."""
        with self._connect() as conn:
            ProcessGuard(conn, self.process_name, self.clock).finish()
        self._acquired = False

    def drain(self) -> SyncResult:
        """Drain the feed into the store, then release the guard.

        Must follow a successful ``acquire()``.

        Returns:
            SyncResult with final counters and ``state == FINISHED``.

        Raises:
            FeedError: If a page could not be fetched (after releasing the guard).
        """
        if not self._acquired:
            raise RuntimeError("drain() called without a successful acquire().")

        result = self.result
        try:
            with self._connect() as conn:
                guard = ProcessGuard(conn, self.process_name, self.clock)
                try:
                    result.state = SyncState.DRAINING_FEED
                    self._drain_feed(conn, result)
                except FeedError as exc:
                    result.state = SyncState.FAILED_FEED
                    result.feed_error = str(exc)
                    logger.error("Sync [%s] aborted by feed error: %s", self.process_name, exc)
                    raise
                finally:
                    conn.rollback()
                    guard.finish()
                    self._acquired = False
                    result.state = SyncState.FINISHED
                    result.finished_at = self.clock()
        finally:
            self.client.close()

        logger.info(
            "Sync [%s] finished | status=%s | pages=%d | items=%d | inserted=%d | "
            "updated=%d | unchanged=%d | pruned=%d | scores=%d | failed=%d",
            self.process_name, result.status, result.pages, result.items_seen,
            result.actions_inserted, result.actions_updated, result.actions_unchanged,
            result.actions_pruned, result.scores_written, result.items_failed,
        )
        return result

    # ── Private helpers ───────────────────────────────────────────────────────

    def _drain_feed(self, conn: sqlite3.Connection, result: SyncResult) -> None:
        feed_cfg = self.config.feed
        for page in iter_pages(self.client, feed_cfg.page_delay_seconds, feed_cfg.max_pages):
            result.pages += 1
            self._ingest_page(conn, page, result)

    def _ingest_page(self, conn: sqlite3.Connection, page: FeedPage, result: SyncResult) -> None:
        result.items_seen += len(page.records) + page.invalid_items
        if page.invalid_items:
            result.items_failed += page.invalid_items
            result.errors.append(f"page {result.pages}: {page.invalid_items} invalid item(s)")
        for record in page.records:
            self._ingest_record(conn, record, result)

    def _ingest_record(
        self,
        conn: sqlite3.Connection,
        record: ActionRecord,
        result: SyncResult,
    ) -> None:
        now = self.clock()
        stocks = StockRepository(conn)
        actions = AnalystActionRepository(conn)
        scores = RecommendationScoreRepository(conn)

        # ── (a) stock + action ────────────────────────────────────────────────
        try:
            stock_id = stocks.upsert(record.ticker, record.company, now)
            _, outcome = actions.upsert(stock_id, record, now)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._record_failure(result, record, "ingest", exc)
            return

        result.stocks_upserted += 1
        if outcome is UpsertOutcome.INSERTED:
            result.actions_inserted += 1
        elif outcome is UpsertOutcome.UPDATED:
            result.actions_updated += 1
        else:
            result.actions_unchanged += 1

        # ── (b) retention + score ─────────────────────────────────────────────
        try:
            pruned = actions.prune(stock_id, self.config.sync.retention_limit)
            retained = actions.get_latest(stock_id)
            components = score_actions(retained)
            scores.upsert(components.to_score(stock_id), now)
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._record_failure(result, record, "rescore", exc)
            return

        result.actions_pruned += pruned
        result.scores_written += 1

    def _record_failure(
        self,
        result: SyncResult,
        record: ActionRecord,
        step: str,
        exc: Exception,
    ) -> None:
        result.items_failed += 1
        message = f"{record.ticker} [{step}]: {exc}"
        result.errors.append(message)
        logger.warning("Sync [%s] skipped item %s", self.process_name, message)
