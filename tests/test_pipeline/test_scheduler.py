"""Tests for SyncScheduler.tick() — no real sleeping or signal handling."""

from __future__ import annotations

from unittest.mock import MagicMock

from analyst_tracker.errors import FeedError, SyncConflictError
from analyst_tracker.ingestion.feed_client import FixtureFeedClient
from analyst_tracker.scheduler import SyncScheduler
from analyst_tracker.service import StockService


class TestTick:
    def test_runs_sync_when_due(self, app_config, clock):
        service = StockService(app_config, client_factory=FixtureFeedClient, clock=clock)
        scheduler = SyncScheduler(service, poll_minutes=1.0)

        assert scheduler.tick() is True
        assert service.list_stocks().meta.total_items == 4

    def test_skips_during_cooldown(self, app_config, clock):
        service = StockService(app_config, client_factory=FixtureFeedClient, clock=clock)
        scheduler = SyncScheduler(service)
        scheduler.tick()

        clock.advance(minutes=1)
        assert scheduler.tick() is False

        clock.advance(minutes=4)
        assert scheduler.tick() is True

    def test_lost_race_is_not_fatal(self):
        service = MagicMock()
        service.can_start_sync.return_value = True
        service.run_sync.side_effect = SyncConflictError("stock_sync", "already running")
        assert SyncScheduler(service).tick() is False

    def test_feed_error_is_logged_not_raised(self, caplog):
        service = MagicMock()
        service.can_start_sync.return_value = True
        service.run_sync.side_effect = FeedError("https://feed.test/list", "boom")
        assert SyncScheduler(service).tick() is False
        assert "feed error" in caplog.text

    def test_unexpected_error_is_logged_not_raised(self):
        service = MagicMock()
        service.can_start_sync.side_effect = RuntimeError("db gone")
        assert SyncScheduler(service).tick() is False

    def test_stop_clears_running_flag(self):
        scheduler = SyncScheduler(MagicMock())
        scheduler._running = True
        scheduler.stop()
        assert scheduler._running is False
