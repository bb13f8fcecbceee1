"""Tests for StockService — background triggers, mutual exclusion and refresh."""

from __future__ import annotations

import threading

import pytest

from analyst_tracker.errors import FeedError, ProcessNotConfiguredError, StockNotFoundError
from analyst_tracker.ingestion.feed_client import FeedPage, FixtureFeedClient
from analyst_tracker.service import StockService

JOIN_TIMEOUT = 10


class BlockingFeed:
    """Feed source whose first fetch blocks until ``release`` is set."""

    def __init__(self, release: threading.Event) -> None:
        self.release = release
        self.entered = threading.Event()
        self.closed = False

    def fetch_page(self, cursor: str = "") -> FeedPage:
        self.entered.set()
        self.release.wait(JOIN_TIMEOUT)
        return FeedPage(records=[], next_cursor="")

    def close(self) -> None:
        self.closed = True


class FailingFeed:
    """Feed source that always fails."""

    def __init__(self) -> None:
        self.closed = False

    def fetch_page(self, cursor: str = "") -> FeedPage:
        raise FeedError("https://feed.test/list", "unexpected status", status_code=500)

    def close(self) -> None:
        self.closed = True


class TestTriggerSync:
    def test_second_trigger_rejected_while_running(self, app_config, clock):
        release = threading.Event()
        feeds: list[BlockingFeed] = []

        def factory() -> BlockingFeed:
            feeds.append(BlockingFeed(release))
            return feeds[-1]

        service = StockService(app_config, client_factory=factory, clock=clock)

        first = service.trigger_sync()
        assert first.accepted is True
        assert feeds[0].entered.wait(JOIN_TIMEOUT)

        second = service.trigger_sync()
        assert second.accepted is False
        assert second.thread is None
        assert feeds[1].closed is True
        assert service.can_start_sync() is False

        release.set()
        first.thread.join(JOIN_TIMEOUT)
        assert not first.thread.is_alive()
        assert feeds[0].closed is True

    def test_cooldown_after_background_run(self, app_config, clock):
        service = StockService(app_config, client_factory=FixtureFeedClient, clock=clock)
        trigger = service.trigger_sync()
        trigger.thread.join(JOIN_TIMEOUT)

        assert trigger.failed is False
        assert trigger.result.status == "success"
        assert service.can_start_sync() is False
        assert service.trigger_sync().accepted is False

        clock.advance(minutes=5)
        assert service.can_start_sync() is True

    def test_background_feed_failure_releases_guard(self, app_config, clock):
        feed = FailingFeed()
        service = StockService(app_config, client_factory=lambda: feed, clock=clock)

        trigger = service.trigger_sync()
        trigger.thread.join(JOIN_TIMEOUT)

        assert feed.closed is True
        assert trigger.failed is True
        assert isinstance(trigger.error, FeedError)
        assert trigger.result.status == "failed"
        clock.advance(minutes=5)
        assert service.can_start_sync() is True

    def test_missing_process_row_raises(self, app_config, clock):
        config = app_config.model_copy(
            update={"sync": app_config.sync.model_copy(update={"process_name": "other"})}
        )
        service = StockService(config, client_factory=FixtureFeedClient, clock=clock)
        with pytest.raises(ProcessNotConfiguredError):
            service.trigger_sync()


class TestRunSyncAndAdmin:
    def test_run_sync_blocks_and_returns_result(self, app_config, clock):
        service = StockService(app_config, client_factory=FixtureFeedClient, clock=clock)
        result = service.run_sync()
        assert result.status == "success"
        assert service.list_stocks().meta.total_items == 4

    def test_force_stop_clears_stuck_flag(self, app_config, clock):
        release = threading.Event()
        feed = BlockingFeed(release)
        service = StockService(app_config, client_factory=lambda: feed, clock=clock)
        trigger = service.trigger_sync()
        feed.entered.wait(JOIN_TIMEOUT)

        service.force_stop()
        assert service.can_start_sync() is True

        release.set()
        trigger.thread.join(JOIN_TIMEOUT)

    def test_refresh_unknown_symbol(self, app_config, clock):
        service = StockService(app_config, client_factory=FixtureFeedClient, clock=clock)
        with pytest.raises(StockNotFoundError) as exc_info:
            service.refresh_one(" zzzz ")
        assert exc_info.value.symbol == "ZZZZ"

    def test_refresh_known_symbol_triggers_full_sync(self, app_config, clock):
        service = StockService(app_config, client_factory=FixtureFeedClient, clock=clock)
        service.run_sync()
        clock.advance(minutes=5)

        trigger = service.refresh_one("ceco")
        assert trigger.accepted is True
        trigger.thread.join(JOIN_TIMEOUT)


class TestQueryPassthroughs:
    @pytest.fixture
    def synced(self, app_config, clock) -> StockService:
        service = StockService(app_config, client_factory=FixtureFeedClient, clock=clock)
        service.run_sync()
        return service

    def _symbols(self, page) -> list[str]:
        return [view.stock.symbol for view in page.data]

    def test_default_order_is_ticker(self, synced):
        assert self._symbols(synced.list_stocks()) == ["AKBA", "BSBR", "CECO", "VYGR"]

    def test_action_filter(self, synced):
        assert self._symbols(synced.list_stocks(action="lowered")) == ["CECO"]
        assert self._symbols(synced.list_stocks(action="upgraded")) == ["BSBR"]
        assert len(synced.list_stocks(action="not-a-kind").data) == 4

    def test_brokerage_filter(self, synced):
        assert self._symbols(synced.list_stocks(brokerage="roth")) == ["CECO"]

    def test_analysis_sort(self, synced):
        page = synced.list_stocks(sort="analysis-newest")
        assert self._symbols(page) == ["AKBA", "CECO", "VYGR", "BSBR"]

    def test_recommendations_ranked(self, synced):
        page = synced.list_recommendations()
        assert [v.stock.stock.symbol for v in page.data] == ["CECO", "AKBA", "BSBR", "VYGR"]
        assert [v.score.total_score for v in page.data] == [120.0, 90.0, 85.0, 70.0]

    def test_get_stock(self, synced):
        view = synced.get_stock("bsbr")
        assert view.stock.name == "Banco Santander (Brasil)"
        assert len(view.latest_actions) == 1
        assert synced.get_stock("NOPE") is None

    def test_overview(self, synced):
        overview = synced.overview()
        assert overview.total_stocks == 4
        assert overview.total_recommendations == 4
        assert overview.selection_rate == pytest.approx(100.0)
