"""Tests for ProcessGuard — single-flight, cooldown and administrative stop."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from analyst_tracker.errors import ProcessNotConfiguredError, SyncConflictError
from analyst_tracker.pipeline.guard import ProcessGuard

T0 = datetime(2025, 2, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def guard(in_memory_db, clock) -> ProcessGuard:
    return ProcessGuard(in_memory_db, "stock_sync", clock)


class TestCanStart:
    def test_never_run_process_can_start(self, guard):
        assert guard.can_start() is True

    def test_running_process_cannot_start(self, guard):
        guard.start()
        assert guard.can_start() is False

    def test_can_start_does_not_change_state(self, guard):
        guard.can_start()
        assert guard.state().is_running is False

    def test_cooldown_blocks_until_interval_elapsed(self, guard, clock):
        guard.start()
        guard.finish()

        clock.advance(minutes=4, seconds=59)
        assert guard.can_start() is False

        clock.advance(seconds=1)
        assert guard.can_start() is True

    def test_missing_row_raises(self, in_memory_db, clock):
        missing = ProcessGuard(in_memory_db, "unknown", clock)
        with pytest.raises(ProcessNotConfiguredError) as exc_info:
            missing.can_start()
        assert exc_info.value.process_name == "unknown"


class TestTransitions:
    def test_second_start_conflicts(self, guard):
        guard.start()
        with pytest.raises(SyncConflictError):
            guard.start()

    def test_finish_releases_and_stamps(self, guard, clock):
        guard.start()
        clock.advance(minutes=3)
        guard.finish()
        state = guard.state()
        assert state.is_running is False
        assert state.last_execution == T0 + timedelta(minutes=3)

    def test_force_stop_unblocks_without_recording_execution(self, guard):
        guard.start()
        guard.force_stop()
        state = guard.state()
        assert state.is_running is False
        assert state.last_execution is None
        assert guard.can_start() is True

    def test_transitions_commit_immediately(self, in_memory_db, guard):
        guard.start()
        assert in_memory_db.in_transaction is False

    @pytest.mark.parametrize("method", ["start", "finish", "force_stop"])
    def test_missing_row_raises(self, in_memory_db, clock, method):
        missing = ProcessGuard(in_memory_db, "unknown", clock)
        with pytest.raises(ProcessNotConfiguredError):
            getattr(missing, method)()
