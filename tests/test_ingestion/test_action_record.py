"""Tests for ActionRecord validation and timestamp parsing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from analyst_tracker.models.feed import ActionRecord, normalize_symbol
from analyst_tracker.utils.time_utils import parse_timestamp, to_timestamp


class TestActionRecord:
    def test_ticker_normalised(self):
        record = ActionRecord(ticker="  aapl ", time="2025-01-01T00:00:00Z")
        assert record.ticker == "AAPL"

    def test_null_text_fields_become_empty(self):
        record = ActionRecord(
            ticker="AAPL", time="2025-01-01T00:00:00Z", rating_from=None, target_from=None
        )
        assert record.rating_from == ""
        assert record.target_from == ""

    def test_extra_fields_ignored(self):
        record = ActionRecord(ticker="AAPL", time="2025-01-01T00:00:00Z", source="feed")
        assert not hasattr(record, "source")

    @pytest.mark.parametrize("ticker", ["", "   ", None])
    def test_blank_ticker_rejected(self, ticker):
        with pytest.raises(ValidationError):
            ActionRecord(ticker=ticker, time="2025-01-01T00:00:00Z")

    @pytest.mark.parametrize("time", ["", "not a date"])
    def test_bad_time_rejected(self, time):
        with pytest.raises(ValidationError):
            ActionRecord(ticker="AAPL", time=time)

    def test_record_is_frozen(self):
        record = ActionRecord(ticker="AAPL", time="2025-01-01T00:00:00Z")
        with pytest.raises(ValidationError):
            record.ticker = "MSFT"

    def test_normalize_symbol(self):
        assert normalize_symbol(" brk.b ") == "BRK.B"


class TestTimestamps:
    def test_nanoseconds_truncated(self):
        parsed = parse_timestamp("2025-01-13T00:30:05.813548892Z")
        assert parsed == datetime(2025, 1, 13, 0, 30, 5, 813548, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = parse_timestamp("2025-01-13T02:00:00+02:00")
        assert parsed == datetime(2025, 1, 13, 0, 0, 0, tzinfo=timezone.utc)

    def test_empty_is_none(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("  ") is None

    def test_format_sorts_chronologically(self):
        early = datetime(2025, 1, 9, 23, 59, 59, tzinfo=timezone.utc)
        late = early + timedelta(microseconds=1)
        assert to_timestamp(early) < to_timestamp(late)
        assert to_timestamp(early) == "2025-01-09T23:59:59.000000Z"

    def test_stored_format_round_trips(self):
        value = datetime(2025, 1, 13, 0, 30, 5, 813548, tzinfo=timezone.utc)
        assert parse_timestamp(to_timestamp(value)) == value
