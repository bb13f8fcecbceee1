"""
Timestamp helpers shared by the store, the feed parser and the query layer.

All persisted timestamps use one fixed UTC format with microseconds::

    2025-01-13T00:30:05.813548Z

A fixed-width format keeps lexical TEXT ordering in SQLite identical to
chronological ordering, so ``ORDER BY analysis_date DESC`` and ``MAX()``
work directly on the stored strings.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Upstream timestamps may carry nanosecond precision; datetime keeps six digits.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def to_timestamp(value: datetime) -> str:
    """Format a datetime as a sortable UTC TEXT timestamp.

    Naive datetimes are assumed to already be in UTC.

    Args:
        value: Datetime to format.

    Returns:
        String in ``TIMESTAMP_FORMAT``.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Accepts the stored ``TIMESTAMP_FORMAT`` as well as the RFC 3339 shapes
    emitted by the upstream feed (``Z`` suffix, numeric offsets, fractional
    seconds longer than microseconds).

    Args:
        value: Timestamp string, or ``None``.

    Returns:
        Aware UTC ``datetime``, or ``None`` for ``None``/empty input.

    Raises:
        ValueError: If the string is not a recognisable ISO-8601 timestamp.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
