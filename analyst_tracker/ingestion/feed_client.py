"""
Analyst-action feed client.

API:   ``GET {base_url}/list?next_page=<cursor>``
Auth:  ``Authorization: Bearer <token>``

Credential setup (.env, gitignored):
  ANALYST_FEED_TOKEN=your_token_here

Response body::

    {
      "items": [
        {"ticker": "BSBR", "company": "Banco Santander (Brasil)",
         "action": "upgraded by", "brokerage": "The Goldman Sachs Group",
         "rating_from": "Sell", "rating_to": "Neutral",
         "target_from": "$4.20", "target_to": "$4.70",
         "time": "2025-01-13T00:30:05.813548892Z"},
        ...
      ],
      "next_page": "BSBR"
    }

An empty ``next_page`` marks the last page. The first page is requested
without the ``next_page`` parameter.

Error policy:
  - Transport errors, timeouts, non-200 statuses, non-JSON bodies and bodies
    without an ``items`` list raise ``FeedError`` (the whole page is unusable).
  - A single item that fails validation is logged, counted in
    ``FeedPage.invalid_items`` and skipped.

``FixtureFeedClient`` serves built-in pages with the same parsing path, for
offline runs (``analyst-tracker sync --fixture``) and tests.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Optional, Protocol

import httpx
from pydantic import ValidationError

from analyst_tracker.errors import FeedError
from analyst_tracker.models.feed import ActionRecord

logger = logging.getLogger(__name__)

LIST_PATH = "/list"


# ── Response types ─────────────────────────────────────────────────────────────

@dataclass
class FeedPage:
    """One decoded feed page.

    Attributes:
        records:       Valid records, in feed order.
        next_cursor:   Cursor for the next page; ``""`` when exhausted.
        invalid_items: Items dropped because they failed validation.
    """

    records: list[ActionRecord] = field(default_factory=list)
    next_cursor: str = ""
    invalid_items: int = 0


class FeedSource(Protocol):
    """Anything the sync orchestrator can page through."""

    def fetch_page(self, cursor: str = "") -> FeedPage: ...

    def close(self) -> None: ...


def parse_page(payload: Any, url: str) -> FeedPage:
    """Decode a page body into a ``FeedPage``.

    Args:
        payload: Decoded JSON body.
        url:     Request URL, used in error messages.

    Returns:
        FeedPage with valid records and the continuation cursor.

    Raises:
        FeedError: If the body is not an object with an ``items`` list and a
            string (or missing/null) ``next_page``.
    """
    if not isinstance(payload, dict):
        raise FeedError(url, "response body is not a JSON object")

    items = payload.get("items")
    if not isinstance(items, list):
        raise FeedError(url, "response body has no 'items' list")

    next_cursor = payload.get("next_page") or ""
    if not isinstance(next_cursor, str):
        raise FeedError(url, "'next_page' is not a string")

    page = FeedPage(next_cursor=next_cursor)
    for index, item in enumerate(items):
        try:
            page.records.append(ActionRecord.model_validate(item))
        except ValidationError as exc:
            page.invalid_items += 1
            logger.warning(
                "Skipping invalid feed item #%d (%s): %s",
                index,
                item.get("ticker") if isinstance(item, dict) else type(item).__name__,
                exc.errors(include_url=False),
            )
    return page


def iter_pages(
    source: FeedSource,
    page_delay_seconds: float = 0.0,
    max_pages: int = 0,
) -> Iterator[FeedPage]:
    """Yield pages from ``source`` following ``next_page`` until it is empty.

    Args:
        source:             Feed to page through, starting at cursor ``""``.
        page_delay_seconds: Pause between page requests.
        max_pages:          Stop after this many pages; 0 means no limit.

    Yields:
        Each decoded ``FeedPage``, in feed order.

    Raises:
        FeedError: If a page fails to load, or returns the cursor it was
            requested with (the feed would loop forever).
    """
    cursor = ""
    fetched = 0
    while True:
        page = source.fetch_page(cursor)
        fetched += 1
        yield page

        if not page.next_cursor:
            return
        if page.next_cursor == cursor:
            raise FeedError(f"{LIST_PATH}?next_page={cursor}", f"cursor {cursor!r} did not advance")
        if max_pages and fetched >= max_pages:
            logger.warning(
                "Stopped at max_pages=%d with cursor %r pending.", max_pages, page.next_cursor
            )
            return

        cursor = page.next_cursor
        if page_delay_seconds:
            time.sleep(page_delay_seconds)


# ── Client ─────────────────────────────────────────────────────────────────────

class FeedClient:
    """HTTP client for the analyst-action feed.

    Usage::

        with FeedClient(base_url, token=os.environ["ANALYST_FEED_TOKEN"]) as client:
            page = client.fetch_page()
            while page.next_cursor:
                page = client.fetch_page(page.next_cursor)

    Attributes:
        base_url:        Feed root URL, e.g. ``https://api.karenai.click/swechallenge``.
        timeout_seconds: Per-request timeout; a timeout is a ``FeedError``.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """Initialise the feed client.

        Args:
            base_url:        Feed root URL.
            token:           Bearer token; ``None`` sends no Authorization header.
            timeout_seconds: Per-request timeout.
            transport:       Optional httpx transport (``httpx.MockTransport`` in tests).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No feed token configured; requests are unauthenticated.")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    def fetch_page(self, cursor: str = "") -> FeedPage:
        """Fetch and decode one page.

        Args:
            cursor: Continuation cursor from the previous page; ``""`` for the first.

        Returns:
            FeedPage.

        Raises:
            FeedError: On transport failure, non-200 status or undecodable body.
        """
        params = {"next_page": cursor} if cursor else {}
        url = f"{self.base_url}{LIST_PATH}"

        try:
            response = self._client.get(LIST_PATH, params=params)
        except httpx.HTTPError as exc:
            raise FeedError(url, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise FeedError(url, "unexpected status", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise FeedError(url, f"invalid JSON body: {exc}") from exc

        page = parse_page(payload, url)
        logger.debug(
            "Fetched feed page cursor=%r | records=%d | invalid=%d | next=%r",
            cursor, len(page.records), page.invalid_items, page.next_cursor,
        )
        return page

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "FeedClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class FixtureFeedClient:
    """Offline feed serving ``FIXTURE_PAGES`` keyed by cursor.

    The first page is served for ``""``; each page's ``next_page`` names the
    key of the following one.
    """

    FIXTURE_PAGES: ClassVar[dict[str, dict]] = {
        "": {
            "items": [
                {
                    "ticker": "BSBR",
                    "company": "Banco Santander (Brasil)",
                    "action": "upgraded by",
                    "brokerage": "The Goldman Sachs Group",
                    "rating_from": "Sell",
                    "rating_to": "Neutral",
                    "target_from": "$4.20",
                    "target_to": "$4.70",
                    "time": "2025-01-13T00:30:05.813548892Z",
                },
                {
                    "ticker": "VYGR",
                    "company": "Voyager Therapeutics",
                    "action": "reiterated by",
                    "brokerage": "Wedbush",
                    "rating_from": "Outperform",
                    "rating_to": "Outperform",
                    "target_from": "$45.00",
                    "target_to": "$45.00",
                    "time": "2025-01-14T00:30:05.813548892Z",
                },
                {
                    "ticker": "CECO",
                    "company": "CECO Environmental",
                    "action": "target raised by",
                    "brokerage": "Needham & Company LLC",
                    "rating_from": "Buy",
                    "rating_to": "Buy",
                    "target_from": "$30.00",
                    "target_to": "$35.00",
                    "time": "2025-01-15T00:30:05.813548892Z",
                },
            ],
            "next_page": "CECO",
        },
        "CECO": {
            "items": [
                {
                    "ticker": "AKBA",
                    "company": "Akebia Therapeutics",
                    "action": "initiated by",
                    "brokerage": "HC Wainwright",
                    "rating_from": "",
                    "rating_to": "Buy",
                    "target_from": "",
                    "target_to": "$6.00",
                    "time": "2025-01-16T00:30:05.813548892Z",
                },
                {
                    "ticker": "CECO",
                    "company": "CECO Environmental",
                    "action": "target lowered by",
                    "brokerage": "Roth Capital",
                    "rating_from": "Buy",
                    "rating_to": "Buy",
                    "target_from": "$33.00",
                    "target_to": "$29.00",
                    "time": "2025-01-10T00:30:05.813548892Z",
                },
            ],
            "next_page": "",
        },
    }

    def __init__(self, pages: Optional[dict[str, dict]] = None) -> None:
        self.pages = pages if pages is not None else self.FIXTURE_PAGES
        self.requested: list[str] = []
        self.closed = False

    def fetch_page(self, cursor: str = "") -> FeedPage:
        """Serve the fixture page for ``cursor``.

        Raises:
            FeedError: If no fixture page exists for ``cursor``.
        """
        url = f"fixture://list?next_page={cursor}"
        self.requested.append(cursor)
        if cursor not in self.pages:
            raise FeedError(url, "unknown cursor", status_code=404)
        return parse_page(self.pages[cursor], url)

    def close(self) -> None:
        self.closed = True
