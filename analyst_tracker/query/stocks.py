"""
Stock list, stock detail, recommendations and filter options.

Two-phase plan for the paginated stock list
-------------------------------------------
Phase 1 decides *which* stocks are on the page and in *what order*, using
only the ``stocks`` table plus correlated subqueries:

    SELECT s.*, (SELECT MAX(a.analysis_date) ...) AS latest_analysis_date
    FROM stocks s
    WHERE <EXISTS filters>
    ORDER BY <sort mode>
    LIMIT ? OFFSET ?

Phase 2 fetches the newest ``list_actions_per_stock`` actions for exactly
those stock ids (one windowed query) and attaches them in phase-1 order.
Child rows never influence the stock order, and stocks without actions
keep their slot with an empty action list.

Filters (each an ``EXISTS`` over the stock's retained actions):
  - action kind: ``LOWER(action) LIKE '%<phrase>%'`` for a known ``ActionKind``
  - brokerage:   ``casefold(brokerage) LIKE '%<text>%'`` (wildcards escaped);
                 ``casefold`` is Python's ``str.casefold``, registered on the
                 connection, so non-ASCII names fold the same on both sides
Unknown action kinds, ``"all"`` and empty values apply no filter.

Sort modes (all with ``symbol ASC`` as the final tie-break):
  newest / oldest            → stocks.updated_at
  ticker-a-z                 → symbol
  company-a-z                → name
  analysis-newest / -oldest  → latest action date, stocks without actions last
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from analyst_tracker.config import QueryConfig
from analyst_tracker.db.repositories.base import BaseRepository
from analyst_tracker.db.repositories.score_repo import row_to_score
from analyst_tracker.db.repositories.stock_repo import (
    AnalystActionRepository,
    StockRepository,
    row_to_stock,
)
from analyst_tracker.models.query import FilterOption, FilterOptions
from analyst_tracker.models.score import RecommendationView
from analyst_tracker.models.stock import Stock, StockView
from analyst_tracker.query.pagination import (
    Page,
    PaginationMeta,
    normalize_page,
    normalize_page_size,
)
from analyst_tracker.taxonomy.action_taxonomy import (
    ALL_VALUE,
    DEFAULT_SORT_MODE,
    ActionKind,
    SortMode,
    action_kind_label,
    action_kind_value,
    parse_action_kind,
    parse_sort_mode,
)
from analyst_tracker.utils.time_utils import parse_timestamp

logger = logging.getLogger(__name__)

_LATEST_ANALYSIS_SQL = (
    "(SELECT MAX(a.analysis_date) FROM analyst_actions a WHERE a.stock_id = s.stock_id)"
)

_ORDER_BY: dict[SortMode, str] = {
    SortMode.NEWEST:          "s.updated_at DESC, s.symbol ASC",
    SortMode.OLDEST:          "s.updated_at ASC, s.symbol ASC",
    SortMode.TICKER_A_Z:      "s.symbol ASC",
    SortMode.COMPANY_A_Z:     "s.name ASC, s.symbol ASC",
    SortMode.ANALYSIS_NEWEST: "latest_analysis_date IS NULL, latest_analysis_date DESC, s.symbol ASC",
    SortMode.ANALYSIS_OLDEST: "latest_analysis_date IS NULL, latest_analysis_date ASC, s.symbol ASC",
}


class StockFilters(BaseModel):
    """Normalised stock list filters."""

    model_config = ConfigDict(frozen=True)

    action_kind: Optional[ActionKind] = None
    brokerage: str = ""
    sort: SortMode = DEFAULT_SORT_MODE

    @classmethod
    def from_params(
        cls,
        action: Optional[str] = None,
        brokerage: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> "StockFilters":
        """Build filters from raw caller values, silently dropping invalid ones."""
        text = (brokerage or "").strip()
        if text.lower() == ALL_VALUE:
            text = ""
        return cls(
            action_kind=parse_action_kind(action),
            brokerage=text,
            sort=parse_sort_mode(sort),
        )


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


def build_predicates(filters: StockFilters) -> tuple[str, list[Any]]:
    """Compose the WHERE clause for ``filters``.

    Returns:
        ``(where_sql, params)``; ``where_sql`` is ``""`` when no filter applies.
    """
    clauses: list[str] = []
    params: list[Any] = []

    if filters.action_kind is not None:
        clauses.append(
            "EXISTS (SELECT 1 FROM analyst_actions a "
            "WHERE a.stock_id = s.stock_id AND LOWER(a.action) LIKE ?)"
        )
        params.append(f"%{filters.action_kind.phrase}%")

    if filters.brokerage:
        clauses.append(
            "EXISTS (SELECT 1 FROM analyst_actions a "
            "WHERE a.stock_id = s.stock_id AND casefold(a.brokerage) LIKE ? ESCAPE '\\')"
        )
        params.append(f"%{_escape_like(filters.brokerage.casefold())}%")

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


class StockQueries(BaseRepository):
    """Read-only queries over stocks, actions and scores.

    Args:
        conn:   Open connection.
        config: Query limits; defaults to ``QueryConfig()``.
    """

    def __init__(self, conn: sqlite3.Connection, config: Optional[QueryConfig] = None) -> None:
        super().__init__(conn)
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        self.config = config or QueryConfig()
        self._actions = AnalystActionRepository(conn)

    def _page_params(self, page: Any, page_size: Any) -> tuple[int, int]:
        return (
            normalize_page(page),
            normalize_page_size(
                page_size,
                default=self.config.default_page_size,
                maximum=self.config.max_page_size,
            ),
        )

    def list_stocks(
        self,
        page: Any = None,
        page_size: Any = None,
        filters: Optional[StockFilters] = None,
    ) -> Page[StockView]:
        """Return one page of stocks, each with its newest actions.

        Args:
            page:      Requested page (invalid → 1).
            page_size: Requested size (invalid or out of range → default).
            filters:   Normalised filters; ``None`` → no filter, ticker order.

        Returns:
            Page of ``StockView`` in the requested order.
        """
        filters = filters or StockFilters()
        page_no, size = self._page_params(page, page_size)
        where_sql, params = build_predicates(filters)

        total = int(self.scalar(f"SELECT COUNT(*) FROM stocks s {where_sql};", params))
        meta = PaginationMeta.build(page_no, size, total)

        # Phase 1: stock identity and order
        rows = self.fetchall(
            f"""
            SELECT s.*, {_LATEST_ANALYSIS_SQL} AS latest_analysis_date
            FROM stocks s
            {where_sql}
            ORDER BY {_ORDER_BY[filters.sort]}
            LIMIT ? OFFSET ?;
            """,
            (*params, size, meta.offset),
        )
        stocks = [row_to_stock(r) for r in rows]

        # Phase 2: bounded child rows, attached without reordering
        latest = self._actions.get_latest_for_stocks(
            [s.stock_id for s in stocks], self.config.list_actions_per_stock
        )
        views = [StockView(stock=s, latest_actions=latest[s.stock_id]) for s in stocks]
        return Page[StockView](data=views, meta=meta)

    def get_stock(self, symbol: str) -> Optional[StockView]:
        """Return a stock with its newest ``detail_actions`` actions, or ``None``."""
        stock = StockRepository(self.conn).get_by_symbol(symbol)
        if stock is None:
            return None
        actions = self._actions.get_latest(stock.stock_id, self.config.detail_actions)
        return StockView(stock=stock, latest_actions=actions)

    def list_recommendations(self, page: Any = None, page_size: Any = None) -> Page[RecommendationView]:
        """Return scored stocks ordered by total score, highest first."""
        page_no, size = self._page_params(page, page_size)
        total = int(self.scalar("SELECT COUNT(*) FROM recommendation_scores;"))
        meta = PaginationMeta.build(page_no, size, total)

        rows = self.fetchall(
            """
            SELECT rs.*,
                   s.symbol     AS stock_symbol,
                   s.name       AS stock_name,
                   s.created_at AS stock_created_at,
                   s.updated_at AS stock_updated_at
            FROM recommendation_scores rs
            JOIN stocks s ON s.stock_id = rs.stock_id
            ORDER BY rs.total_score DESC, s.symbol ASC
            LIMIT ? OFFSET ?;
            """,
            (size, meta.offset),
        )
        latest = self._actions.get_latest_for_stocks(
            [int(r["stock_id"]) for r in rows], self.config.detail_actions
        )
        views = []
        for row in rows:
            stock = Stock(
                stock_id=row["stock_id"],
                symbol=row["stock_symbol"],
                name=row["stock_name"],
                created_at=parse_timestamp(row["stock_created_at"]),
                updated_at=parse_timestamp(row["stock_updated_at"]),
            )
            views.append(
                RecommendationView(
                    score=row_to_score(row),
                    stock=StockView(stock=stock, latest_actions=latest[stock.stock_id]),
                )
            )
        return Page[RecommendationView](data=views, meta=meta)

    def filter_options(self) -> FilterOptions:
        """Return the choices for every stock list filter.

        Action kinds are the distinct stored actions collapsed onto their
        normalised value (first label wins); brokerages are listed verbatim.
        Both lists start with an ``"all"`` entry.
        """
        action_kinds = [FilterOption(label="All actions", value=ALL_VALUE)]
        seen = {ALL_VALUE}
        for row in self.fetchall(
            "SELECT DISTINCT action FROM analyst_actions WHERE action != '' ORDER BY action;"
        ):
            value = action_kind_value(row["action"])
            if value in seen:
                continue
            seen.add(value)
            action_kinds.append(FilterOption(label=action_kind_label(row["action"]), value=value))

        brokerages = [FilterOption(label="All brokerages", value=ALL_VALUE)]
        for row in self.fetchall(
            "SELECT DISTINCT brokerage FROM analyst_actions WHERE brokerage != '' ORDER BY brokerage;"
        ):
            brokerages.append(FilterOption(label=row["brokerage"], value=row["brokerage"]))

        sort_modes = [FilterOption(label=mode.label, value=mode.value) for mode in SortMode]
        return FilterOptions(action_kinds=action_kinds, brokerages=brokerages, sort_modes=sort_modes)
