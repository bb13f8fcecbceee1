"""
Pagination primitives.

Caller-supplied page numbers and sizes are never rejected: anything that is
not a positive integer (or a size above the maximum) is replaced by the
default. ``total_pages`` is at least 1, so an empty result still reports
page 1 of 1.
"""

from __future__ import annotations

import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def normalize_page(value: Any) -> int:
    """Return ``value`` as a page number ≥ 1, defaulting to 1."""
    page = _as_int(value)
    if page is None or page < 1:
        return DEFAULT_PAGE
    return page


def normalize_page_size(
    value: Any,
    default: int = DEFAULT_PAGE_SIZE,
    maximum: int = MAX_PAGE_SIZE,
) -> int:
    """Return ``value`` as a page size in ``1..maximum``, else ``default``."""
    size = _as_int(value)
    if size is None or size < 1 or size > maximum:
        return default
    return size


class PaginationMeta(BaseModel):
    """Pagination metadata accompanying every paged result."""

    model_config = ConfigDict(frozen=True)

    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page: int, page_size: int, total_items: int) -> "PaginationMeta":
        total_pages = max(1, math.ceil(total_items / page_size))
        return cls(
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Page(BaseModel, Generic[T]):
    """One page of results."""

    model_config = ConfigDict(frozen=True)

    data: list[T] = Field(default_factory=list)
    meta: PaginationMeta
