"""
Exception types raised by the sync pipeline, the store and the query layer.

Taxonomy:
  - ``ProcessNotConfiguredError`` — the ProcessControl row for a guarded
    process is missing. A deployment defect; never retried.
  - ``SyncConflictError`` — a sync is already running or still in its
    cooldown window. A rejection reported to the caller, not a failure.
  - ``FeedError`` — transport failure, non-success status or undecodable
    page from the upstream feed. Aborts the whole sync run.
  - ``StoreError`` — a SQLite failure wrapped with the operation and key
    that triggered it.
  - ``StockNotFoundError`` — an operation addressed an unknown symbol.

All types subclass ``RuntimeError`` and keep their context as attributes so
callers can report them without parsing messages.
"""

from __future__ import annotations

from typing import Any, Optional


class ProcessNotConfiguredError(RuntimeError):
    """Raised when no ProcessControl row exists for a guarded process.

    Attributes:
        process_name: Name of the missing process row.
    """

    def __init__(self, process_name: str) -> None:
        self.process_name = process_name
        super().__init__(
            f"Process '{process_name}' is not configured.  "
            "Run 'analyst-tracker init-db' to create the process_control row."
        )


class SyncConflictError(RuntimeError):
    """Raised when a sync cannot start because another one owns the guard.

    Attributes:
        process_name: Name of the guarded process.
        reason:       Short explanation (running, cooldown, lost race).
    """

    def __init__(self, process_name: str, reason: str) -> None:
        self.process_name = process_name
        self.reason = reason
        super().__init__(f"Process '{process_name}' cannot start: {reason}.")


class FeedError(RuntimeError):
    """Raised when a feed page cannot be fetched or decoded.

    Attributes:
        url:         Request URL (without credentials).
        reason:      What went wrong.
        status_code: HTTP status, when a response was received.
    """

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None) -> None:
        self.url = url
        self.reason = reason
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Feed request to {url} failed{status}: {reason}")


class StoreError(RuntimeError):
    """Raised when a store operation fails at the SQLite layer.

    Attributes:
        operation: Repository operation name, e.g. ``"upsert_action"``.
        key:       Identifying key of the row being written or read.
    """

    def __init__(self, operation: str, key: Any, cause: Exception) -> None:
        self.operation = operation
        self.key = key
        super().__init__(f"Store operation '{operation}' failed for key {key!r}: {cause}")


class StockNotFoundError(RuntimeError):
    """Raised when an operation addresses a symbol that is not in the store.

    Attributes:
        symbol: The normalised ticker symbol.
    """

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        super().__init__(f"Stock '{symbol}' not found.")
