"""ProcessControl model — persisted guard state for one long-running process."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProcessControl(BaseModel):
    """Single-flight and cooldown state for a named process.

    Attributes:
        process_id:       Database PK.
        process_name:     Unique process name, e.g. ``"stock_sync"``.
        is_running:       True while an execution holds the guard.
        last_execution:   When the last execution finished; ``None`` if never.
        interval_minutes: Minimum minutes between the end of one execution
                          and the start of the next.
    """

    model_config = ConfigDict(frozen=True)

    process_id: Optional[int] = None
    process_name: str
    is_running: bool = False
    last_execution: Optional[datetime] = None
    interval_minutes: int = 5
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
