"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``ANALYST_TRACKER_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

The feed bearer token is a secret and never lives in TOML; it is read from
``ANALYST_FEED_TOKEN`` (usually set in ``.env``).
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

FEED_TOKEN_ENV_VAR = "ANALYST_FEED_TOKEN"

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/analyst_tracker.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class FeedConfig(BaseModel):
    """Upstream analyst-action feed settings."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.karenai.click/swechallenge"
    timeout_seconds: float = 30.0
    page_delay_seconds: float = 0.0
    max_pages: int = 0          # 0 → follow cursors until the feed is exhausted
    token: Optional[str] = None

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {v}.")
        return v

    @field_validator("page_delay_seconds", "max_pages")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError(f"Value must be >= 0, got {v}.")
        return v


class SyncConfig(BaseModel):
    """Sync process guard and retention settings."""

    model_config = ConfigDict(frozen=True)

    process_name: str = "stock_sync"
    interval_minutes: int = 5
    retention_limit: int = 10

    @field_validator("interval_minutes")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"interval_minutes must be >= 0, got {v}.")
        return v

    @field_validator("retention_limit")
    @classmethod
    def validate_retention(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"retention_limit must be >= 1, got {v}.")
        return v


class QueryConfig(BaseModel):
    """Pagination and per-stock action limits for the read side."""

    model_config = ConfigDict(frozen=True)

    list_actions_per_stock: int = 3
    detail_actions: int = 5
    default_page_size: int = 20
    max_page_size: int = 100

    @field_validator("list_actions_per_stock", "detail_actions", "default_page_size", "max_page_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be >= 1, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/analyst_tracker.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class SchedulerConfig(BaseModel):
    """Periodic sync scheduler settings."""

    model_config = ConfigDict(frozen=True)

    poll_minutes: float = 1.0

    @field_validator("poll_minutes")
    @classmethod
    def validate_poll(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"poll_minutes must be > 0, got {v}.")
        return v


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    CLI commands, the service facade and the scheduler all receive an
    ``AppConfig`` instance built by ``load_config()``.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    feed: FeedConfig = FeedConfig()
    sync: SyncConfig = SyncConfig()
    query: QueryConfig = QueryConfig()
    logging: LoggingConfig = LoggingConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply ANALYST_TRACKER_* env vars and the feed token to the raw config dict.

    Supported overrides:
      ANALYST_TRACKER_DB_PATH                → raw["database"]["db_path"]
      ANALYST_TRACKER_LOG_LEVEL              → raw["logging"]["level"]
      ANALYST_TRACKER_FEED_BASE_URL          → raw["feed"]["base_url"]
      ANALYST_TRACKER_SYNC_INTERVAL_MINUTES  → raw["sync"]["interval_minutes"]
      ANALYST_TRACKER_DEBUG                  → raw["debug"]
      ANALYST_FEED_TOKEN                     → raw["feed"]["token"]
    """
    if db_path := os.environ.get("ANALYST_TRACKER_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("ANALYST_TRACKER_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if base_url := os.environ.get("ANALYST_TRACKER_FEED_BASE_URL"):
        raw.setdefault("feed", {})["base_url"] = base_url

    if interval := os.environ.get("ANALYST_TRACKER_SYNC_INTERVAL_MINUTES"):
        raw.setdefault("sync", {})["interval_minutes"] = interval

    if debug := os.environ.get("ANALYST_TRACKER_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    if token := os.environ.get(FEED_TOKEN_ENV_VAR):
        raw.setdefault("feed", {})["token"] = token

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        feed=FeedConfig(**raw.get("feed", {})),
        sync=SyncConfig(**raw.get("sync", {})),
        query=QueryConfig(**raw.get("query", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        scheduler=SchedulerConfig(**raw.get("scheduler", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
