"""
Analyst Tracker — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Build a ``StockService`` (or open the DB directly for ``init-db``).
  4. Execute the action and report the result to stdout.

Exit codes: 0 success, 1 error, 2 sync rejected (running or cooling down).

Install and run::

    pip install -e .
    analyst-tracker --help
    analyst-tracker init-db
    analyst-tracker sync
    analyst-tracker list-stocks --sort analysis-newest --action raised
    analyst-tracker recommendations --page-size 10
    analyst-tracker export-recommendations --output data/exports/recs.csv
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="analyst-tracker",
    help="Analyst rating and price-target tracker — ingestion, scoring and queries.",
    add_completion=False,
)

EXIT_CONFLICT = 2


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from analyst_tracker.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from analyst_tracker.utils.logging import configure_logging
    configure_logging(config.logging)


def _build_service(config, db_path: Optional[str] = None, fixture: bool = False):
    """Build a StockService, optionally backed by the offline fixture feed."""
    from analyst_tracker.ingestion.feed_client import FixtureFeedClient
    from analyst_tracker.service import StockService

    factory = FixtureFeedClient if fixture else None
    return StockService(config, client_factory=factory, db_path=db_path)


def _echo_json(model) -> None:
    """Print a pydantic model (or list of models) as indented JSON."""
    if isinstance(model, list):
        payload = [m.model_dump(mode="json") for m in model]
    else:
        payload = model.model_dump(mode="json")
    typer.echo(json.dumps(payload, indent=2))


def _echo_sync_result(result) -> None:
    """Print the counters of a finished ``SyncResult``."""
    typer.echo(f"Sync finished: status={result.status}")
    typer.echo(f"  Pages:             {result.pages}")
    typer.echo(f"  Items:             {result.items_seen}")
    typer.echo(f"  Actions inserted:  {result.actions_inserted}")
    typer.echo(f"  Actions updated:   {result.actions_updated}")
    typer.echo(f"  Actions unchanged: {result.actions_unchanged}")
    typer.echo(f"  Actions pruned:    {result.actions_pruned}")
    typer.echo(f"  Scores written:    {result.scores_written}")
    typer.echo(f"  Items failed:      {result.items_failed}")
    for err in result.errors[:10]:
        typer.echo(f"    - {err}")


def _wait_for_background(trigger) -> None:
    """Join a background sync; exit 1 if its drain raised."""
    trigger.thread.join()
    if trigger.result is not None:
        _echo_sync_result(trigger.result)
    if trigger.failed:
        typer.echo(f"[ERROR] {trigger.error}", err=True)
        raise typer.Exit(code=1)


_CONFIG_OPTION = typer.Option(None, "--config", help="Path to TOML config file.")
_DB_PATH_OPTION = typer.Option(None, "--db-path", help="Override DB path from config.")


# ── Setup commands ────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Initialize the SQLite database, apply the schema and seed the sync process row.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from analyst_tracker.db.connection import get_connection
    from analyst_tracker.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(
            conn,
            process_name=config.sync.process_name,
            interval_minutes=config.sync.interval_minutes,
        )

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo(f"  Process row: {config.sync.process_name} "
               f"(interval {config.sync.interval_minutes} min)")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = _CONFIG_OPTION,
    show_full: bool = typer.Option(False, "--full", help="Print full config as JSON."),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Feed URL:         {config.feed.base_url}")
    typer.echo(f"  Feed token:       {'set' if config.feed.token else 'NOT SET'}")
    typer.echo(f"  Sync process:     {config.sync.process_name}")
    typer.echo(f"  Sync interval:    {config.sync.interval_minutes} min")
    typer.echo(f"  Retention:        {config.sync.retention_limit} actions/stock")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        dumped = config.model_dump()
        if dumped["feed"].get("token"):
            dumped["feed"]["token"] = "***"
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(dumped, indent=2, default=str))


# ── Sync control ──────────────────────────────────────────────────────────────

@app.command("sync")
def sync(
    fixture: bool = typer.Option(
        False, "--fixture", help="Use the built-in offline fixture feed."
    ),
    background: bool = typer.Option(
        False, "--background", help="Return after admission; drain on a background thread."
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Run a full feed sync under the process guard."""
    from analyst_tracker.errors import FeedError, ProcessNotConfiguredError, SyncConflictError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    service = _build_service(config, db_path, fixture)

    try:
        if background:
            trigger = service.trigger_sync()
            if not trigger.accepted:
                typer.echo(f"[CONFLICT] {trigger.message}", err=True)
                raise typer.Exit(code=EXIT_CONFLICT)
            typer.echo(f"{trigger.message} Waiting for it to finish...")
            _wait_for_background(trigger)
            typer.echo("[OK] Sync complete.")
            return
        result = service.run_sync()
    except SyncConflictError as exc:
        typer.echo(f"[CONFLICT] {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFLICT)
    except (FeedError, ProcessNotConfiguredError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    _echo_sync_result(result)
    typer.echo("[OK] Sync complete.")


@app.command("can-sync")
def can_sync(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Report whether a sync may start now (exit 2 if not)."""
    from analyst_tracker.errors import ProcessNotConfiguredError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    try:
        allowed = _build_service(config, db_path).can_start_sync()
    except ProcessNotConfiguredError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    if not allowed:
        typer.echo("Sync cannot start: running or cooling down.")
        raise typer.Exit(code=EXIT_CONFLICT)
    typer.echo("[OK] Sync can start.")


@app.command("force-stop")
def force_stop(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Clear a stuck sync running flag (does not stop an in-flight run)."""
    from analyst_tracker.errors import ProcessNotConfiguredError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    try:
        _build_service(config, db_path).force_stop()
    except ProcessNotConfiguredError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo("[OK] Sync running flag cleared.")


@app.command("refresh")
def refresh(
    symbol: str = typer.Argument(..., help="Ticker symbol of a tracked stock."),
    fixture: bool = typer.Option(False, "--fixture", help="Use the offline fixture feed."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Refresh a tracked stock (runs a full feed sync)."""
    from analyst_tracker.errors import ProcessNotConfiguredError, StockNotFoundError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    try:
        trigger = _build_service(config, db_path, fixture).refresh_one(symbol)
    except (StockNotFoundError, ProcessNotConfiguredError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    if not trigger.accepted:
        typer.echo(f"[CONFLICT] {trigger.message}", err=True)
        raise typer.Exit(code=EXIT_CONFLICT)
    _wait_for_background(trigger)
    typer.echo("[OK] Refresh complete.")


@app.command("start-scheduler")
def start_scheduler(
    poll_minutes: Optional[float] = typer.Option(
        None, "--poll-minutes", help="Override scheduler poll period."
    ),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Run periodic syncs until interrupted (Ctrl-C / SIGTERM)."""
    from analyst_tracker.scheduler import SyncScheduler

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    scheduler = SyncScheduler(
        _build_service(config, db_path),
        poll_minutes=poll_minutes or config.scheduler.poll_minutes,
    )
    scheduler.start()


# ── Queries ───────────────────────────────────────────────────────────────────

@app.command("list-stocks")
def list_stocks(
    page: Optional[str] = typer.Option(None, "--page", help="Page number (default 1)."),
    page_size: Optional[str] = typer.Option(None, "--page-size", help="Items per page (1-100)."),
    action: Optional[str] = typer.Option(None, "--action", help="Action kind filter, e.g. raised."),
    brokerage: Optional[str] = typer.Option(None, "--brokerage", help="Brokerage substring."),
    sort: Optional[str] = typer.Option(None, "--sort", help="Sort mode, e.g. analysis-newest."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List stocks with their latest analyst actions as JSON."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    result = _build_service(config, db_path).list_stocks(
        page, page_size, action=action, brokerage=brokerage, sort=sort
    )
    _echo_json(result)


@app.command("show-stock")
def show_stock(
    symbol: str = typer.Argument(..., help="Ticker symbol."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Show one stock with its latest analyst actions as JSON."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    view = _build_service(config, db_path).get_stock(symbol)
    if view is None:
        typer.echo(f"[ERROR] Stock '{symbol.strip().upper()}' not found.", err=True)
        raise typer.Exit(code=1)
    _echo_json(view)


@app.command("recommendations")
def recommendations(
    page: Optional[str] = typer.Option(None, "--page", help="Page number (default 1)."),
    page_size: Optional[str] = typer.Option(None, "--page-size", help="Items per page (1-100)."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """List recommendations ordered by score as JSON."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _echo_json(_build_service(config, db_path).list_recommendations(page, page_size))


@app.command("filter-options")
def filter_options(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print available action, brokerage and sort filter values as JSON."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _echo_json(_build_service(config, db_path).filter_options())


@app.command("overview")
def overview(
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Print market overview analytics as JSON."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    _echo_json(_build_service(config, db_path).overview())


@app.command("export-recommendations")
def export_recommendations(
    output: str = typer.Option(..., "--output", help="Destination file path."),
    fmt: str = typer.Option("csv", "--format", help="csv or json."),
    page_size: Optional[str] = typer.Option(None, "--limit", help="Number of top recommendations."),
    db_path: Optional[str] = _DB_PATH_OPTION,
    config_path: Optional[str] = _CONFIG_OPTION,
) -> None:
    """Export the top recommendations as a flat CSV or JSON file."""
    from analyst_tracker.reporting.export import (
        RECOMMENDATION_COLUMNS,
        export_to_csv,
        export_to_json,
        flatten_recommendations_for_export,
    )

    fmt = fmt.lower()
    if fmt not in ("csv", "json"):
        typer.echo(f"[ERROR] Unknown format '{fmt}'. Use csv or json.", err=True)
        raise typer.Exit(code=1)

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    result = _build_service(config, db_path).list_recommendations(1, page_size)
    rows = flatten_recommendations_for_export(result.data)

    path = Path(output)
    if fmt == "csv":
        export_to_csv(rows, path, fieldnames=RECOMMENDATION_COLUMNS)
    else:
        export_to_json(rows, path)
    typer.echo(f"[OK] Exported {len(rows)} recommendation(s) to {path}")
