"""Click-based CLI for ZenSync - local mirror of a ZenMoney account."""

from __future__ import annotations

import functools
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional

import click
import yaml
from rich.logging import RichHandler

from zensync import __version__
from zensync.config import (
    ZenSyncConfig,
    ensure_config_exists,
    get_config_path,
    load_config,
    load_config_or_default,
    validate_config_file,
)
from zensync.config.schema import StorageBackend
from zensync.errors import ZenSyncError
from zensync.models.diff import SuggestRequest
from zensync.output import Console, create_console
from zensync.query import QueryView
from zensync.sync import FileSnapshotStore, MemorySnapshotStore, SnapshotStore, SyncEngine
from zensync.transport import create_transport

logger = logging.getLogger("zensync")

DATE_FORMATS = ["%Y-%m-%d"]


def _setup_logging(verbose: bool, log_file: Optional[str] = None) -> None:
    """Route library logging to the terminal, and to a file when configured."""
    handlers: list[logging.Handler] = [RichHandler(show_path=False, rich_tracebacks=verbose)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        handlers.append(file_handler)

    logger.handlers.clear()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _exit_on_error(func: Callable) -> Callable:
    """Print library and configuration errors and exit with status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ZenSyncError, FileNotFoundError, ValueError) as e:
            ctx = click.get_current_context()
            _console(ctx).print_error(str(e))
            ctx.exit(1)

    return wrapper


def _console(ctx: click.Context) -> Console:
    obj = ctx.find_root().obj or {}
    return obj.get("console") or create_console()


def _config(ctx: click.Context) -> ZenSyncConfig:
    """Configuration with command line overrides applied."""
    obj = ctx.find_root().obj
    config = load_config_or_default()
    if obj.get("data_dir"):
        config.storage.backend = StorageBackend.FILE
        config.storage.path = str(Path(obj["data_dir"]).expanduser())
    return config


def _open_store(config: ZenSyncConfig) -> SnapshotStore:
    if config.storage.backend == StorageBackend.MEMORY:
        return MemorySnapshotStore()
    return FileSnapshotStore(Path(config.storage.path))


def _resolve_id(view: QueryView, entity_type: str, value: str) -> str:
    """Accept either an id or a title."""
    record = view.get(entity_type, value)
    if record is None:
        record = view.find_by_title(entity_type, value)
    if record is None:
        raise ValueError(f"No {entity_type} with id or title '{value}'")
    return record.key


def _as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value else None


@click.group()
@click.version_option(version=__version__, prog_name="zensync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging and details")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Override the snapshot directory",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, data_dir: Optional[Path]) -> None:
    """ZenSync - local mirror of a ZenMoney account.

    Keeps a cached copy of accounts, transactions and tags in sync with the
    server using the checkpointed diff protocol.

    \b
    Sync:     zensync diff | zensync full-sync
    Browse:   zensync accounts | transactions | tags
    Config:   zensync config init | show | validate
    """
    try:
        output = load_config_or_default().output
    except (ValueError, OSError):
        output = None
    verbose = verbose or bool(output and output.verbose)
    colored = output.colored if output else True

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["data_dir"] = data_dir
    ctx.obj["console"] = create_console(verbose=verbose, colored=colored)
    _setup_logging(verbose, output.log_file if output else None)


@cli.command("diff")
@click.pass_context
@_exit_on_error
def diff_cmd(ctx: click.Context) -> None:
    """Fetch changes since the last sync and merge them into the cache."""
    console = _console(ctx)
    config = _config(ctx)

    with create_transport(config.api) as transport:
        engine = SyncEngine.from_config(config, transport, store=_open_store(config))
        result = engine.incremental_sync()

    console.print_sync_result(result)


@cli.command("full-sync")
@click.pass_context
@_exit_on_error
def full_sync_cmd(ctx: click.Context) -> None:
    """Download everything and replace the cached listing.

    Cached records the server no longer lists are removed unless
    sync.full_sync_absence_deletes is disabled.
    """
    console = _console(ctx)
    config = _config(ctx)

    with create_transport(config.api) as transport:
        engine = SyncEngine.from_config(config, transport, store=_open_store(config))
        result = engine.full_sync()

    console.print_sync_result(result)


@cli.command()
@click.option("--all", "-a", "show_all", is_flag=True, help="Include archived accounts")
@click.pass_context
@_exit_on_error
def accounts(ctx: click.Context, show_all: bool) -> None:
    """List cached accounts."""
    config = _config(ctx)
    view = QueryView.latest(_open_store(config))

    query = view.accounts() if show_all else view.accounts().active()
    _console(ctx).print_accounts(query.all())


@cli.command()
@click.option("--from", "start", type=click.DateTime(formats=DATE_FORMATS), help="First date (YYYY-MM-DD)")
@click.option("--to", "end", type=click.DateTime(formats=DATE_FORMATS), help="Last date (YYYY-MM-DD)")
@click.option("--account", help="Account id or title")
@click.option("--tag", help="Tag id or title")
@click.option("--merchant", help="Merchant id or title")
@click.option("--payee", help="Payee substring, case-insensitive")
@click.option("--min", "minimum", type=float, help="Minimum amount")
@click.option("--max", "maximum", type=float, help="Maximum amount")
@click.option("--limit", "-n", default=50, show_default=True, help="Number of transactions to show")
@click.pass_context
@_exit_on_error
def transactions(
    ctx: click.Context,
    start: Optional[datetime],
    end: Optional[datetime],
    account: Optional[str],
    tag: Optional[str],
    merchant: Optional[str],
    payee: Optional[str],
    minimum: Optional[float],
    maximum: Optional[float],
    limit: int,
) -> None:
    """List cached transactions, newest first."""
    console = _console(ctx)
    config = _config(ctx)
    view = QueryView.latest(_open_store(config))

    query = view.transactions().active()
    if start or end:
        query = query.in_date_range(_as_date(start) or date.min, _as_date(end) or date.max)
    if account:
        query = query.for_account(_resolve_id(view, "account", account))
    if tag:
        query = query.has_tag(_resolve_id(view, "tag", tag))
    if merchant:
        query = query.has_merchant(_resolve_id(view, "merchant", merchant))
    if payee:
        query = query.payee_contains(payee)
    if minimum is not None or maximum is not None:
        query = query.amount_between(
            minimum if minimum is not None else float("-inf"),
            maximum if maximum is not None else float("inf"),
        )

    rows = sorted(query, key=lambda t: t.date or date.min, reverse=True)
    tags = {t.key: t for t in view.tags()}
    console.print_transactions(rows[:limit], tags=tags)

    if len(rows) > limit:
        console.print(f"[dim]Showing {limit} of {len(rows)}. Use --limit to see more.[/dim]")
    if rows:
        console.print(f"Total: [bold]{sum(t.amount or 0.0 for t in rows):,.2f}[/bold]")


@cli.command()
@click.pass_context
@_exit_on_error
def tags(ctx: click.Context) -> None:
    """List cached tags."""
    config = _config(ctx)
    view = QueryView.latest(_open_store(config))
    _console(ctx).print_tags(view.tags().all())


@cli.command()
@click.option("--payee", help="Payee text as it appears on the statement")
@click.option("--comment", help="Transaction comment")
@click.pass_context
@_exit_on_error
def suggest(ctx: click.Context, payee: Optional[str], comment: Optional[str]) -> None:
    """Ask the server to normalise a payee and suggest tags."""
    if not payee and not comment:
        raise click.UsageError("Give --payee or --comment")

    config = _config(ctx)
    view = QueryView.latest(_open_store(config))

    with create_transport(config.api) as transport:
        if not transport.supports_suggest:
            raise ZenSyncError(f"{transport.__class__.__name__} does not support suggest")
        suggestion = transport.suggest(SuggestRequest(payee=payee, comment=comment))

    _console(ctx).print_suggestion(suggestion, tags={t.key: t for t in view.tags()})


@cli.command()
@click.pass_context
@_exit_on_error
def status(ctx: click.Context) -> None:
    """Show the last checkpoint and cached record counts."""
    config = _config(ctx)
    store = _open_store(config)
    _console(ctx).print_status(store.read_snapshot(), [])


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
@_exit_on_error
def reset(ctx: click.Context, yes: bool) -> None:
    """Drop the cached snapshot so the next sync starts from scratch."""
    console = _console(ctx)
    config = _config(ctx)

    if not yes and not click.confirm("Delete all cached data?", default=False):
        console.print_info("Aborted")
        return

    _open_store(config).clear()
    console.print_success("Cache cleared")


@cli.group()
def config() -> None:
    """Manage ZenSync configuration."""
    pass


@config.command("init")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing configuration")
@click.pass_context
@_exit_on_error
def config_init(ctx: click.Context, force: bool) -> None:
    """Create a default configuration file."""
    console = _console(ctx)
    config_path = get_config_path()

    if config_path.exists():
        if not force:
            console.print_warning(f"Configuration already exists: {config_path}")
            console.print("Use --force to overwrite.")
            return
        config_path.unlink()

    path, _ = ensure_config_exists(config_path)
    console.print_success(f"Created configuration: {path}")


@config.command("show")
@click.pass_context
@_exit_on_error
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    console = _console(ctx)
    cfg = load_config(get_config_path())

    console.print_config_summary(str(get_config_path()), cfg.storage.path, cfg.api.resolve_token() is not None)

    data = cfg.model_dump(mode="json", exclude_none=True)
    if data["api"].get("token"):
        data["api"]["token"] = "***"
    console.print(yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True))


@config.command("validate")
@click.pass_context
def config_validate(ctx: click.Context) -> None:
    """Validate the configuration file."""
    console = _console(ctx)
    config_path = get_config_path()
    is_valid, errors = validate_config_file(config_path)

    if is_valid:
        console.print_success(f"Configuration is valid: {config_path}")
        return

    console.print_error(f"Configuration is invalid: {config_path}")
    for error in errors:
        console.print(f"  [red]•[/red] {error}")
    ctx.exit(1)


if __name__ == "__main__":
    cli()
