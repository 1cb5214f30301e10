"""Command-line entry point for Reelframe."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from .app_context import AppContext, determine_paths, load_context
from .cache import CacheStore
from .catalog import CatalogError, load_catalog
from .config import ConfigError, bootstrap
from .ipc import IPCError, send_ipc_command
from .logging import configure_logging, get_logger, resolve_level
from .remote import refresh_catalog
from .supervisor import FrameSupervisor

app = typer.Typer(help="Reelframe slideshow supervisor and CLI controller.")
console = Console()

_CONFIG_DIR_OPTION = typer.Option(
    None,
    "--config-dir",
    dir_okay=True,
    file_okay=False,
    resolve_path=True,
    help="Base directory for config files (defaults to ~/.reelframe).",
)


def _determine_default_log_level(config_dir: Optional[Path]) -> str:
    config_path = determine_paths(config_dir).config_file
    if not config_path.exists():
        return "INFO"

    try:
        context = load_context(determine_paths(config_dir))
    except ConfigError:
        return "INFO"
    return resolve_level(context.config.runtime.log_level)


def _bootstrap_logging(
    ctx: typer.Context,
    verbose: bool,
    json_logs: bool,
    log_file: Optional[Path],
) -> None:
    """Initialise logging once per CLI invocation."""

    if ctx.obj is None:
        ctx.obj = {}

    if ctx.obj.get("_logging_configured"):
        return

    level = "DEBUG" if verbose else _determine_default_log_level(None)
    ctx.obj["log_level"] = configure_logging(level=level, json_output=json_logs, log_file=log_file)
    ctx.obj["logger"] = get_logger("reelframe.cli")
    ctx.obj["json_logs"] = json_logs
    ctx.obj["log_file_path"] = log_file
    ctx.obj["force_log_level"] = verbose
    ctx.obj["_logging_configured"] = True


@app.callback(invoke_without_command=True)
def cli(  # noqa: D401 - Typer generates help text.
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON-formatted logs."),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        dir_okay=False,
        file_okay=True,
        writable=True,
        resolve_path=True,
        help="Optional file to append structured logs to.",
    ),
) -> None:
    """Reelframe command group."""

    _bootstrap_logging(ctx, verbose, json_logs, log_file)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _logger(ctx: typer.Context):
    return ctx.obj.get("logger", get_logger("reelframe.cli"))


def _maybe_update_log_level(ctx: typer.Context, context: AppContext) -> None:
    if ctx.obj.get("force_log_level"):
        return

    desired = resolve_level(context.config.runtime.log_level)
    log_file = ctx.obj.get("log_file_path") or context.config.runtime.log_file
    if desired != ctx.obj.get("log_level") or log_file != ctx.obj.get("log_file_path"):
        ctx.obj["log_level"] = configure_logging(
            level=desired,
            json_output=ctx.obj.get("json_logs", False),
            log_file=log_file,
        )
        ctx.obj["logger"] = get_logger("reelframe.cli")
        ctx.obj["log_file_path"] = log_file


def _load(ctx: typer.Context, config_dir: Optional[Path], command: str) -> AppContext:
    log = _logger(ctx)
    try:
        context = load_context(determine_paths(config_dir))
    except ConfigError as exc:
        log.error(f"{command}.failed", error=str(exc))
        typer.echo(f"Error loading configuration: {exc}")
        raise typer.Exit(code=1) from exc
    _maybe_update_log_level(ctx, context)
    return context


def _send(ctx: typer.Context, context: AppContext, command: str) -> Dict[str, Any]:
    log = _logger(ctx)
    socket_path = Path(context.config.supervisor.ipc_socket).expanduser()
    try:
        response = send_ipc_command(socket_path, {"command": command})
    except IPCError as exc:
        log.error(f"{command}.ipc_failed", error=str(exc))
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    if response.get("status") != "ok":
        typer.echo(f"Supervisor error: {response.get('message')}")
        raise typer.Exit(code=1)
    return response


def _format_bytes(value: int) -> str:
    gb = value / (1024 ** 3)
    if gb >= 1:
        return f"{gb:.2f} GB"
    return f"{value / (1024 ** 2):.2f} MB"


@app.command()
def init(
    ctx: typer.Context,
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        dir_okay=True,
        file_okay=False,
        writable=True,
        resolve_path=True,
        help="Base directory for config files (defaults to ~/.reelframe).",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config.yml"),
) -> None:
    """Create the configuration directory and a starter config.yml."""

    log = _logger(ctx)
    paths = determine_paths(config_dir)
    try:
        report = bootstrap(paths, overwrite=force)
    except OSError as exc:
        log.error("init.failed", error=str(exc))
        raise typer.Exit(code=1) from exc

    typer.echo(f"Configuration directory: {paths.base_dir}")
    if report.config_created:
        if report.config_overwritten:
            typer.echo(f"Config overwritten at: {paths.config_file}")
        else:
            typer.echo(f"Config created at: {paths.config_file}")
            typer.echo("Set library.photo_root / library.video_root before running 'reelframe scan'.")
    else:
        typer.echo(f"Config already exists at: {paths.config_file}")
        typer.echo("Use --force to regenerate with default values.")

    log.info(
        "init.completed",
        base_dir=str(paths.base_dir),
        config_file=str(paths.config_file),
        force=force,
        base_created=report.base_created,
        state_dir_created=report.state_dir_created,
        cache_dir_created=report.cache_dir_created,
        config_created=report.config_created,
        config_overwritten=report.config_overwritten,
    )


@app.command()
def serve(ctx: typer.Context, config_dir: Optional[Path] = _CONFIG_DIR_OPTION) -> None:
    """Run the slideshow supervisor in the foreground."""

    context = _load(ctx, config_dir, "serve")
    log = _logger(ctx)
    try:
        supervisor = FrameSupervisor(config=context.config, paths=context.paths, logger=log)
        supervisor.run()
    except CatalogError as exc:
        log.error("serve.failed", error=str(exc))
        typer.echo(f"Error opening catalog: {exc}")
        raise typer.Exit(code=1) from exc


@app.command()
def status(ctx: typer.Context, config_dir: Optional[Path] = _CONFIG_DIR_OPTION) -> None:
    """Show what the running supervisor is presenting."""

    context = _load(ctx, config_dir, "status")
    response = _send(ctx, context, "status")

    presentation = response.get("presentation") or {}
    catalog = response.get("catalog") or {}
    current = presentation.get("current") or {}
    media = current.get("media") or {}

    table = Table(title="Reelframe Status")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("State", str(presentation.get("state", "-")))
    table.add_row("Interval", f"{presentation.get('interval_seconds', '-')}s")
    table.add_row("Catalog", f"{catalog.get('total', 0)} items, {catalog.get('cached', 0)} cached")
    if media:
        table.add_row("Current", str(media.get("network_path")))
        table.add_row("Kind", str(media.get("kind")))
        table.add_row("Shown", f"{media.get('times_shown')}x")
        table.add_row(
            "Cache",
            f"{current.get('cache_file_count')} files, {_format_bytes(int(current.get('cache_size_bytes') or 0))}",
        )
        if current.get("outage_active"):
            table.add_row("Remote", f"[red]unreachable until {current.get('outage_until')}[/red]")
    console.print(table)


@app.command("next")
def next_media(ctx: typer.Context, config_dir: Optional[Path] = _CONFIG_DIR_OPTION) -> None:
    """Advance to the next item immediately."""

    context = _load(ctx, config_dir, "next")
    response = _send(ctx, context, "next")
    typer.echo(response.get("message", "Advanced"))


@app.command()
def toggle(ctx: typer.Context, config_dir: Optional[Path] = _CONFIG_DIR_OPTION) -> None:
    """Pause or resume automatic advancing."""

    context = _load(ctx, config_dir, "toggle")
    response = _send(ctx, context, "toggle")
    typer.echo(response.get("message", "Toggled"))


@app.command()
def scan(
    ctx: typer.Context,
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Update the catalog directly instead of asking the running supervisor.",
    ),
    config_dir: Optional[Path] = _CONFIG_DIR_OPTION,
) -> None:
    """Add newly discovered remote media to the catalog."""

    context = _load(ctx, config_dir, "scan")
    log = _logger(ctx)

    if not offline:
        response = _send(ctx, context, "scan")
        typer.echo(response.get("message", "Scanned"))
        return

    try:
        catalog = load_catalog(context.config.runtime.catalog_path, logger=log)
        added = refresh_catalog(catalog, context.config.library, logger=log)
    except CatalogError as exc:
        log.error("scan.failed", error=str(exc))
        typer.echo(f"Error updating catalog: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Added {added} new items ({len(catalog)} total).")


@app.command()
def reconcile(ctx: typer.Context, config_dir: Optional[Path] = _CONFIG_DIR_OPTION) -> None:
    """Repair cache/catalog drift. Run only while the supervisor is stopped."""

    context = _load(ctx, config_dir, "reconcile")
    log = _logger(ctx)
    try:
        catalog = load_catalog(context.config.runtime.catalog_path, logger=log)
        store = CacheStore(
            root=Path(context.config.cache.directory).expanduser(),
            budget_bytes=context.config.cache.limit_bytes,
            catalog=catalog,
            logger=log,
        )
        store.ensure_root_exists()
        report = store.reconcile()
    except CatalogError as exc:
        log.error("reconcile.failed", error=str(exc))
        typer.echo(f"Error reconciling cache: {exc}")
        raise typer.Exit(code=1) from exc
    typer.echo(f"Removed {report.removed_files} files, reset {report.reset_records} catalog entries.")


@app.command("catalog")
def show_catalog(
    ctx: typer.Context,
    cached_only: bool = typer.Option(False, "--cached", help="List only cached items."),
    limit: int = typer.Option(20, "--limit", min=0, help="Maximum rows to list (0 lists none)."),
    config_dir: Optional[Path] = _CONFIG_DIR_OPTION,
) -> None:
    """Summarise the media catalog."""

    context = _load(ctx, config_dir, "catalog")
    log = _logger(ctx)
    try:
        catalog = load_catalog(context.config.runtime.catalog_path, logger=log)
    except CatalogError as exc:
        log.error("catalog.failed", error=str(exc))
        typer.echo(f"Error reading catalog: {exc}")
        raise typer.Exit(code=1) from exc

    summary = catalog.summary()
    console.print(
        f"[bold]{summary['total']}[/bold] items: {summary['cached']} cached, {summary['uncached']} not cached"
    )
    if limit == 0:
        return

    records = catalog.cached_ordered_for_eviction() if cached_only else catalog.records()
    table = Table(title="Catalog")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Shown")
    table.add_column("Source")
    for record in records[:limit]:
        table.add_row(str(record.id), str(record.times_shown), record.source_path)
    console.print(table)


@app.command("cache")
def show_cache(ctx: typer.Context, config_dir: Optional[Path] = _CONFIG_DIR_OPTION) -> None:
    """Report cache usage against its budget."""

    context = _load(ctx, config_dir, "cache")
    log = _logger(ctx)
    try:
        catalog = load_catalog(context.config.runtime.catalog_path, logger=log)
    except CatalogError as exc:
        log.error("cache.failed", error=str(exc))
        typer.echo(f"Error reading catalog: {exc}")
        raise typer.Exit(code=1) from exc

    store = CacheStore(
        root=Path(context.config.cache.directory).expanduser(),
        budget_bytes=context.config.cache.limit_bytes,
        catalog=catalog,
        logger=log,
    )
    total, count = store.current_size()
    typer.echo(f"Cache root: {store.root}")
    typer.echo(f"{count} files, {_format_bytes(total)} of {_format_bytes(store.budget_bytes)}")


if __name__ == "__main__":  # pragma: no cover
    app()
