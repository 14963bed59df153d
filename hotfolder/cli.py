"""CLI entry point for the hot folder ingestion engine.

Commands:
    hotfolder watch   — poll a folder tree and hand stable files to a handler
    hotfolder audit   — show recent per-file outcomes
"""

import asyncio
import logging
import sys

import click

from hotfolder.config import (
    HOTFOLDER_AUDIT_LOG_PATH,
    HOTFOLDER_BASE_PATH,
    HOTFOLDER_HANDLER,
    HOTFOLDER_PASSWORD,
    HOTFOLDER_PATTERNS,
    HOTFOLDER_POOL_SIZE,
    HOTFOLDER_URL,
    HOTFOLDER_USERNAME,
)

logger = logging.getLogger("hotfolder")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Hotfolder: staged incoming/processing/success ingestion for shared folders."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# ------------------------------------------------------------------
# hotfolder watch
# ------------------------------------------------------------------


def _validate_watch_config(url: str, handler: str) -> None:
    """Fail loudly if the watch config is unusable."""
    from hotfolder.store.base import StoreError
    from hotfolder.store.local import root_from_url

    if not url:
        click.echo("Error: --url is required (or set HOTFOLDER_URL).", err=True)
        sys.exit(1)
    try:
        root = root_from_url(url)
    except StoreError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if not root.is_dir():
        click.echo(f"Error: Store root does not exist: {root}", err=True)
        sys.exit(1)
    if not handler:
        click.echo("Error: --handler is required (or set HOTFOLDER_HANDLER).", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--url",
    default=HOTFOLDER_URL,
    show_default=True,
    help="Store root: a local path, a mounted share, or file:///path.",
)
@click.option("--base-path", default=HOTFOLDER_BASE_PATH, show_default=True, help="Prefix inside the store.")
@click.option(
    "--handler",
    default=HOTFOLDER_HANDLER,
    show_default=True,
    help="Handler reference, e.g. 'myapp.ingest:handle_file'.",
)
@click.option(
    "--patterns",
    default=HOTFOLDER_PATTERNS,
    show_default=True,
    help="Comma-separated include regexes (e.g. '\\.pdf$,\\.txt$').",
)
@click.option("--extensions", default="", help="Comma-separated extension allow-list (e.g. '.pdf,.txt').")
@click.option("--min-size", default=0, show_default=True, help="Minimum file size in bytes.")
@click.option("--checks", default=2, show_default=True, help="Stability checks required.")
@click.option("--interval", default=1000, show_default=True, help="Milliseconds between stability checks.")
@click.option("--timeout", default=300_000, show_default=True, help="Handler timeout in milliseconds.")
@click.option("--once", is_flag=True, help="Drain the incoming folder once and exit.")
def watch(
    url: str,
    base_path: str,
    handler: str,
    patterns: str,
    extensions: str,
    min_size: int,
    checks: int,
    interval: int,
    timeout: int,
    once: bool,
) -> None:
    """Watch a hot folder and process files as they finish arriving."""
    _validate_watch_config(url, handler)

    from pydantic import ValidationError

    from hotfolder.schemas.hotfolder import HotFolderConfig

    filters: dict = {"min_size": min_size}
    name_patterns = [p.strip() for p in patterns.split(",") if p.strip()]
    if name_patterns:
        filters["name_patterns"] = name_patterns
    ext_list = [e.strip() for e in extensions.split(",") if e.strip()]
    if ext_list:
        filters["extensions"] = ext_list

    try:
        config = HotFolderConfig(
            connection={
                "url": url,
                "username": HOTFOLDER_USERNAME or None,
                "password": HOTFOLDER_PASSWORD or None,
                "pool_size": HOTFOLDER_POOL_SIZE,
            },
            base_path=base_path,
            filters=filters,
            stability={"checks": checks, "interval": interval},
            handler=handler,
            handler_timeout=timeout,
        )
    except ValidationError as exc:
        click.echo(f"Error: Invalid hot folder config:\n{exc}", err=True)
        sys.exit(1)

    asyncio.run(_watch_async(config, once))


async def _watch_async(config, once: bool) -> None:
    from hotfolder.engine.audit import HotFolderAuditLog
    from hotfolder.engine.poller import HotFolder
    from hotfolder.schemas.hotfolder import PollOutcome
    from hotfolder.store.local import LocalStore, root_from_url

    store = LocalStore(root_from_url(config.connection.url))
    audit_log = HotFolderAuditLog(HOTFOLDER_AUDIT_LOG_PATH)
    hot_folder = HotFolder(config, store, audit_log=audit_log)

    if once:
        click.echo(f"Draining {hot_folder.dirs['incoming']} (once mode)…")
        await hot_folder.prepare()
        while True:
            outcome = await hot_folder.poll_once()
            if outcome not in (PollOutcome.PROCESSED, PollOutcome.FAILED):
                break
        stats = hot_folder.stats()
        click.echo(f"Done. Processed: {stats.files_processed}, Failed: {stats.files_failed}")
        return

    click.echo(f"Watching {hot_folder.dirs['incoming']} under {store.root} (Ctrl+C to stop)…")
    await hot_folder.start()
    try:
        await hot_folder.run_until_stopped()
    except (asyncio.CancelledError, KeyboardInterrupt):
        pass
    finally:
        await hot_folder.stop("shutdown")
        stats = hot_folder.stats()
        click.echo(f"Stopped. Processed: {stats.files_processed}, Failed: {stats.files_failed}")


# ------------------------------------------------------------------
# hotfolder audit
# ------------------------------------------------------------------


@cli.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Number of recent events to show.")
@click.option(
    "--outcome",
    type=click.Choice(["processed", "renamed", "failed"], case_sensitive=False),
    default=None,
    help="Only show events with this outcome.",
)
@click.option("--file", "file_name", default=None, help="Only show events for this file name.")
def audit(limit: int, outcome: str | None, file_name: str | None) -> None:
    """Show recent hot folder file outcomes."""
    from hotfolder.engine.audit import HotFolderAuditLog
    from hotfolder.schemas.hotfolder import FileOutcome

    audit_log = HotFolderAuditLog(HOTFOLDER_AUDIT_LOG_PATH)
    entries = audit_log.read_entries(
        outcome=FileOutcome(outcome.lower()) if outcome else None,
        file_name=file_name,
        limit=limit,
    )
    if not entries:
        click.echo("No audit events.")
        return

    for event in entries:
        when = event.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        line = f"{when}  {event.outcome.value:<9} {event.file_name} ({event.size_bytes} B)"
        if event.destination:
            line += f" -> {event.destination}"
        if event.error_message:
            line += f"  [{event.error_message}]"
        click.echo(line)

    totals = audit_log.counts()
    click.echo("Totals: " + ", ".join(f"{o.value} {n}" for o, n in totals.items()))
