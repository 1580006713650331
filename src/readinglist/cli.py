"""readinglist CLI — Safari Reading List from the terminal.

Commands:
    readinglist init                 write a default readinglist.toml
    readinglist list                 show the reading list, newest first
    readinglist delete URL           remove an entry from Bookmarks.plist
    readinglist watch                reload periodically, print changes
    readinglist status               config, document and load state
"""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import click

from readinglist import codec
from readinglist.config import ReadingListConfig, init_config, load_config
from readinglist.document import read_bytes
from readinglist.errors import ConfigError, LocationUnavailable, ReadingListError
from readinglist.models import Record, StoreState
from readinglist.navigator import locate_reading_list
from readinglist.store import ReadingListStore

if TYPE_CHECKING:
    from collections.abc import Callable

_LOG_FORMAT = "%(asctime)s %(name)s %(message)s"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(ctx: click.Context, bookmarks: str | None = None) -> ReadingListConfig:
    try:
        cfg = load_config(ctx.obj.get("config_path"))
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    if bookmarks:
        cfg.document.path = bookmarks
    return cfg


def _setup_logging(cfg: ReadingListConfig, verbose: bool) -> None:
    level = "DEBUG" if verbose else cfg.logging.level
    logging.basicConfig(level=level, format=_LOG_FORMAT)


def _run_now(fn: Callable[[], None]) -> None:
    fn()


def _prompt_for_path(path: Path, error: LocationUnavailable) -> Path | None:
    """Ask for another Bookmarks.plist. Cancels when stdin is not a terminal."""
    click.echo(f"Cannot open {path}: {error.reason or 'unavailable'}", err=True)
    if not sys.stdin.isatty():
        return None
    answer = click.prompt(
        "Path to Bookmarks.plist (empty to cancel)",
        default="",
        show_default=False,
        err=True,
    )
    return Path(answer).expanduser() if answer.strip() else None


def _age(record: Record) -> str:
    seconds = int(time.time() - record.added_at.timestamp())
    if seconds < 120:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def _degraded_exit(store: ReadingListStore) -> None:
    click.echo(f"Error: {store.last_error}", err=True)
    raise SystemExit(1)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="readinglist")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="readinglist.toml to use instead of searching for one")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """readinglist — Safari Reading List without Safari."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------------------------------------------------------------------------
# readinglist init
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--dir", "root", default=".", show_default=True, help="Directory to write readinglist.toml into")
def init(root: str) -> None:
    """Write a default readinglist.toml."""
    root_path = Path(root).expanduser().resolve()
    try:
        config_path = init_config(root_path)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("readinglist.toml already exists — skipping init")


# ---------------------------------------------------------------------------
# readinglist list
# ---------------------------------------------------------------------------


@cli.command("list")
@click.option("--limit", "-l", default=0, show_default=True, help="Max items to show (0 = all)")
@click.option("--json", "as_json", is_flag=True, help="One JSON object per line")
@click.option("--bookmarks", default=None, help="Read this Bookmarks.plist instead of the configured one")
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr")
@click.pass_context
def list_cmd(ctx: click.Context, limit: int, as_json: bool, bookmarks: str | None, verbose: bool) -> None:
    """Show the reading list, newest first."""
    cfg = _load_cfg(ctx, bookmarks)
    if verbose:
        _setup_logging(cfg, verbose)

    with ReadingListStore(cfg, picker=_prompt_for_path, dispatch=_run_now) as store:
        state = store.load()
        items = store.items[:limit] if limit else store.items

        if as_json:
            for record in items:
                click.echo(json.dumps(record.to_dict()))
        elif state is StoreState.READY and not items:
            click.echo("Your Safari reading list is empty")
            click.echo("Add items using Safari's share button")
        elif items:
            from rich.console import Console
            from rich.markup import escape
            from rich.table import Table

            table = Table(title=f"Reading List ({len(store.items)})", show_header=True, header_style="bold")
            table.add_column("Title")
            table.add_column("Host", style="dim", no_wrap=True)
            table.add_column("Added", justify="right", no_wrap=True)
            for record in items:
                title = escape(record.title)
                if record.placeholder:
                    title = f"[yellow]{title}[/yellow]"
                table.add_row(title, escape(record.host), _age(record))
            Console().print(table)

        if state is StoreState.DEGRADED:
            _degraded_exit(store)


# ---------------------------------------------------------------------------
# readinglist delete
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("url")
@click.option("--bookmarks", default=None, help="Modify this Bookmarks.plist instead of the configured one")
@click.option("--verbose", "-v", is_flag=True, help="Log to stderr")
@click.pass_context
def delete(ctx: click.Context, url: str, bookmarks: str | None, verbose: bool) -> None:
    """Remove URL from the reading list (and from Bookmarks.plist)."""
    cfg = _load_cfg(ctx, bookmarks)
    if verbose:
        _setup_logging(cfg, verbose)

    with ReadingListStore(cfg, dispatch=_run_now) as store:
        try:
            result = store.delete_url(url)
        except ReadingListError as exc:
            raise click.ClickException(str(exc)) from exc

    if not result.found:
        raise click.ClickException(f"Not in reading list: {url}")
    where = result.location.value if result.location else "document"
    click.echo(f"Removed {url} ({where})")


# ---------------------------------------------------------------------------
# readinglist watch
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--interval", "-i", type=float, default=None, help="Seconds between reloads (default: config)")
@click.option("--bookmarks", default=None, help="Watch this Bookmarks.plist instead of the configured one")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def watch(ctx: click.Context, interval: float | None, bookmarks: str | None, verbose: bool) -> None:
    """Reload periodically and print additions and removals until Ctrl-C."""
    cfg = _load_cfg(ctx, bookmarks)
    _setup_logging(cfg, verbose)
    if interval is not None and interval <= 0:
        raise click.BadParameter("must be positive", param_hint="--interval")

    seen: dict[str, Record] = {}
    first = [True]

    def _on_change(state: StoreState, items: tuple[Record, ...]) -> None:
        if state not in (StoreState.READY, StoreState.DEGRADED):
            return
        current = {r.locator: r for r in items if not r.placeholder}
        if first[0]:
            click.echo(f"{len(current)} item(s) in reading list")
            first[0] = False
        else:
            for locator in current.keys() - seen.keys():
                click.echo(f"+ {current[locator].title}  <{locator}>")
            for locator in seen.keys() - current.keys():
                click.echo(f"- {seen[locator].title}  <{locator}>")
        seen.clear()
        seen.update(current)

    with ReadingListStore(cfg, picker=_prompt_for_path) as store:
        store.subscribe(_on_change)
        store.load()
        store.start_auto_refresh(interval)
        try:
            while True:
                time.sleep(1.0)
        except KeyboardInterrupt:
            click.echo("stopped")


# ---------------------------------------------------------------------------
# readinglist status
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--bookmarks", default=None, help="Inspect this Bookmarks.plist instead of the configured one")
@click.pass_context
def status(ctx: click.Context, bookmarks: str | None) -> None:
    """Show configuration and the state of the bookmarks document."""
    from rich.console import Console
    from rich.table import Table

    cfg = _load_cfg(ctx, bookmarks)
    console = Console()

    table = Table(title="readinglist", show_header=True, header_style="bold")
    table.add_column("Metric", style="dim", no_wrap=True)
    table.add_column("Value")

    from importlib.metadata import version as _pkg_version
    try:
        _ver = _pkg_version("readinglist")
    except Exception:
        _ver = "unknown"
    table.add_row("Version", _ver)
    table.add_row("Config", str(cfg.config_path or "(defaults)"))

    path = cfg.document.resolve_path()
    table.add_row("Document", str(path))
    table.add_row("Write format", cfg.document.write_format)
    table.add_row("Refresh", f"every {cfg.refresh.interval:g}s")

    try:
        data = read_bytes(path)
        tree = codec.decode(data)
        leaf_set = locate_reading_list(tree, cfg.document.folder_title)
    except ReadingListError as exc:
        table.add_row("State", f"[red]{StoreState.DEGRADED.value}[/red]")
        table.add_row("Error", str(exc))
    else:
        st = path.stat()
        table.add_row("Format", codec.detect_format(data))
        table.add_row("Size", f"{st.st_size / 1000:.1f} kB")
        table.add_row("State", f"[green]{StoreState.READY.value}[/green]")
        table.add_row("Layout", leaf_set.location.value)
        table.add_row("Leaves", str(len(leaf_set)))

    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
