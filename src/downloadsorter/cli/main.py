"""Main CLI interface for DownloadSorter using Click."""

import sys
import time
from collections import Counter
from pathlib import Path
from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from ..classifier import CATEGORY_FOLDERS, extensions_for
from ..config import CollisionPolicy, DirectoryPolicy, DownloadSorterConfig, get_config_manager
from ..exceptions import ConfigurationError
from ..mover import OutcomeStatus, RelocationOutcome, ensure_category_directories
from ..utils.logging import get_console, get_logger, setup_logging
from ..watcher import WatchSession

console = get_console()
logger = get_logger(__name__)

STATUS_STYLES = {
    OutcomeStatus.MOVED: "green",
    OutcomeStatus.EXTRACTED: "green",
    OutcomeStatus.SKIPPED: "yellow",
    OutcomeStatus.FAILED: "red",
}


def _load_config(
    ctx,
    root: Optional[Path] = None,
    flatten: Optional[bool] = None,
    collision: Optional[str] = None,
) -> DownloadSorterConfig:
    """Load configuration and apply command-line overrides."""
    config_manager = get_config_manager(ctx.obj.get("config_path"))
    config = config_manager.load(create_if_missing=True)

    if root is not None:
        config.watch_root = root
    if flatten is not None:
        config.directory_policy = DirectoryPolicy.FLATTEN if flatten else DirectoryPolicy.KEEP_TOGETHER
    if collision is not None:
        config.collision_policy = CollisionPolicy(collision)

    setup_logging(config.logging)
    return config


def _print_outcomes(outcomes: list[RelocationOutcome]):
    """Display relocation outcomes as a table."""
    table = Table(title="Sorted Entries", show_header=True, header_style="bold cyan")
    table.add_column("Entry", style="cyan")
    table.add_column("Status")
    table.add_column("Category")
    table.add_column("Destination / Reason")

    for outcome in outcomes:
        style = STATUS_STYLES[outcome.status]
        detail = str(outcome.destination) if outcome.destination and outcome.success else (outcome.reason or "")
        table.add_row(
            outcome.source.name,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.category.name.title(),
            detail,
        )
        for child in outcome.failures:
            table.add_row(f"  └─ {child.source.name}", "[red]failed[/red]", child.category.name.title(), child.reason or "")

    console.print(table)


def _print_stats(stats: Counter):
    """Display dispatcher statistics."""
    table = Table(title="Session Statistics", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")

    for status in OutcomeStatus:
        table.add_row(status.value.title(), str(stats.get(status.value, 0)))
    table.add_row("", "")
    table.add_row("Duplicate events", str(stats.get("duplicates", 0)))
    table.add_row("Watch errors", str(stats.get("errors", 0)))

    console.print(table)


@click.group()
@click.version_option(version="0.1.0", prog_name="DownloadSorter")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.pass_context
def cli(ctx, config: Optional[Path]):
    """
    DownloadSorter - keeps your downloads folder tidy.

    Moves new files into category folders, extracts archives and sets
    directories aside.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder to watch (overrides config)",
)
@click.pass_context
def init(ctx, root: Optional[Path]):
    """
    Create a default configuration and the category folders.
    """
    console.print("\n[bold cyan]DownloadSorter Initialization[/bold cyan]\n")

    try:
        config_manager = get_config_manager(ctx.obj.get("config_path"))
        config = config_manager.load(create_if_missing=True)
        if root is not None:
            config.watch_root = root

        if config_manager.config_path is None or root is not None:
            save_path = config_manager.config_path or Path("config/default_config.yaml")
            config_manager.save(config, save_path)
            console.print(f"✓ Saved configuration: [green]{save_path}[/green]")
        else:
            console.print(f"✓ Loaded configuration from: [green]{config_manager.config_path}[/green]")

        paths = ensure_category_directories(config.watch_root)
        for category in CATEGORY_FOLDERS:
            console.print(f"✓ {paths.folder_for(category)}")

        console.print("\n[bold green]✓ Initialization complete![/bold green]")
        console.print("\n[cyan]Next step:[/cyan] [yellow]downloadsorter watch[/yellow]")

    except ConfigurationError as e:
        console.print(f"\n[bold red]✗ Initialization failed:[/bold red] {escape(str(e))}")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]✗ Initialization failed:[/bold red] {escape(str(e))}")
        logger.exception("Initialization error")
        sys.exit(1)


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder to watch (overrides config)",
)
@click.option(
    "--flatten-directories/--keep-directories",
    "flatten",
    default=None,
    help="Sort the files of new directories individually instead of moving them whole",
)
@click.option(
    "--collision",
    type=click.Choice([policy.value for policy in CollisionPolicy]),
    default=None,
    help="Leave clashing entries in place (reject) or rename them with a (n) suffix",
)
@click.option("--sort-existing", is_flag=True, help="Sort entries already in the folder first")
@click.pass_context
def watch(ctx, root: Optional[Path], flatten: Optional[bool], collision: Optional[str], sort_existing: bool):
    """
    Watch the folder and sort new entries until interrupted.
    """
    try:
        config = _load_config(ctx, root, flatten, collision)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]✗ Error:[/bold red] {escape(str(e))}")
        sys.exit(1)

    session = WatchSession(config)
    try:
        session.start()
    except ConfigurationError as e:
        console.print(f"[bold red]✗ Cannot watch:[/bold red] {escape(str(e))}")
        logger.error(f"Startup failed: {e}")
        sys.exit(1)

    console.print(f"[cyan]Watching[/cyan] {session.watch_root} [dim](Ctrl+C to stop)[/dim]")

    try:
        if sort_existing:
            session.sort_existing(wait_for_completion=False)
        while True:
            time.sleep(1.0)
            session.check_health()
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping...[/yellow]")
    finally:
        session.stop()

    _print_stats(session.dispatcher.stats)


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder to sort (overrides config)",
)
@click.option(
    "--flatten-directories/--keep-directories",
    "flatten",
    default=None,
    help="Sort the files of directories individually instead of moving them whole",
)
@click.option(
    "--collision",
    type=click.Choice([policy.value for policy in CollisionPolicy]),
    default=None,
    help="Leave clashing entries in place (reject) or rename them with a (n) suffix",
)
@click.pass_context
def sort(ctx, root: Optional[Path], flatten: Optional[bool], collision: Optional[str]):
    """
    Sort the entries currently in the folder once, without watching.
    """
    try:
        config = _load_config(ctx, root, flatten, collision)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]✗ Error:[/bold red] {escape(str(e))}")
        sys.exit(1)

    session = WatchSession(config)
    try:
        outcomes = session.sort_existing()
    except ConfigurationError as e:
        console.print(f"[bold red]✗ Cannot sort:[/bold red] {escape(str(e))}")
        sys.exit(1)
    finally:
        session.stop()

    if not outcomes:
        console.print("[green]Nothing to sort.[/green]")
        return

    _print_outcomes(outcomes)

    if any(outcome.status is OutcomeStatus.FAILED for outcome in outcomes):
        sys.exit(2)


@cli.group(name="config")
def config_group():
    """Manage DownloadSorter configuration."""
    pass


@config_group.command(name="show")
@click.pass_context
def config_show(ctx):
    """Display current configuration and the category table."""
    console.print("\n[bold cyan]DownloadSorter Configuration[/bold cyan]\n")

    try:
        config_manager = get_config_manager(ctx.obj.get("config_path"))
        config = config_manager.load(create_if_missing=True)

        console.print(f"[bold]Watch Root:[/bold] {config.watch_root}")
        console.print(f"[bold]Directories:[/bold] {config.directory_policy.value}")
        console.print(f"[bold]Collisions:[/bold] {config.collision_policy.value}")

        console.print("\n[bold]Processing Settings:[/bold]")
        console.print(f"  Debounce: {config.processing.debounce_seconds}s")
        console.print(f"  Workers: {config.processing.max_workers}")
        console.print(f"  Retry Backoff: {config.processing.retry_backoff_seconds}s")
        console.print(f"  Shutdown Grace: {config.processing.shutdown_grace_seconds}s")
        console.print(f"  Max Archive Size: {config.processing.max_archive_bytes // (1024 * 1024)}MB")
        console.print(f"  Max Archive Entries: {config.processing.max_archive_members}")

        console.print("\n[bold]Logging:[/bold]")
        console.print(f"  Level: {config.logging.level}")
        console.print(f"  Log Dir: {config.logging.log_dir}")

        table = Table(title="Categories", show_header=True, header_style="bold cyan")
        table.add_column("Folder", style="cyan")
        table.add_column("Extensions", style="green")
        for category, folder in CATEGORY_FOLDERS.items():
            extensions = " ".join(extensions_for(category)) or "(any directory)"
            table.add_row(folder, extensions)
        console.print()
        console.print(table)

        source = config_manager.config_path or "built-in defaults"
        console.print(f"\n[dim]Config file: {source}[/dim]")

    except Exception as e:
        console.print(f"[bold red]✗ Error:[/bold red] {escape(str(e))}")
        logger.exception("Config show error")
        sys.exit(1)


if __name__ == "__main__":
    cli()
