"""
mediamirror sync - Run one sync pass.

Lists the configured user folder (incrementally when a cursor is stored) and
dispatches every new or modified media file.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mediamirror.core.initialization import MediaMirrorInitializer
from mediamirror.exceptions import MediaMirrorError
from mediamirror.sync.types import SyncOptions, SyncSummary
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.cli.sync")

app = typer.Typer(name="sync", help="Run one sync pass", invoke_without_command=True)

console = Console()


async def run_sync(initializer: MediaMirrorInitializer, options: SyncOptions) -> SyncSummary:
    orchestrator = initializer.build_orchestrator()
    try:
        return await orchestrator.run(options)
    finally:
        await orchestrator.origin.close()


def print_summary(summary: SyncSummary) -> None:
    table = Table(title=f"Sync {summary.base_path}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Listing", "full" if summary.full_listing else "incremental")
    table.add_row("Batches", str(summary.batches))
    table.add_row("Listed", str(summary.listed))
    table.add_row("Dispatched", str(summary.dispatched))
    table.add_row("Skipped", str(summary.skipped))
    table.add_row("Collisions", str(summary.collisions))
    for outcome, count in sorted(summary.outcomes.items()):
        table.add_row(f"  {outcome}", str(count))
    console.print(table)


@app.callback()
def sync(
    ctx: typer.Context,
    user_folder: str | None = typer.Argument(None, help="User folder to sync (default: sync.user_folder)"),
    source_root: str | None = typer.Option(None, "--source-root", help="Root segment (default: sync.source_root)"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Run one sync pass for a user folder.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        initializer = MediaMirrorInitializer.from_project(project_dir, env=env)
    except MediaMirrorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    base = SyncOptions.from_config(initializer.config.sync)
    options = SyncOptions(
        source_root=source_root or base.source_root,
        user_folder=user_folder if user_folder is not None else base.user_folder,
        recursive=base.recursive,
        image_widths=base.image_widths,
    )
    if not options.user_folder:
        typer.echo("Error: no user folder given and sync.user_folder is not set", err=True)
        raise typer.Exit(1)

    try:
        summary = asyncio.run(run_sync(initializer, options))
    except MediaMirrorError as e:
        logger.error(f"Sync failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    print_summary(summary)
