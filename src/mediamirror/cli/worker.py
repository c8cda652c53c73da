"""
mediamirror worker - Long-running queue consumer.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mediamirror.core.initialization import MediaMirrorInitializer
from mediamirror.core.retry import DeadLetterQueue
from mediamirror.exceptions import MediaMirrorError
from mediamirror.utils.logging import get_logger
from mediamirror.worker import MediaWorker

logger = get_logger("mediamirror.cli.worker")

app = typer.Typer(name="worker", help="Consume jobs from the work queue", invoke_without_command=True)

console = Console()


async def run_worker(
    initializer: MediaMirrorInitializer, worker: MediaWorker, *, wait_seconds: int, max_batches: int | None
) -> int:
    queue = initializer.build_queue()
    try:
        async with queue:
            return await worker.run(queue, wait_seconds=wait_seconds, max_batches=max_batches)
    finally:
        await worker.origin.close()


def print_dead_letters(dlq: DeadLetterQueue, limit: int = 10) -> None:
    stats = dlq.get_stats()
    table = Table(title=f"Dead-lettered jobs ({stats['total_entries']})")
    table.add_column("Message", style="cyan")
    table.add_column("Remote id")
    table.add_column("Kind")
    table.add_column("Attempts", justify="right")
    table.add_column("Error", style="red")
    for entry in dlq.get_recent(limit=limit):
        table.add_row(
            entry.message_id,
            entry.remote_id or "-",
            entry.kind or "unknown",
            str(entry.total_attempts),
            f"{entry.exception_type}: {entry.exception_message}",
        )
    console.print(table)


@app.callback()
def worker(
    ctx: typer.Context,
    wait_seconds: int = typer.Option(20, "--wait-seconds", help="Long-poll wait per receive"),
    max_batches: int | None = typer.Option(None, "--max-batches", help="Stop after this many receives"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Process queued jobs until interrupted.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        initializer = MediaMirrorInitializer.from_project(project_dir, env=env)
    except MediaMirrorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if initializer.build_queue() is None:
        typer.echo("Error: queue.url is not configured; nothing to consume", err=True)
        raise typer.Exit(1)

    media_worker = initializer.build_worker()

    metrics_config = initializer.config.get("metrics", {}) or {}
    if metrics_config.get("enabled", False):
        from mediamirror.observability import get_metrics_registry

        get_metrics_registry().start_http_server(port=int(metrics_config.get("port", 9090)))

    try:
        processed = asyncio.run(
            run_worker(initializer, media_worker, wait_seconds=wait_seconds, max_batches=max_batches)
        )
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
        raise typer.Exit(130) from None

    typer.echo(f"Processed {processed} job(s)")
    if len(media_worker.dlq):
        print_dead_letters(media_worker.dlq)
