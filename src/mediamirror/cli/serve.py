"""
mediamirror serve - Change-notification trigger.

Runs the webhook endpoint that starts a sync pass whenever the origin reports
a change.
"""

from pathlib import Path

import typer

from mediamirror.core.initialization import MediaMirrorInitializer
from mediamirror.exceptions import MediaMirrorError
from mediamirror.sync.types import SyncOptions
from mediamirror.trigger import run_webhook_server

app = typer.Typer(name="serve", help="Run the webhook trigger service", invoke_without_command=True)


@app.callback()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8080, help="Port to bind to"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Serve GET/POST /webhook and GET /health.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        initializer = MediaMirrorInitializer.from_project(project_dir, env=env)
    except MediaMirrorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    options = SyncOptions.from_config(initializer.config.sync)
    if not options.user_folder:
        typer.echo("Error: sync.user_folder must be set for the trigger service", err=True)
        raise typer.Exit(1)

    metrics_config = initializer.config.get("metrics", {}) or {}
    if metrics_config.get("enabled", False):
        from mediamirror.observability import get_metrics_registry

        get_metrics_registry().start_http_server(port=int(metrics_config.get("port", 9090)))

    orchestrator = initializer.build_orchestrator()

    def sync_factory():
        return orchestrator.run(options)

    run_webhook_server(sync_factory, host=host, port=port, task_name=f"sync:{options.user_folder}")
