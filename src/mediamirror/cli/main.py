"""
Main CLI entry point.
"""

import typer

from mediamirror import __version__
from mediamirror.cli import build_job, config, serve, sync, worker


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"mediamirror version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="mediamirror",
    help="MediaMirror - mirror a cloud-drive media tree into object storage with renditions",
    add_completion=True,
)

# Register subcommands
app.add_typer(sync.app, name="sync")
app.add_typer(worker.app, name="worker")
app.add_typer(serve.app, name="serve")
app.add_typer(build_job.app, name="build-job")
app.add_typer(config.app, name="config")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        help="Show version and exit.",
    ),
):
    """
    MediaMirror - mirror a cloud-drive media tree into object storage.

    Run 'mediamirror <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        if not version:
            typer.echo(ctx.get_help())
            raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
