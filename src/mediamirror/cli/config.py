"""
mediamirror config - Inspect and validate configuration.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax

from mediamirror.config.loader import load_config
from mediamirror.exceptions import ConfigurationError

app = typer.Typer(name="config", help="Inspect and validate configuration", invoke_without_command=True)

console = Console()


@app.callback()
def config(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Specific environment to show"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
):
    """
    List available configuration files, or show one environment's overlay.
    """
    if ctx.invoked_subcommand is not None:
        return

    config_files = sorted(project_dir.glob("config*.yaml"))
    if not config_files:
        console.print("[yellow]No configuration files found[/yellow]")
        return

    if env:
        config_file = project_dir / ("config.yaml" if env == "default" else f"config.{env}.yaml")
        if not config_file.exists():
            console.print(f"[red]Configuration not found for environment: {env}[/red]")
            raise typer.Exit(1)
        console.print(f"\n[bold]Configuration: {config_file.name}[/bold]\n")
        console.print(Syntax(config_file.read_text(), "yaml", theme="monokai", line_numbers=True))
        return

    console.print("\n[bold]Available Environments:[/bold]\n")
    for config_file in config_files:
        env_name = "default" if config_file.name == "config.yaml" else config_file.stem.replace("config.", "")
        console.print(f"  [cyan]{env_name}[/cyan] ({config_file.name})")
    console.print("\n[dim]Use 'mediamirror config --env <name>' to view details[/dim]")


@app.command()
def validate(
    env: str | None = typer.Option(None, help="Environment overlay to validate"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
):
    """
    Load and validate configuration, reporting every problem found.
    """
    try:
        cfg = load_config(project_dir, env=env)
        cfg.validate()
    except ConfigurationError as e:
        console.print("[red]Configuration is invalid:[/red]")
        for error in e.details.get("errors", [e.message]):
            console.print(f"  - {error}")
        raise typer.Exit(1) from e

    mode = "queue" if cfg.queue_url else "inline"
    console.print(f"[green]Configuration is valid[/green] (dispatch mode: {mode})")
