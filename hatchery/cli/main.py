"""Hatchery CLI entry point using Typer."""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from hatchery.cli.generate_cmd import app as generate_app
from hatchery.cli.job_cmd import app as job_app
from hatchery.cli.phase_cmd import app as phase_app
from hatchery.cli.project import app as project_app
from hatchery.cli.task_cmd import app as task_app

app = typer.Typer(
    name="hatchery",
    help="Daily task scheduling for hatchery operations.",
    no_args_is_help=True,
)
console = Console()

# Register subcommands
app.add_typer(generate_app, name="generate", help="Generate tasks from templates")
app.add_typer(phase_app, name="phases", help="Advance project phases")
app.add_typer(project_app, name="project", help="Manage projects")
app.add_typer(task_app, name="task", help="Work through tasks")
app.add_typer(job_app, name="job", help="Manage recurring jobs")


def _setup_logging(verbose: bool = False):
    from hatchery.config import get_settings

    level = logging.DEBUG if verbose else get_settings().general.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False)],
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    _setup_logging(verbose)


@app.command()
def init():
    """Initialize Hatchery: write a default config and create the schema."""

    async def _init():
        from pathlib import Path

        from hatchery.storage.db import close_db, init_db

        config_dir = Path.home() / ".config/hatchery"
        config_dir.mkdir(parents=True, exist_ok=True)
        console.print(f"  Config dir: {config_dir}")

        config_path = config_dir / "config.toml"
        if not config_path.exists():
            config_path.write_text(
                "[general]\n"
                'db_url = "postgresql+asyncpg://localhost/hatchery"\n'
                'log_level = "INFO"\n\n'
                "[scheduler]\n"
                "interval_minutes = 60\n"
                "advance_phases = true\n"
                "generate_tasks = true\n\n"
                "[categories]\n"
                'open_shop = ["open shop", "open", "start"]\n'
                'close_shop = ["close shop", "close up shop", "close", "end", "shutdown"]\n'
            )
            console.print(f"  Config written: {config_path}")

        console.print("  Initializing database...")
        await init_db()
        await close_db()
        console.print("  Database ready.")

        console.print("\n[bold green]Hatchery initialized![/bold green]")
        console.print("\nNext steps:")
        console.print("  1. Create a project:      [cyan]hatchery project create[/cyan]")
        console.print("  2. Generate today's work: [cyan]hatchery generate daily[/cyan]")
        console.print("  3. Keep it running:       [cyan]hatchery daemon[/cyan]")

    asyncio.run(_init())


@app.command()
def daemon(
    interval: Optional[int] = typer.Option(None, "--interval", "-i", help="Minutes between cycles"),
):
    """Run phase advancement and task generation on a fixed interval."""
    from hatchery.config import get_settings
    from hatchery.daemon import run_daemon

    minutes = interval or get_settings().scheduler.interval_minutes
    asyncio.run(run_daemon(interval_minutes=minutes))


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Serve the HTTP API."""
    import uvicorn

    from hatchery.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "hatchery.api.routes:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
    )


def main():
    """Entry point for the hatchery CLI."""
    app()


if __name__ == "__main__":
    main()
