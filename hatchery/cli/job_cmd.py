"""CLI commands for managing recurring jobs."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from hatchery.cli.common import parse_id

app = typer.Typer(no_args_is_help=True)
console = Console()

VALID_CATEGORIES = {"open_shop", "close_shop", "regular"}


@app.command("list")
def list_jobs(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="active or inactive"),
):
    """List jobs with their interval and resolved category."""

    async def _list():
        from hatchery.config import get_settings
        from hatchery.scheduling.categories import job_categories
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        keywords = get_settings().categories.as_mapping()

        async with get_session() as session:
            jobs = await SchedulingStore(session).list_jobs(status=status)

            if not jobs:
                console.print("[yellow]No jobs found.[/yellow]")
                return

            table = Table(title="Jobs")
            table.add_column("ID", style="dim")
            table.add_column("Name", style="cyan")
            table.add_column("Every", justify="right")
            table.add_column("Status")
            table.add_column("Category")
            table.add_column("Sequential", justify="center")

            for j in jobs:
                categories = sorted(job_categories(j, keywords)) or ["regular"]
                label = ", ".join(categories)
                if not j.category:
                    label = f"{label} [dim](inferred)[/dim]"
                table.add_row(
                    str(j.id)[:8],
                    j.name,
                    f"{j.interval_days}d",
                    j.status,
                    label,
                    "[green]YES[/green]" if j.requires_sequential else "",
                )

            console.print(table)

    asyncio.run(_list())


def _update_job(job_id: str, patch: dict, message: str) -> None:
    jid = parse_id(job_id, "job ID")

    async def _update():
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        async with get_session() as session:
            job = await SchedulingStore(session).update_job(jid, patch)
            if not job:
                console.print(f"[red]Job not found: {job_id}[/red]")
                raise typer.Exit(1)
            console.print(f"Job [cyan]{job.name}[/cyan] {message}")

    asyncio.run(_update())


@app.command("activate")
def activate(job_id: str = typer.Argument(help="Job ID")):
    """Resume generating tasks for a job."""
    _update_job(job_id, {"status": "active"}, "activated")


@app.command("deactivate")
def deactivate(job_id: str = typer.Argument(help="Job ID")):
    """Stop generating tasks for a job."""
    _update_job(job_id, {"status": "inactive"}, "deactivated")


@app.command("categorize")
def categorize(
    job_id: str = typer.Argument(help="Job ID"),
    category: str = typer.Argument(help="open_shop, close_shop or regular"),
):
    """Set a job's category explicitly instead of inferring it from the name."""
    if category not in VALID_CATEGORIES:
        console.print(f"[red]Invalid category. Choose from: {', '.join(sorted(VALID_CATEGORIES))}[/red]")
        raise typer.Exit(1)
    _update_job(job_id, {"category": category}, f"categorized as [bold]{category}[/bold]")
