"""CLI commands for generating tasks from templates."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from hatchery.cli.common import parse_date

app = typer.Typer(no_args_is_help=True)
console = Console()


def _print_result(result, label: str) -> None:
    console.print(
        f"{label} for [bold]{result.target_date}[/bold]: "
        f"[green]{len(result.tasks)} tasks generated[/green]"
    )
    if result.failures:
        table = Table(title="Failures")
        table.add_column("Kind")
        table.add_column("ID", style="dim")
        table.add_column("Error", style="red")
        for f in result.failures:
            table.add_row(f.kind, str(f.unit_id)[:8], f.error)
        console.print(table)
        raise typer.Exit(1)


@app.command("daily")
def daily(
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Target date (YYYY-MM-DD), default today"),
):
    """Generate tasks for all active projects and due jobs."""
    target = parse_date(on)

    async def _run():
        from hatchery.scheduling.orchestrator import generate_daily_tasks
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        async with get_session() as session:
            return await generate_daily_tasks(SchedulingStore(session), target)

    _print_result(asyncio.run(_run()), "Daily tasks")


@app.command("category")
def category(
    name: str = typer.Argument(help="Category: open_shop or close_shop"),
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Target date (YYYY-MM-DD), default today"),
):
    """Generate tasks for one job category, ignoring job intervals."""
    from hatchery.config import get_settings

    keywords = get_settings().categories.as_mapping()
    if name not in keywords:
        console.print(f"[red]Unknown category. Choose from: {', '.join(keywords)}[/red]")
        raise typer.Exit(1)
    target = parse_date(on)

    async def _run():
        from hatchery.scheduling.orchestrator import generate_tasks_by_category
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        async with get_session() as session:
            return await generate_tasks_by_category(
                SchedulingStore(session), name, target, keywords=keywords
            )

    _print_result(asyncio.run(_run()), f"{name} tasks")


@app.command("regular")
def regular(
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Target date (YYYY-MM-DD), default today"),
):
    """Generate tasks for projects and all jobs outside the shop categories."""
    from hatchery.config import get_settings

    keywords = get_settings().categories.as_mapping()
    target = parse_date(on)

    async def _run():
        from hatchery.scheduling.orchestrator import generate_regular_tasks
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        async with get_session() as session:
            return await generate_regular_tasks(SchedulingStore(session), target, keywords=keywords)

    _print_result(asyncio.run(_run()), "Regular tasks")
