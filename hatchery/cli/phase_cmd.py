"""CLI commands for phase advancement."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(no_args_is_help=True)
console = Console()


@app.command("advance")
def advance():
    """Advance every active project whose current phase has run its duration."""

    async def _advance():
        from hatchery.scheduling.advancement import check_and_advance_phases
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        async with get_session() as session:
            advanced = await check_and_advance_phases(SchedulingStore(session))

        if not advanced:
            console.print("[yellow]No projects due for advancement.[/yellow]")
            return

        table = Table(title="Phase Advancement")
        table.add_column("Project", style="cyan")
        table.add_column("From", style="dim")
        table.add_column("To")

        for a in advanced:
            to = "[green]completed[/green]" if a.completed else str(a.to_phase)[:8]
            table.add_row(str(a.project_id)[:8], str(a.from_phase)[:8], to)

        console.print(table)

    asyncio.run(_advance())
