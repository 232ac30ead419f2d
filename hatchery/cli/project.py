"""CLI commands for managing projects."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from hatchery.cli.common import parse_id

app = typer.Typer(no_args_is_help=True)
console = Console()


@app.command("list")
def list_projects(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
):
    """List all projects."""

    async def _list():
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore
        from hatchery.tasks import extract_tank_name

        async with get_session() as session:
            projects = await SchedulingStore(session).list_projects(status=status)

            if not projects:
                console.print("[yellow]No projects found.[/yellow]")
                return

            table = Table(title="Projects")
            table.add_column("ID", style="dim")
            table.add_column("Name", style="cyan")
            table.add_column("Tank")
            table.add_column("Phase")
            table.add_column("Status")
            table.add_column("Started")

            for p in projects:
                phase = p.current_phase.name if p.current_phase else "No Phase"
                started = p.started_at.date().isoformat() if p.started_at else ""
                table.add_row(
                    str(p.id)[:8],
                    p.name,
                    extract_tank_name(p.description) or "",
                    phase,
                    p.status,
                    started,
                )

            console.print(table)

    asyncio.run(_list())


@app.command("create")
def create(
    name: str = typer.Argument(help="Project name"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Lifecycle template ID"),
    description: Optional[str] = typer.Option(None, "--description", help="Description (a 'Tank: <name>' line links a tank)"),
):
    """Create a project in its template's first phase."""
    template_id = parse_id(template, "template ID") if template else None

    async def _create():
        from hatchery.lifecycle import create_project
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        async with get_session() as session:
            project = await create_project(
                SchedulingStore(session), name, template_id=template_id, description=description
            )
            console.print(f"Project created: [cyan]{project.name}[/cyan] (id: {project.id})")

    asyncio.run(_create())


@app.command("update")
def update(
    project_id: str = typer.Argument(help="Project ID"),
    phase: Optional[str] = typer.Option(None, "--phase", help="Move to this phase ID"),
    status: Optional[str] = typer.Option(None, "--status", help="active, paused, completed, cancelled"),
):
    """Manually change a project's phase or status."""
    pid = parse_id(project_id, "project ID")
    phase_id = parse_id(phase, "phase ID") if phase else None

    async def _update():
        from hatchery.errors import InvalidTransitionError
        from hatchery.lifecycle import update_project
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        try:
            async with get_session() as session:
                project = await update_project(
                    SchedulingStore(session), pid, current_phase_id=phase_id, status=status
                )
        except InvalidTransitionError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

        if not project:
            console.print(f"[red]Project not found: {project_id}[/red]")
            raise typer.Exit(1)
        console.print(f"Project [cyan]{project.name}[/cyan] updated ({project.status})")

    asyncio.run(_update())


@app.command("history")
def history(project_id: str = typer.Argument(help="Project ID")):
    """Show a project's lifecycle history."""
    pid = parse_id(project_id, "project ID")

    async def _history():
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore

        async with get_session() as session:
            entries = await SchedulingStore(session).list_history(pid)

            if not entries:
                console.print("[yellow]No history recorded.[/yellow]")
                return

            table = Table(title="Project History")
            table.add_column("When")
            table.add_column("Action", style="cyan")
            table.add_column("Phase", style="dim")
            table.add_column("Details")

            for h in entries:
                details = ", ".join(f"{k}={v}" for k, v in (h.metadata_ or {}).items())
                table.add_row(
                    h.created_at.strftime("%Y-%m-%d %H:%M") if h.created_at else "",
                    h.action,
                    str(h.phase_id)[:8] if h.phase_id else "",
                    details,
                )

            console.print(table)

    asyncio.run(_history())
