"""CLI commands for working through tasks."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from hatchery.cli.common import parse_date, parse_id

app = typer.Typer(no_args_is_help=True)
console = Console()


@app.command("list")
def list_tasks(
    on: Optional[str] = typer.Option(None, "--date", "-d", help="Due date (YYYY-MM-DD)"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    window: Optional[str] = typer.Option(None, "--window", "-w", help="Filter by time window"),
):
    """List tasks grouped by time window."""
    due = parse_date(on)

    async def _list():
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore
        from hatchery.tasks import group_by_time_window, task_view

        async with get_session() as session:
            tasks = await SchedulingStore(session).list_tasks(
                status=status, due_date=due, time_window=window, limit=200
            )

            if not tasks:
                console.print("[yellow]No tasks found.[/yellow]")
                return

            grouped = group_by_time_window(tasks)
            unscheduled = [t for t in tasks if t.time_window not in grouped]
            sections = list(grouped.items()) + [("unscheduled", unscheduled)]

            table = Table(title="Tasks")
            table.add_column("ID", style="dim")
            table.add_column("Window")
            table.add_column("Title", style="cyan")
            table.add_column("For")
            table.add_column("Tank")
            table.add_column("Due")
            table.add_column("Status")

            for window_name, bucket in sections:
                for t in bucket:
                    view = task_view(t)
                    table.add_row(
                        str(t.id)[:8],
                        window_name,
                        t.title,
                        view["owner_name"],
                        view["tank_name"] or "",
                        str(t.due_date),
                        t.status,
                    )

            console.print(table)

    asyncio.run(_list())


def _set_status(task_id: str, status: str, by: Optional[str] = None, notes: Optional[str] = None) -> None:
    tid = parse_id(task_id, "task ID")

    async def _set():
        from hatchery.errors import SequenceError
        from hatchery.storage.db import get_session
        from hatchery.storage.store import SchedulingStore
        from hatchery.tasks import update_task_status

        try:
            async with get_session() as session:
                task = await update_task_status(
                    SchedulingStore(session), tid, status, completed_by=by, notes=notes
                )
        except SequenceError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

        if not task:
            console.print(f"[red]Task not found: {task_id}[/red]")
            raise typer.Exit(1)
        console.print(f"Task [cyan]{task.title}[/cyan] marked as [green]{status}[/green]")

    asyncio.run(_set())


@app.command("start")
def start(task_id: str = typer.Argument(help="Task ID")):
    """Mark a task as in progress."""
    _set_status(task_id, "in_progress")


@app.command("done")
def done(
    task_id: str = typer.Argument(help="Task ID"),
    by: Optional[str] = typer.Option(None, "--by", help="Who completed it"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Completion notes"),
):
    """Mark a task as completed."""
    _set_status(task_id, "completed", by=by, notes=notes)


@app.command("skip")
def skip(
    task_id: str = typer.Argument(help="Task ID"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Why it was skipped"),
):
    """Mark a task as skipped."""
    _set_status(task_id, "skipped", notes=notes)
