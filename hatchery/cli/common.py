"""Helpers shared by CLI commands."""

from datetime import date
from typing import Optional
from uuid import UUID

import typer
from rich.console import Console

console = Console()


def parse_id(value: str, what: str = "ID") -> UUID:
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[red]Invalid {what}: {value}[/red]")
        raise typer.Exit(1)


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        console.print("[red]Invalid date format. Use YYYY-MM-DD[/red]")
        raise typer.Exit(1)
