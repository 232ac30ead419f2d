"""Hatchery daemon: periodic phase advancement and task generation."""

import asyncio
import logging
import signal
from datetime import datetime, timezone
from typing import Optional

from rich.console import Console

from hatchery.config import get_settings
from hatchery.scheduling.advancement import check_and_advance_phases
from hatchery.scheduling.orchestrator import generate_daily_tasks
from hatchery.storage.db import close_db, get_session
from hatchery.storage.store import SchedulingStore

logger = logging.getLogger(__name__)
console = Console()

_stop: Optional[asyncio.Event] = None


def request_shutdown() -> None:
    """Ask the running daemon to exit after its current cycle."""
    if _stop is not None and not _stop.is_set():
        logger.info("Shutdown signal received, finishing current cycle...")
        _stop.set()


async def run_cycle() -> dict:
    """Advance due phases, then generate today's tasks.

    Advancement runs first so projects that just changed phase get the new
    phase's tasks in the same cycle.
    """
    settings = get_settings()
    summary = {"advanced": 0, "completed": 0, "generated": 0, "failures": 0}

    if settings.scheduler.advance_phases:
        async with get_session() as session:
            advanced = await check_and_advance_phases(SchedulingStore(session))
        summary["completed"] = sum(1 for a in advanced if a.completed)
        summary["advanced"] = len(advanced) - summary["completed"]

    if settings.scheduler.generate_tasks:
        async with get_session() as session:
            result = await generate_daily_tasks(SchedulingStore(session))
        summary["generated"] = len(result.tasks)
        summary["failures"] = len(result.failures)

    return summary


async def run_daemon(interval_minutes: int = 60) -> None:
    """Run the Hatchery daemon, advancing phases and generating tasks on an interval.

    SIGINT/SIGTERM let the current cycle finish, then cut the wait short and exit.

    Args:
        interval_minutes: Minutes between cycles.
    """
    global _stop

    _stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_shutdown)

    interval = interval_minutes * 60

    console.print(f"[bold]Hatchery daemon started[/bold] (interval: {interval_minutes}m)")
    console.print("Press Ctrl+C to stop.\n")

    cycle = 0
    try:
        while not _stop.is_set():
            cycle += 1
            start = datetime.now(timezone.utc)
            logger.info("Daemon cycle %d starting at %s", cycle, start.isoformat())

            try:
                summary = await run_cycle()
                logger.info(
                    "Cycle %d: %d advanced, %d completed, %d tasks generated, %d failures",
                    cycle,
                    summary["advanced"],
                    summary["completed"],
                    summary["generated"],
                    summary["failures"],
                )
                elapsed = (datetime.now(timezone.utc) - start).total_seconds()
                logger.info("Cycle %d complete in %.1fs", cycle, elapsed)
            except Exception as e:
                logger.error("Daemon cycle %d failed: %s", cycle, e, exc_info=True)

            if _stop.is_set():
                break

            logger.info("Next cycle in %d minutes...", interval_minutes)
            try:
                await asyncio.wait_for(_stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await close_db()

    console.print("\n[bold]Hatchery daemon stopped.[/bold]")
