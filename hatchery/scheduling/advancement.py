"""Automatic phase advancement for lifecycle projects.

A project sits in its current phase until ``duration_days`` have passed since
the phase started, then moves to the phase with the next-higher
``order_index`` in its template, or completes when there is none. Phases
without a duration only move by manual update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from hatchery.storage.models import Project
from hatchery.storage.store import SchedulingStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass
class PhaseAdvance:
    project_id: UUID
    from_phase: UUID
    to_phase: Optional[UUID]
    completed: bool = False


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def days_in_phase(phase_start: datetime, now: datetime) -> int:
    """Whole days elapsed since ``phase_start`` (floored)."""
    elapsed = _as_utc(now) - _as_utc(phase_start)
    return int(elapsed.total_seconds() // SECONDS_PER_DAY)


async def phase_start_for(store: SchedulingStore, project: Project) -> Optional[datetime]:
    """When the project's current phase began.

    Latest ``phase_started`` entry for the current phase, else the project's
    ``started_at``, else its ``created_at``.
    """
    entry = await store.find_latest_history(project.id, project.current_phase_id, "phase_started")
    if entry is not None:
        return entry.created_at
    return project.started_at or project.created_at


async def advance_project(
    store: SchedulingStore,
    project: Project,
    now: datetime,
) -> Optional[PhaseAdvance]:
    """Advance or complete one project if its current phase has run its course."""
    if not project.current_phase_id:
        return None

    phase = await store.get_phase(project.current_phase_id)
    if phase is None or not phase.duration_days:
        return None

    started = await phase_start_for(store, project)
    if started is None:
        logger.warning("Project %s has no phase start timestamp, skipping", project.id)
        return None

    elapsed = days_in_phase(started, now)
    if elapsed < phase.duration_days:
        return None

    next_phase = await store.get_next_phase(phase.template_id, phase.order_index)
    if next_phase is not None:
        await store.update_project(project.id, {"current_phase_id": next_phase.id})
        await store.append_history(
            project.id,
            "phase_completed",
            phase_id=phase.id,
            metadata={"days_in_phase": elapsed, "auto_advanced": True},
        )
        await store.append_history(
            project.id,
            "phase_started",
            phase_id=next_phase.id,
            metadata={"auto_advanced": True},
        )
        logger.info(
            "Project %s advanced from phase %s to %s after %d days",
            project.id, phase.id, next_phase.id, elapsed,
        )
        return PhaseAdvance(project_id=project.id, from_phase=phase.id, to_phase=next_phase.id)

    await store.update_project(project.id, {"status": "completed", "completed_at": now})
    await store.append_history(
        project.id,
        "project_completed",
        metadata={"auto_completed": True, "final_phase_id": str(phase.id)},
    )
    logger.info("Project %s completed after final phase %s", project.id, phase.id)
    return PhaseAdvance(project_id=project.id, from_phase=phase.id, to_phase=None, completed=True)


async def check_and_advance_phases(
    store: SchedulingStore,
    now: Optional[datetime] = None,
) -> list[PhaseAdvance]:
    """Sweep all active projects and advance those whose phase is due.

    A failure on one project is logged and does not stop the sweep.
    """
    now = now or datetime.now(timezone.utc)
    advanced: list[PhaseAdvance] = []

    for project in await store.list_active_projects():
        project_id = project.id
        try:
            async with store.isolated():
                result = await advance_project(store, project, now)
        except Exception as e:
            logger.error("Phase advancement failed for project %s: %s", project_id, e)
            continue
        if result is not None:
            advanced.append(result)

    return advanced
