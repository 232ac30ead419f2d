"""Task generation from phase and job templates.

Both generators materialize one pending task per template task for a target
date. The ``*_for_project`` / ``*_for_job`` wrappers add the idempotence and
recurrence gates; a gate that says "not today" is an empty result, not an
error.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

from hatchery.errors import AlreadyGeneratedError
from hatchery.storage.models import Task
from hatchery.storage.store import SchedulingStore, TaskDraft

logger = logging.getLogger(__name__)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def should_generate(last_generated: Optional[date], target: date, interval_days: Optional[int]) -> bool:
    """Whether a job is due on ``target`` given its last generation date.

    A job that has never generated is always due. An interval of 0 (or unset)
    means every run is due.
    """
    if last_generated is None:
        return True
    return (target - last_generated).days >= (interval_days or 0)


async def _insert_drafts(store: SchedulingStore, drafts: list[TaskDraft]) -> list[Task]:
    try:
        return await store.insert_tasks(drafts)
    except AlreadyGeneratedError as e:
        # Lost a race with another generation pass for the same date
        logger.info("Skipping generation: %s", e)
        return []


async def generate_tasks_from_phase(
    store: SchedulingStore,
    project_id: UUID,
    phase_id: UUID,
    due_date: date,
) -> list[Task]:
    """Create one task per phase-task template of ``phase_id``, in template order."""
    templates = await store.list_phase_tasks(phase_id)
    if not templates:
        return []

    drafts = [
        TaskDraft(
            kind="project",
            owner_id=project_id,
            template_task_id=t.id,
            title=t.title,
            description=t.description or None,
            time_window=t.time_window or None,
            scheduled_time=t.scheduled_time,
            due_date=due_date,
        )
        for t in templates
    ]
    tasks = await _insert_drafts(store, drafts)
    if tasks:
        logger.info("Generated %d tasks for project %s on %s", len(tasks), project_id, due_date)
    return tasks


async def generate_tasks_for_project(
    store: SchedulingStore,
    project_id: UUID,
    due_date: Optional[date] = None,
) -> list[Task]:
    """Generate the current phase's tasks unless the project already has tasks that day."""
    target = due_date or today_utc()

    project = await store.get_project(project_id)
    if project is None:
        logger.warning("Project %s not found, nothing generated", project_id)
        return []
    if not project.current_phase_id:
        return []

    existing = await store.find_tasks(project_id=project_id, due_date=target, limit=1)
    if existing:
        return []

    return await generate_tasks_from_phase(store, project_id, project.current_phase_id, target)


async def generate_tasks_from_job(
    store: SchedulingStore,
    job_id: UUID,
    due_date: date,
) -> list[Task]:
    """Create one task per job-task template of ``job_id``, in template order."""
    templates = await store.list_job_tasks(job_id)
    if not templates:
        return []

    drafts = [
        TaskDraft(
            kind="job",
            owner_id=job_id,
            template_task_id=t.id,
            title=t.title,
            description=t.description or None,
            time_window=t.time_window or None,
            scheduled_time=t.scheduled_time,
            due_date=due_date,
        )
        for t in templates
    ]
    tasks = await _insert_drafts(store, drafts)
    if tasks:
        logger.info("Generated %d tasks for job %s on %s", len(tasks), job_id, due_date)
    return tasks


async def generate_tasks_for_job(
    store: SchedulingStore,
    job_id: UUID,
    due_date: Optional[date] = None,
) -> list[Task]:
    """Generate a job's tasks if it is active and its interval has elapsed."""
    target = due_date or today_utc()

    job = await store.get_job(job_id)
    if job is None:
        logger.warning("Job %s not found, nothing generated", job_id)
        return []
    if job.status != "active":
        return []

    last_generated = await store.latest_job_due_date(job_id)
    if not should_generate(last_generated, target, job.interval_days):
        logger.debug(
            "Job %s not due on %s (last %s, every %s days)",
            job_id, target, last_generated, job.interval_days,
        )
        return []

    existing = await store.find_tasks(job_id=job_id, due_date=target, limit=1)
    if existing:
        return []

    return await generate_tasks_from_job(store, job_id, target)
