"""Daily, category and regular task-generation sweeps.

Each sweep walks active projects and/or jobs and delegates to the
generators. Every project or job is an independent unit: it runs in its own
savepoint, and a failure is recorded on the result and logged instead of
aborting the rest of the sweep.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Optional
from uuid import UUID

from hatchery.scheduling.categories import CATEGORY_KEYWORDS, job_categories, is_regular_job
from hatchery.scheduling.generator import (
    generate_tasks_for_job,
    generate_tasks_for_project,
    generate_tasks_from_job,
    today_utc,
)
from hatchery.storage.models import Task
from hatchery.storage.store import SchedulingStore

logger = logging.getLogger(__name__)


@dataclass
class SweepFailure:
    kind: str  # "project" | "job"
    unit_id: UUID
    error: str


@dataclass
class SweepResult:
    target_date: date
    tasks: list[Task] = field(default_factory=list)
    failures: list[SweepFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


async def _run_unit(
    store: SchedulingStore,
    result: SweepResult,
    kind: str,
    unit_id: UUID,
    generate: Callable[[], Awaitable[list[Task]]],
) -> None:
    try:
        async with store.isolated():
            tasks = await generate()
    except Exception as e:
        logger.error("Task generation failed for %s %s: %s", kind, unit_id, e)
        result.failures.append(SweepFailure(kind=kind, unit_id=unit_id, error=str(e)))
        return
    result.tasks.extend(tasks)


async def _generate_for_projects(store: SchedulingStore, result: SweepResult) -> None:
    for project in await store.list_active_projects():
        if not project.current_phase_id:
            continue
        project_id = project.id
        await _run_unit(
            store, result, "project", project_id,
            lambda: generate_tasks_for_project(store, project_id, result.target_date),
        )


async def generate_daily_tasks(
    store: SchedulingStore,
    target_date: Optional[date] = None,
) -> SweepResult:
    """Generate today's tasks for every active project and every due active job."""
    result = SweepResult(target_date=target_date or today_utc())

    await _generate_for_projects(store, result)

    for job in await store.list_active_jobs():
        job_id = job.id
        await _run_unit(
            store, result, "job", job_id,
            lambda: generate_tasks_for_job(store, job_id, result.target_date),
        )

    logger.info(
        "Daily sweep for %s: %d tasks, %d failures",
        result.target_date, len(result.tasks), len(result.failures),
    )
    return result


async def _generate_job_unconditionally(store: SchedulingStore, job_id: UUID, target: date) -> list[Task]:
    existing = await store.find_tasks(job_id=job_id, due_date=target, limit=1)
    if existing:
        return []
    return await generate_tasks_from_job(store, job_id, target)


async def generate_tasks_by_category(
    store: SchedulingStore,
    category: str,
    target_date: Optional[date] = None,
    keywords: Optional[dict[str, list[str]]] = None,
) -> SweepResult:
    """Generate tasks for the jobs of one category, ignoring their intervals.

    Used by the opening/closing login workflow: a matching job gets its tasks
    for the day unless it already has some.
    """
    keywords = keywords if keywords is not None else CATEGORY_KEYWORDS
    result = SweepResult(target_date=target_date or today_utc())

    if category not in keywords:
        logger.warning("Unknown job category %r, nothing generated", category)
        return result

    for job in await store.list_active_jobs():
        if category not in job_categories(job, keywords):
            continue
        job_id = job.id
        await _run_unit(
            store, result, "job", job_id,
            lambda: _generate_job_unconditionally(store, job_id, result.target_date),
        )

    logger.info(
        "%s sweep for %s: %d tasks, %d failures",
        category, result.target_date, len(result.tasks), len(result.failures),
    )
    return result


async def generate_regular_tasks(
    store: SchedulingStore,
    target_date: Optional[date] = None,
    keywords: Optional[dict[str, list[str]]] = None,
) -> SweepResult:
    """Generate for all lifecycle projects and every job outside the shop categories."""
    keywords = keywords if keywords is not None else CATEGORY_KEYWORDS
    result = SweepResult(target_date=target_date or today_utc())

    await _generate_for_projects(store, result)

    for job in await store.list_active_jobs():
        if not is_regular_job(job, keywords):
            continue
        job_id = job.id
        await _run_unit(
            store, result, "job", job_id,
            lambda: generate_tasks_for_job(store, job_id, result.target_date),
        )

    logger.info(
        "Regular sweep for %s: %d tasks, %d failures",
        result.target_date, len(result.tasks), len(result.failures),
    )
    return result
