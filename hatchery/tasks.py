"""Task status changes and display shaping."""

import logging
import re
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from hatchery.errors import SequenceError
from hatchery.storage.models import TASK_STATUSES, TIME_WINDOWS, ProjectTask, Task
from hatchery.storage.store import SchedulingStore

logger = logging.getLogger(__name__)

FINISHED_STATUSES = frozenset({"completed", "skipped", "cancelled"})
_TANK_RE = re.compile(r"Tank:\s*([^\n]+)", re.IGNORECASE)


def extract_tank_name(description: Optional[str]) -> Optional[str]:
    """Pull the tank name out of a ``Tank: <name>`` line in a project description."""
    if not description:
        return None
    match = _TANK_RE.search(description)
    return match.group(1).strip() if match else None


async def blocking_tasks(store: SchedulingStore, task: Task) -> list[Task]:
    """Unfinished earlier tasks of the same sequential phase or job on the same day."""
    if not task.requires_sequential or task.template_order is None:
        return []

    if isinstance(task, ProjectTask):
        siblings = await store.list_tasks(project_id=task.project_id, due_date=task.due_date)
    else:
        siblings = await store.list_tasks(job_id=task.job_id, due_date=task.due_date)

    return [
        t for t in siblings
        if t.id != task.id
        and t.template_order is not None
        and t.template_order < task.template_order
        and t.status not in FINISHED_STATUSES
    ]


async def update_task_status(
    store: SchedulingStore,
    task_id: UUID,
    status: str,
    completed_by: Optional[str] = None,
    notes: Optional[str] = None,
    enforce_sequence: bool = True,
) -> Optional[Task]:
    """Change a task's status, stamping completion details when it is completed.

    Returns None when the task does not exist.
    """
    if status not in TASK_STATUSES:
        raise ValueError(f"Unknown task status: {status}")

    task = await store.get_task(task_id)
    if task is None:
        return None

    if enforce_sequence and status in ("in_progress", "completed"):
        blockers = await blocking_tasks(store, task)
        if blockers:
            raise SequenceError(task_id, blockers)

    patch: dict = {"status": status}
    if notes:
        patch["completion_notes"] = notes
    if status == "completed" and task.completed_at is None:
        patch["completed_at"] = datetime.now(timezone.utc)
        patch["completed_by"] = completed_by

    task = await store.update_task(task_id, patch)
    logger.info("Task %s -> %s", task_id, status)
    return task


def task_view(task: Task) -> dict:
    """Flatten a loaded task with its owner details for display."""
    view = {
        "id": task.id,
        "kind": task.kind,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "time_window": task.time_window,
        "scheduled_time": task.scheduled_time,
        "due_date": task.due_date,
        "owner_id": task.owner_id,
        "owner_name": task.owner_name or ("Unknown Project" if task.kind == "project" else "Unknown Job"),
        "template_order": task.template_order,
        "requires_sequential": task.requires_sequential,
        "completed_at": task.completed_at,
        "completed_by": task.completed_by,
        "tank_name": None,
    }
    if isinstance(task, ProjectTask) and task.project is not None:
        view["tank_name"] = extract_tank_name(task.project.description)
    return view


def group_by_time_window(tasks: list[Task]) -> dict[str, list[Task]]:
    """Bucket tasks by time window in the day's order; tasks without one are dropped."""
    grouped: dict[str, list[Task]] = {window: [] for window in TIME_WINDOWS}
    for task in tasks:
        if task.time_window in grouped:
            grouped[task.time_window].append(task)
    return grouped
