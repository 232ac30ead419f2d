"""Project lifecycle: creation and manual phase/status changes.

Every change here is mirrored into the project history so the advancement
sweep can tell when the current phase began.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from hatchery.errors import InvalidTransitionError
from hatchery.storage.models import PROJECT_STATUSES, TERMINAL_PROJECT_STATUSES, Project
from hatchery.storage.store import SchedulingStore

logger = logging.getLogger(__name__)


async def _check_phase(store: SchedulingStore, phase_id: UUID, template_id: Optional[UUID]) -> None:
    """Reject a phase that does not exist or belongs to a different template."""
    phase = await store.get_phase(phase_id)
    if phase is None:
        raise InvalidTransitionError(f"Unknown phase: {phase_id}")
    if template_id is not None and phase.template_id != template_id:
        raise InvalidTransitionError(
            f"Phase {phase.name} belongs to template {phase.template_id}, not {template_id}"
        )


async def create_project(
    store: SchedulingStore,
    name: str,
    template_id: Optional[UUID] = None,
    description: Optional[str] = None,
    current_phase_id: Optional[UUID] = None,
    started_at: Optional[datetime] = None,
    created_by: Optional[str] = None,
) -> Project:
    """Create a project, starting it in its template's first phase by default."""
    if current_phase_id is not None:
        await _check_phase(store, current_phase_id, template_id)
    if current_phase_id is None and template_id is not None:
        first = await store.get_first_phase(template_id)
        if first is not None:
            current_phase_id = first.id

    now = datetime.now(timezone.utc)
    project = await store.create_project(
        name=name,
        description=description,
        template_id=template_id,
        current_phase_id=current_phase_id,
        status="active",
        started_at=started_at or now,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )

    if project.current_phase_id:
        await store.append_history(
            project.id,
            "phase_started",
            phase_id=project.current_phase_id,
            metadata={"initial_phase": True},
            created_by=created_by,
        )
    await store.append_history(
        project.id,
        "project_created",
        metadata={"template_id": str(template_id) if template_id else None},
        created_by=created_by,
    )
    logger.info("Created project %s (%s)", project.name, project.id)
    return project


async def update_project(
    store: SchedulingStore,
    project_id: UUID,
    current_phase_id: Optional[UUID] = None,
    status: Optional[str] = None,
    name: Optional[str] = None,
    description: Optional[str] = None,
    updated_by: Optional[str] = None,
) -> Optional[Project]:
    """Apply a manual update and log phase and status changes.

    Returns None when the project does not exist.
    """
    project = await store.get_project(project_id)
    if project is None:
        return None

    old_phase_id = project.current_phase_id
    old_status = project.status

    patch: dict = {}
    if name is not None:
        patch["name"] = name
    if description is not None:
        patch["description"] = description
    if current_phase_id is not None and current_phase_id != old_phase_id:
        await _check_phase(store, current_phase_id, project.template_id)
        patch["current_phase_id"] = current_phase_id

    if status is not None and status != old_status:
        if status not in PROJECT_STATUSES:
            raise InvalidTransitionError(f"Unknown project status: {status}")
        if old_status in TERMINAL_PROJECT_STATUSES:
            raise InvalidTransitionError(f"Project {project_id} is {old_status} and cannot become {status}")
        patch["status"] = status
        if status == "completed":
            patch["completed_at"] = datetime.now(timezone.utc)

    if not patch:
        return project

    project = await store.update_project(project_id, patch)

    if current_phase_id is not None and current_phase_id != old_phase_id:
        if old_phase_id:
            await store.append_history(
                project_id,
                "phase_completed",
                phase_id=old_phase_id,
                metadata={"manual_change": True},
                created_by=updated_by,
            )
        await store.append_history(
            project_id,
            "phase_started",
            phase_id=current_phase_id,
            metadata={"manual_change": True},
            created_by=updated_by,
        )

    if "status" in patch:
        await store.append_history(
            project_id,
            "status_changed",
            metadata={"old_status": old_status, "new_status": status, "manual_change": True},
            created_by=updated_by,
        )

    return project
