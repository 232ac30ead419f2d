"""Project history log: append-only record of lifecycle transitions.

The most recent ``phase_started`` entry for a project's current phase is the
only source of truth for when that phase began, so entries are never updated
or deleted.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hatchery.storage.models import HISTORY_ACTIONS, ProjectHistory

logger = logging.getLogger(__name__)


async def append_history(
    session: AsyncSession,
    project_id: UUID,
    action: str,
    phase_id: Optional[UUID] = None,
    metadata: Optional[dict] = None,
    created_by: Optional[str] = None,
) -> ProjectHistory:
    """Record a lifecycle event for a project."""
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown history action: {action}")

    entry = ProjectHistory(
        project_id=project_id,
        phase_id=phase_id,
        action=action,
        metadata_=metadata or {},
        created_by=created_by,
    )
    session.add(entry)
    await session.flush()
    logger.debug("History %s for project %s (phase %s)", action, project_id, phase_id)
    return entry


async def find_latest_history(
    session: AsyncSession,
    project_id: UUID,
    phase_id: Optional[UUID],
    action: str,
) -> Optional[ProjectHistory]:
    """Most recent entry for (project, phase, action), if any."""
    query = select(ProjectHistory).where(
        ProjectHistory.project_id == project_id,
        ProjectHistory.action == action,
    )
    if phase_id is None:
        query = query.where(ProjectHistory.phase_id.is_(None))
    else:
        query = query.where(ProjectHistory.phase_id == phase_id)

    result = await session.execute(query.order_by(ProjectHistory.created_at.desc()).limit(1))
    return result.scalar_one_or_none()


async def list_project_history(session: AsyncSession, project_id: UUID) -> list[ProjectHistory]:
    """All entries for a project, newest first."""
    result = await session.execute(
        select(ProjectHistory)
        .where(ProjectHistory.project_id == project_id)
        .order_by(ProjectHistory.created_at.desc())
    )
    return list(result.scalars().all())
