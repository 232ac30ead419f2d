"""Relational store used by the scheduling engine.

``SchedulingStore`` wraps one ``AsyncSession`` and exposes the reads and
writes the generators, the advancement sweep and the lifecycle helpers need.
Keeping them behind one object lets the engine run against an in-memory
double in tests.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import AsyncIterator, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hatchery.errors import AlreadyGeneratedError, StoreError
from hatchery.storage import history
from hatchery.storage.models import (
    Job,
    JobTask,
    JobTaskTemplate,
    Phase,
    PhaseTaskTemplate,
    Project,
    ProjectHistory,
    ProjectTask,
    Task,
)

logger = logging.getLogger(__name__)

_TASK_LOAD_OPTIONS = (
    selectinload(Task.project),
    selectinload(Task.job),
    selectinload(Task.phase_task).selectinload(PhaseTaskTemplate.phase),
    selectinload(Task.job_task),
)

GENERATION_CONSTRAINTS = frozenset({"uq_tasks_project_generation", "uq_tasks_job_generation"})


def _is_generation_conflict(error: IntegrityError) -> bool:
    """Whether an IntegrityError came from one of the generation unique constraints."""
    orig = error.orig
    # asyncpg reports the constraint on the driver error the DBAPI adapter wraps; psycopg on .diag
    for candidate in (orig, getattr(orig, "__cause__", None), getattr(orig, "diag", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name in GENERATION_CONSTRAINTS
    text = str(orig)
    return any(name in text for name in GENERATION_CONSTRAINTS)


@dataclass
class TaskDraft:
    """A task that a generator wants to insert."""

    kind: str  # "project" | "job"
    owner_id: UUID
    template_task_id: UUID
    title: str
    due_date: date
    description: Optional[str] = None
    time_window: Optional[str] = None
    scheduled_time: Optional[time] = None

    def to_task(self) -> Task:
        now = datetime.now(timezone.utc)
        common = dict(
            title=self.title,
            description=self.description,
            status="pending",
            time_window=self.time_window,
            scheduled_time=self.scheduled_time,
            due_date=self.due_date,
            created_at=now,
            updated_at=now,
        )
        if self.kind == "project":
            return ProjectTask(
                kind="project",
                project_id=self.owner_id,
                phase_task_id=self.template_task_id,
                **common,
            )
        if self.kind == "job":
            return JobTask(
                kind="job",
                job_id=self.owner_id,
                job_task_id=self.template_task_id,
                **common,
            )
        raise ValueError(f"Unknown task kind: {self.kind}")


class SchedulingStore:
    """Query/insert/update surface over one database session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def isolated(self) -> AsyncIterator[None]:
        """Run a unit of work in a savepoint so its failure leaves siblings intact."""
        async with self.session.begin_nested():
            yield

    # --- Templates ---

    async def list_phase_tasks(self, phase_id: UUID) -> list[PhaseTaskTemplate]:
        result = await self.session.execute(
            select(PhaseTaskTemplate)
            .where(PhaseTaskTemplate.phase_id == phase_id)
            .order_by(PhaseTaskTemplate.order_index.asc())
        )
        return list(result.scalars().all())

    async def list_job_tasks(self, job_id: UUID) -> list[JobTaskTemplate]:
        result = await self.session.execute(
            select(JobTaskTemplate)
            .where(JobTaskTemplate.job_id == job_id)
            .order_by(JobTaskTemplate.order_index.asc())
        )
        return list(result.scalars().all())

    async def get_phase(self, phase_id: UUID) -> Optional[Phase]:
        return await self.session.get(Phase, phase_id)

    async def get_first_phase(self, template_id: UUID) -> Optional[Phase]:
        result = await self.session.execute(
            select(Phase)
            .where(Phase.template_id == template_id)
            .order_by(Phase.order_index.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_next_phase(self, template_id: UUID, after_order_index: int) -> Optional[Phase]:
        """Phase with the smallest order_index strictly greater than the given one."""
        result = await self.session.execute(
            select(Phase)
            .where(Phase.template_id == template_id, Phase.order_index > after_order_index)
            .order_by(Phase.order_index.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # --- Tasks ---

    async def insert_tasks(self, drafts: list[TaskDraft]) -> list[Task]:
        """Insert a batch of tasks atomically; nothing is kept if any row fails.

        Only a violation of one of the generation unique constraints means the
        batch was already generated; any other failure is a ``StoreError``.
        """
        if not drafts:
            return []

        tasks = [d.to_task() for d in drafts]
        try:
            async with self.session.begin_nested():
                self.session.add_all(tasks)
                await self.session.flush()
        except IntegrityError as e:
            if _is_generation_conflict(e):
                raise AlreadyGeneratedError(drafts[0].owner_id, drafts[0].due_date) from e
            raise StoreError(f"Failed to insert {len(tasks)} tasks: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert {len(tasks)} tasks: {e}") from e

        logger.debug("Inserted %d %s tasks for %s", len(tasks), drafts[0].kind, drafts[0].owner_id)
        return tasks

    async def get_tasks(self, task_ids: list[UUID]) -> list[Task]:
        """Reload tasks with owners and templates, in the order of ``task_ids``."""
        if not task_ids:
            return []
        result = await self.session.execute(
            select(Task)
            .options(*_TASK_LOAD_OPTIONS)
            .where(Task.id.in_(task_ids))
            .execution_options(populate_existing=True)
        )
        by_id = {t.id: t for t in result.scalars().all()}
        return [by_id[i] for i in task_ids if i in by_id]

    async def find_tasks(
        self,
        project_id: Optional[UUID] = None,
        job_id: Optional[UUID] = None,
        due_date: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[Task]:
        query = select(Task)
        if project_id is not None:
            query = query.where(Task.project_id == project_id)
        if job_id is not None:
            query = query.where(Task.job_id == job_id)
        if due_date is not None:
            query = query.where(Task.due_date == due_date)
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def latest_job_due_date(self, job_id: UUID) -> Optional[date]:
        """Last generation date for a job: the newest due_date among its tasks."""
        result = await self.session.execute(
            select(func.max(Task.due_date)).where(Task.job_id == job_id)
        )
        return result.scalar_one_or_none()

    async def get_task(self, task_id: UUID) -> Optional[Task]:
        result = await self.session.execute(
            select(Task).options(*_TASK_LOAD_OPTIONS).where(Task.id == task_id)
        )
        return result.scalar_one_or_none()

    async def update_task(self, task_id: UUID, patch: dict) -> Optional[Task]:
        task = await self.get_task(task_id)
        if task is None:
            return None
        for key, value in patch.items():
            setattr(task, key, value)
        await self.session.flush()
        return task

    async def list_tasks(
        self,
        status: Optional[str] = None,
        due_date: Optional[date] = None,
        time_window: Optional[str] = None,
        project_id: Optional[UUID] = None,
        job_id: Optional[UUID] = None,
        assigned_to: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Task]:
        """Tasks with their owners and templates loaded, ordered for display."""
        query = select(Task).options(*_TASK_LOAD_OPTIONS).order_by(
            Task.due_date.asc(), Task.scheduled_time.asc().nullslast()
        )
        if status:
            query = query.where(Task.status == status)
        if due_date:
            query = query.where(Task.due_date == due_date)
        if time_window:
            query = query.where(Task.time_window == time_window)
        if project_id:
            query = query.where(Task.project_id == project_id)
        if job_id:
            query = query.where(Task.job_id == job_id)
        if assigned_to:
            query = query.where(Task.assigned_to == assigned_to)
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # --- Projects ---

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        result = await self.session.execute(
            select(Project).options(selectinload(Project.current_phase)).where(Project.id == project_id)
        )
        return result.scalar_one_or_none()

    async def create_project(self, **fields) -> Project:
        project = Project(**fields)
        self.session.add(project)
        await self.session.flush()
        return project

    async def update_project(self, project_id: UUID, patch: dict) -> Optional[Project]:
        project = await self.get_project(project_id)
        if project is None:
            return None
        for key, value in patch.items():
            setattr(project, key, value)
        await self.session.flush()
        return project

    async def list_active_projects(self) -> list[Project]:
        return await self.list_projects(status="active")

    async def list_projects(self, status: Optional[str] = None) -> list[Project]:
        query = select(Project).options(selectinload(Project.current_phase)).order_by(
            Project.created_at.desc()
        )
        if status:
            query = query.where(Project.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # --- Jobs ---

    async def get_job(self, job_id: UUID) -> Optional[Job]:
        return await self.session.get(Job, job_id)

    async def update_job(self, job_id: UUID, patch: dict) -> Optional[Job]:
        job = await self.get_job(job_id)
        if job is None:
            return None
        for key, value in patch.items():
            setattr(job, key, value)
        await self.session.flush()
        return job

    async def list_active_jobs(self) -> list[Job]:
        return await self.list_jobs(status="active")

    async def list_jobs(self, status: Optional[str] = None) -> list[Job]:
        query = select(Job).order_by(Job.name.asc())
        if status:
            query = query.where(Job.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # --- History ---

    async def append_history(
        self,
        project_id: UUID,
        action: str,
        phase_id: Optional[UUID] = None,
        metadata: Optional[dict] = None,
        created_by: Optional[str] = None,
    ) -> ProjectHistory:
        return await history.append_history(
            self.session, project_id, action, phase_id=phase_id, metadata=metadata, created_by=created_by
        )

    async def find_latest_history(
        self, project_id: UUID, phase_id: Optional[UUID], action: str
    ) -> Optional[ProjectHistory]:
        return await history.find_latest_history(self.session, project_id, phase_id, action)

    async def list_history(self, project_id: UUID) -> list[ProjectHistory]:
        return await history.list_project_history(self.session, project_id)
