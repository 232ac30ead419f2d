"""Shared test fixtures."""

import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from hatchery.errors import AlreadyGeneratedError, StoreError
from hatchery.storage.models import (
    Job,
    JobTask,
    JobTaskTemplate,
    Phase,
    PhaseTaskTemplate,
    Project,
    ProjectHistory,
    Template,
)


class FakeStore:
    """In-memory stand-in for SchedulingStore holding transient ORM objects."""

    def __init__(self):
        self.templates: dict[uuid.UUID, Template] = {}
        self.phases: dict[uuid.UUID, Phase] = {}
        self.phase_tasks: dict[uuid.UUID, PhaseTaskTemplate] = {}
        self.jobs: dict[uuid.UUID, Job] = {}
        self.job_tasks: dict[uuid.UUID, JobTaskTemplate] = {}
        self.projects: dict[uuid.UUID, Project] = {}
        self.tasks: list = []
        self.history: list[ProjectHistory] = []
        self.insert_calls = 0
        # Owner IDs whose inserts fail / collide
        self.failing_owners: set[uuid.UUID] = set()
        self.conflicting_owners: set[uuid.UUID] = set()

    # --- Seeding helpers ---

    def add_template(self, name: str = "Spawning cycle", type: str = "lifecycle") -> Template:
        template = Template(id=uuid.uuid4(), name=name, type=type)
        self.templates[template.id] = template
        return template

    def add_phase(
        self,
        template: Template,
        order_index: int,
        duration_days: Optional[int] = None,
        name: Optional[str] = None,
        requires_sequential: bool = False,
    ) -> Phase:
        phase = Phase(
            id=uuid.uuid4(),
            template_id=template.id,
            name=name or f"Phase {order_index}",
            order_index=order_index,
            duration_days=duration_days,
            requires_sequential=requires_sequential,
        )
        self.phases[phase.id] = phase
        return phase

    def add_phase_task(
        self,
        phase: Phase,
        title: str,
        order_index: int = 0,
        time_window: Optional[str] = None,
        scheduled_time: Optional[time] = None,
        description: Optional[str] = None,
    ) -> PhaseTaskTemplate:
        template_task = PhaseTaskTemplate(
            id=uuid.uuid4(),
            phase_id=phase.id,
            title=title,
            description=description,
            order_index=order_index,
            time_window=time_window,
            scheduled_time=scheduled_time,
        )
        self.phase_tasks[template_task.id] = template_task
        return template_task

    def add_job(
        self,
        name: str = "Evening Feed",
        interval_days: int = 1,
        status: str = "active",
        category: Optional[str] = None,
        requires_sequential: bool = False,
    ) -> Job:
        job = Job(
            id=uuid.uuid4(),
            name=name,
            interval_days=interval_days,
            status=status,
            category=category,
            requires_sequential=requires_sequential,
        )
        self.jobs[job.id] = job
        return job

    def add_job_task(
        self,
        job: Job,
        title: str,
        order_index: int = 0,
        time_window: Optional[str] = None,
    ) -> JobTaskTemplate:
        template_task = JobTaskTemplate(
            id=uuid.uuid4(),
            job_id=job.id,
            title=title,
            order_index=order_index,
            time_window=time_window,
        )
        self.job_tasks[template_task.id] = template_task
        return template_task

    def add_project(
        self,
        name: str = "Clownfish pair 3",
        template: Optional[Template] = None,
        phase: Optional[Phase] = None,
        status: str = "active",
        started_at: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> Project:
        now = datetime.now(timezone.utc)
        project = Project(
            id=uuid.uuid4(),
            name=name,
            description=description,
            template_id=template.id if template else None,
            current_phase_id=phase.id if phase else None,
            status=status,
            started_at=started_at,
            created_at=now,
            updated_at=now,
        )
        self.projects[project.id] = project
        return project

    def add_history(
        self,
        project: Project,
        action: str,
        phase: Optional[Phase] = None,
        created_at: Optional[datetime] = None,
        metadata: Optional[dict] = None,
    ) -> ProjectHistory:
        entry = ProjectHistory(
            id=uuid.uuid4(),
            project_id=project.id,
            phase_id=phase.id if phase else None,
            action=action,
            metadata_=metadata or {},
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.history.append(entry)
        return entry

    def history_for(self, project: Project, action: Optional[str] = None) -> list[ProjectHistory]:
        return [
            h for h in self.history
            if h.project_id == project.id and (action is None or h.action == action)
        ]

    # --- SchedulingStore interface ---

    @asynccontextmanager
    async def isolated(self):
        yield

    async def list_phase_tasks(self, phase_id):
        found = [t for t in self.phase_tasks.values() if t.phase_id == phase_id]
        return sorted(found, key=lambda t: t.order_index)

    async def list_job_tasks(self, job_id):
        found = [t for t in self.job_tasks.values() if t.job_id == job_id]
        return sorted(found, key=lambda t: t.order_index)

    async def get_phase(self, phase_id):
        return self.phases.get(phase_id)

    async def get_first_phase(self, template_id):
        found = [p for p in self.phases.values() if p.template_id == template_id]
        return min(found, key=lambda p: p.order_index) if found else None

    async def get_next_phase(self, template_id, after_order_index):
        found = [
            p for p in self.phases.values()
            if p.template_id == template_id and p.order_index > after_order_index
        ]
        return min(found, key=lambda p: p.order_index) if found else None

    async def insert_tasks(self, drafts):
        if not drafts:
            return []
        self.insert_calls += 1
        owner = drafts[0].owner_id
        if owner in self.failing_owners:
            raise StoreError(f"connection reset while inserting tasks for {owner}")
        if owner in self.conflicting_owners:
            raise AlreadyGeneratedError(owner, drafts[0].due_date)

        tasks = [d.to_task() for d in drafts]
        for task in tasks:
            task.id = uuid.uuid4()
            if isinstance(task, JobTask):
                task.job = self.jobs.get(task.job_id)
                task.job_task = self.job_tasks.get(task.job_task_id)
            else:
                task.project = self.projects.get(task.project_id)
                phase_task = self.phase_tasks.get(task.phase_task_id)
                if phase_task is not None:
                    phase_task.phase = self.phases.get(phase_task.phase_id)
                task.phase_task = phase_task
        self.tasks.extend(tasks)
        return tasks

    async def find_tasks(self, project_id=None, job_id=None, due_date=None, limit=None):
        found = [
            t for t in self.tasks
            if (project_id is None or t.project_id == project_id)
            and (job_id is None or t.job_id == job_id)
            and (due_date is None or t.due_date == due_date)
        ]
        return found[:limit] if limit else found

    async def latest_job_due_date(self, job_id):
        dates = [t.due_date for t in self.tasks if t.job_id == job_id]
        return max(dates) if dates else None

    async def get_task(self, task_id):
        return next((t for t in self.tasks if t.id == task_id), None)

    async def get_tasks(self, task_ids):
        by_id = {t.id: t for t in self.tasks}
        return [by_id[i] for i in task_ids if i in by_id]

    async def update_task(self, task_id, patch):
        task = await self.get_task(task_id)
        if task is None:
            return None
        for key, value in patch.items():
            setattr(task, key, value)
        return task

    async def list_tasks(self, status=None, due_date=None, time_window=None,
                         project_id=None, job_id=None, assigned_to=None, limit=None):
        found = await self.find_tasks(project_id=project_id, job_id=job_id, due_date=due_date)
        if status:
            found = [t for t in found if t.status == status]
        if time_window:
            found = [t for t in found if t.time_window == time_window]
        return found[:limit] if limit else found

    async def get_project(self, project_id):
        return self.projects.get(project_id)

    async def create_project(self, **fields):
        project = Project(id=uuid.uuid4(), **fields)
        self.projects[project.id] = project
        return project

    async def update_project(self, project_id, patch):
        project = self.projects.get(project_id)
        if project is None:
            return None
        for key, value in patch.items():
            setattr(project, key, value)
        return project

    async def list_active_projects(self):
        return [p for p in self.projects.values() if p.status == "active"]

    async def list_projects(self, status=None):
        return [p for p in self.projects.values() if status is None or p.status == status]

    async def get_job(self, job_id):
        return self.jobs.get(job_id)

    async def update_job(self, job_id, patch):
        job = self.jobs.get(job_id)
        if job is None:
            return None
        for key, value in patch.items():
            setattr(job, key, value)
        return job

    async def list_active_jobs(self):
        return [j for j in self.jobs.values() if j.status == "active"]

    async def list_jobs(self, status=None):
        return [j for j in self.jobs.values() if status is None or j.status == status]

    async def append_history(self, project_id, action, phase_id=None, metadata=None, created_by=None):
        entry = ProjectHistory(
            id=uuid.uuid4(),
            project_id=project_id,
            phase_id=phase_id,
            action=action,
            metadata_=metadata or {},
            created_by=created_by,
            created_at=datetime.now(timezone.utc),
        )
        self.history.append(entry)
        return entry

    async def find_latest_history(self, project_id, phase_id, action):
        found = [
            h for h in self.history
            if h.project_id == project_id and h.phase_id == phase_id and h.action == action
        ]
        return max(found, key=lambda h: h.created_at) if found else None

    async def list_history(self, project_id):
        found = [h for h in self.history if h.project_id == project_id]
        return sorted(found, key=lambda h: h.created_at, reverse=True)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def today():
    return date(2024, 1, 8)


@pytest.fixture
def mock_session():
    """AsyncMock session whose ``begin_nested()`` works as an async context manager."""
    session = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    savepoint = MagicMock()
    savepoint.__aenter__ = AsyncMock()
    savepoint.__aexit__ = AsyncMock(return_value=False)
    session.begin_nested = MagicMock(return_value=savepoint)
    return session
