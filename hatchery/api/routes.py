"""FastAPI REST API for Hatchery."""

import logging
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from hatchery.config import get_settings
from hatchery.errors import InvalidTransitionError, SequenceError
from hatchery.storage.db import get_session
from hatchery.storage.store import SchedulingStore

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Hatchery API",
    description="Task scheduling for hatchery operations",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Pydantic request/response models ---

class ProjectResponse(BaseModel):
    id: UUID
    name: str
    status: str
    description: Optional[str] = None
    template_id: Optional[UUID] = None
    current_phase_id: Optional[UUID] = None
    current_phase_name: Optional[str] = None
    current_phase_order: Optional[int] = None
    tank_name: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProjectCreateRequest(BaseModel):
    name: str
    template_id: Optional[UUID] = None
    description: Optional[str] = None
    current_phase_id: Optional[UUID] = None
    created_by: Optional[str] = None


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    current_phase_id: Optional[UUID] = None
    status: Optional[str] = None
    updated_by: Optional[str] = None


class HistoryResponse(BaseModel):
    id: UUID
    project_id: UUID
    phase_id: Optional[UUID] = None
    action: str
    metadata: dict = Field(default_factory=dict)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class JobResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    interval_days: int = 1
    status: str
    category: Optional[str] = None
    requires_sequential: bool = False

    model_config = {"from_attributes": True}


class TaskResponse(BaseModel):
    id: UUID
    kind: str
    title: str
    status: str
    due_date: date
    owner_id: Optional[UUID] = None
    owner_name: Optional[str] = None
    description: Optional[str] = None
    time_window: Optional[str] = None
    scheduled_time: Optional[time] = None
    template_order: Optional[int] = None
    requires_sequential: bool = False
    tank_name: Optional[str] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None


class TaskStatusRequest(BaseModel):
    status: str
    completed_by: Optional[str] = None
    notes: Optional[str] = None


class SweepFailureItem(BaseModel):
    kind: str
    unit_id: UUID
    error: str


class SweepResponse(BaseModel):
    target_date: date
    generated: int
    tasks: list[TaskResponse] = Field(default_factory=list)
    failures: list[SweepFailureItem] = Field(default_factory=list)


class PhaseAdvanceItem(BaseModel):
    project_id: UUID
    from_phase: UUID
    to_phase: Optional[UUID] = None
    completed: bool = False


def _project_response(project) -> ProjectResponse:
    from hatchery.tasks import extract_tank_name

    phase = project.current_phase
    return ProjectResponse(
        id=project.id,
        name=project.name,
        status=project.status,
        description=project.description,
        template_id=project.template_id,
        current_phase_id=project.current_phase_id,
        current_phase_name=phase.name if phase else None,
        current_phase_order=phase.order_index if phase else None,
        tank_name=extract_tank_name(project.description),
        started_at=project.started_at,
        completed_at=project.completed_at,
    )


def _sweep_response(result, tasks: list) -> SweepResponse:
    from hatchery.tasks import task_view

    return SweepResponse(
        target_date=result.target_date,
        generated=len(result.tasks),
        tasks=[TaskResponse(**task_view(t)) for t in tasks],
        failures=[
            SweepFailureItem(kind=f.kind, unit_id=f.unit_id, error=f.error)
            for f in result.failures
        ],
    )


async def _loaded_sweep_response(store: SchedulingStore, result) -> SweepResponse:
    """Reload the sweep's new tasks with owners and templates, then build the response."""
    tasks = await store.get_tasks([t.id for t in result.tasks])
    return _sweep_response(result, tasks)


# --- Endpoints ---

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/projects", response_model=list[ProjectResponse])
async def list_projects(status: Optional[str] = Query(None)):
    """List projects, optionally filtered by status."""
    async with get_session() as session:
        projects = await SchedulingStore(session).list_projects(status=status)
        return [_project_response(p) for p in projects]


@app.get("/projects/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: UUID):
    """Get a single project with its current phase."""
    async with get_session() as session:
        project = await SchedulingStore(session).get_project(project_id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")
        return _project_response(project)


@app.post("/projects", response_model=ProjectResponse, status_code=201)
async def create_project(request: ProjectCreateRequest):
    """Create a project in its template's first phase."""
    from hatchery.lifecycle import create_project as _create

    try:
        async with get_session() as session:
            project = await _create(
                SchedulingStore(session),
                name=request.name,
                template_id=request.template_id,
                description=request.description,
                current_phase_id=request.current_phase_id,
                created_by=request.created_by,
            )
            await session.refresh(project, attribute_names=["current_phase"])
            return _project_response(project)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.patch("/projects/{project_id}", response_model=ProjectResponse)
async def update_project(project_id: UUID, request: ProjectUpdateRequest):
    """Manually change a project's phase, status, name or description."""
    from hatchery.lifecycle import update_project as _update

    try:
        async with get_session() as session:
            project = await _update(
                SchedulingStore(session),
                project_id,
                current_phase_id=request.current_phase_id,
                status=request.status,
                name=request.name,
                description=request.description,
                updated_by=request.updated_by,
            )
            if not project:
                raise HTTPException(status_code=404, detail="Project not found")
            await session.refresh(project, attribute_names=["current_phase"])
            return _project_response(project)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/projects/{project_id}/history", response_model=list[HistoryResponse])
async def project_history(project_id: UUID):
    """Lifecycle history for a project, newest first."""
    async with get_session() as session:
        entries = await SchedulingStore(session).list_history(project_id)
        return [
            HistoryResponse(
                id=h.id,
                project_id=h.project_id,
                phase_id=h.phase_id,
                action=h.action,
                metadata=h.metadata_ or {},
                created_by=h.created_by,
                created_at=h.created_at,
            )
            for h in entries
        ]


@app.get("/jobs", response_model=list[JobResponse])
async def list_jobs(status: Optional[str] = Query(None)):
    """List recurring jobs."""
    async with get_session() as session:
        return await SchedulingStore(session).list_jobs(status=status)


@app.get("/tasks", response_model=list[TaskResponse])
async def list_tasks(
    status: Optional[str] = Query(None),
    due_date: Optional[date] = Query(None),
    time_window: Optional[str] = Query(None),
    project_id: Optional[UUID] = Query(None),
    job_id: Optional[UUID] = Query(None),
    assigned_to: Optional[str] = Query(None),
    limit: int = Query(200, le=1000),
):
    """List tasks with their project or job details."""
    from hatchery.tasks import task_view

    async with get_session() as session:
        tasks = await SchedulingStore(session).list_tasks(
            status=status,
            due_date=due_date,
            time_window=time_window,
            project_id=project_id,
            job_id=job_id,
            assigned_to=assigned_to,
            limit=limit,
        )
        return [TaskResponse(**task_view(t)) for t in tasks]


@app.patch("/tasks/{task_id}/status", response_model=TaskResponse)
async def set_task_status(task_id: UUID, request: TaskStatusRequest):
    """Move a task to a new status."""
    from hatchery.tasks import task_view, update_task_status

    try:
        async with get_session() as session:
            task = await update_task_status(
                SchedulingStore(session),
                task_id,
                request.status,
                completed_by=request.completed_by,
                notes=request.notes,
            )
            if not task:
                raise HTTPException(status_code=404, detail="Task not found")
            return TaskResponse(**task_view(task))
    except SequenceError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.post("/generate/daily", response_model=SweepResponse)
async def trigger_daily(target_date: Optional[date] = Query(None, alias="date")):
    """Generate the day's tasks for all active projects and due jobs."""
    from hatchery.scheduling.orchestrator import generate_daily_tasks

    async with get_session() as session:
        store = SchedulingStore(session)
        result = await generate_daily_tasks(store, target_date)
        return await _loaded_sweep_response(store, result)


@app.post("/generate/category/{category}", response_model=SweepResponse)
async def trigger_category(category: str, target_date: Optional[date] = Query(None, alias="date")):
    """Generate the day's tasks for one job category (open_shop, close_shop)."""
    from hatchery.scheduling.orchestrator import generate_tasks_by_category

    keywords = get_settings().categories.as_mapping()
    if category not in keywords:
        raise HTTPException(status_code=404, detail=f"Unknown category: {category}")

    async with get_session() as session:
        store = SchedulingStore(session)
        result = await generate_tasks_by_category(store, category, target_date, keywords=keywords)
        return await _loaded_sweep_response(store, result)


@app.post("/generate/regular", response_model=SweepResponse)
async def trigger_regular(target_date: Optional[date] = Query(None, alias="date")):
    """Generate the day's tasks for projects and jobs outside the shop categories."""
    from hatchery.scheduling.orchestrator import generate_regular_tasks

    keywords = get_settings().categories.as_mapping()
    async with get_session() as session:
        store = SchedulingStore(session)
        result = await generate_regular_tasks(store, target_date, keywords=keywords)
        return await _loaded_sweep_response(store, result)


@app.post("/phases/advance", response_model=list[PhaseAdvanceItem])
async def trigger_advance():
    """Advance every active project whose current phase has run its duration."""
    from hatchery.scheduling.advancement import check_and_advance_phases

    async with get_session() as session:
        advanced = await check_and_advance_phases(SchedulingStore(session))
        return [
            PhaseAdvanceItem(
                project_id=a.project_id,
                from_phase=a.from_phase,
                to_phase=a.to_phase,
                completed=a.completed,
            )
            for a in advanced
        ]
