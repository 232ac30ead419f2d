"""SQLAlchemy ORM models for Hatchery."""

import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

TIME_WINDOWS = ("first", "morning", "midday", "afternoon", "evening", "last")
TASK_STATUSES = ("pending", "in_progress", "completed", "skipped", "cancelled")
PROJECT_STATUSES = ("active", "paused", "completed", "cancelled")
TERMINAL_PROJECT_STATUSES = frozenset({"completed", "cancelled"})
HISTORY_ACTIONS = (
    "phase_started",
    "phase_completed",
    "status_changed",
    "project_created",
    "project_completed",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in(column: str, values: tuple[str, ...], nullable: bool = False) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    clause = f"{column} IN ({quoted})"
    return f"{clause} OR {column} IS NULL" if nullable else clause


class Base(DeclarativeBase):
    pass


class Template(Base):
    __tablename__ = "templates"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[str] = mapped_column(
        String,
        CheckConstraint("type IN ('lifecycle','recurring_daily','recurring_interval')"),
        default="lifecycle",
    )
    interval_days: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    phases: Mapped[list["Phase"]] = relationship(
        back_populates="template", order_by="Phase.order_index"
    )


class Phase(Base):
    __tablename__ = "phases"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("templates.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_days: Mapped[Optional[int]] = mapped_column(Integer)
    requires_sequential: Mapped[bool] = mapped_column(Boolean, default=False)

    template: Mapped["Template"] = relationship(back_populates="phases")
    tasks: Mapped[list["PhaseTaskTemplate"]] = relationship(
        back_populates="phase", order_by="PhaseTaskTemplate.order_index"
    )

    __table_args__ = (
        UniqueConstraint("template_id", "order_index", name="uq_phases_template_order"),
    )


class PhaseTaskTemplate(Base):
    __tablename__ = "phase_tasks"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    phase_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    time_window: Mapped[Optional[str]] = mapped_column(
        String, CheckConstraint(_in("time_window", TIME_WINDOWS, nullable=True))
    )
    scheduled_time: Mapped[Optional[time]] = mapped_column(Time)
    order_index: Mapped[int] = mapped_column(Integer, default=0)

    phase: Mapped["Phase"] = relationship(back_populates="tasks")

    __table_args__ = (
        Index("idx_phase_tasks_phase", "phase_id", "order_index"),
    )


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    interval_days: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint("status IN ('active','inactive')"),
        default="active",
    )
    # Explicit category; NULL falls back to keyword inference on the name
    category: Mapped[Optional[str]] = mapped_column(
        String,
        CheckConstraint("category IN ('open_shop','close_shop','regular') OR category IS NULL"),
    )
    requires_sequential: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    tasks: Mapped[list["JobTaskTemplate"]] = relationship(
        back_populates="job", order_by="JobTaskTemplate.order_index"
    )

    __table_args__ = (
        Index("idx_jobs_status", "status"),
    )


class JobTaskTemplate(Base):
    __tablename__ = "job_tasks"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    time_window: Mapped[Optional[str]] = mapped_column(
        String, CheckConstraint(_in("time_window", TIME_WINDOWS, nullable=True))
    )
    scheduled_time: Mapped[Optional[time]] = mapped_column(Time)
    order_index: Mapped[int] = mapped_column(Integer, default=0)

    job: Mapped["Job"] = relationship(back_populates="tasks")

    __table_args__ = (
        Index("idx_job_tasks_job", "job_id", "order_index"),
    )


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("templates.id", ondelete="SET NULL")
    )
    current_phase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint(_in("status", PROJECT_STATUSES)),
        default="active",
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    template: Mapped[Optional["Template"]] = relationship()
    current_phase: Mapped[Optional["Phase"]] = relationship()
    tasks: Mapped[list["Task"]] = relationship(back_populates="project")

    __table_args__ = (
        Index("idx_projects_status", "status"),
    )


class Task(Base):
    """A dated unit of work, generated either from a phase or from a job.

    Rows are discriminated by ``kind``; load them through ``ProjectTask`` and
    ``JobTask`` rather than checking which owner column is set.
    """

    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(String, CheckConstraint("kind IN ('project','job')"), nullable=False)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE")
    )
    phase_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phase_tasks.id", ondelete="SET NULL")
    )
    job_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE")
    )
    job_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("job_tasks.id", ondelete="SET NULL")
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String,
        CheckConstraint(_in("status", TASK_STATUSES)),
        default="pending",
    )
    time_window: Mapped[Optional[str]] = mapped_column(
        String, CheckConstraint(_in("time_window", TIME_WINDOWS, nullable=True))
    )
    scheduled_time: Mapped[Optional[time]] = mapped_column(Time)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(Text)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_by: Mapped[Optional[str]] = mapped_column(Text)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow
    )

    project: Mapped[Optional["Project"]] = relationship(back_populates="tasks")
    phase_task: Mapped[Optional["PhaseTaskTemplate"]] = relationship()
    job: Mapped[Optional["Job"]] = relationship()
    job_task: Mapped[Optional["JobTaskTemplate"]] = relationship()

    __mapper_args__ = {"polymorphic_on": "kind"}

    __table_args__ = (
        # A second generation pass for the same template task and date conflicts here
        UniqueConstraint("project_id", "phase_task_id", "due_date", name="uq_tasks_project_generation"),
        UniqueConstraint("job_id", "job_task_id", "due_date", name="uq_tasks_job_generation"),
        CheckConstraint("(project_id IS NULL) <> (job_id IS NULL)", name="ck_tasks_single_owner"),
        Index("idx_tasks_project_due", "project_id", "due_date"),
        Index("idx_tasks_job_due", "job_id", "due_date"),
        Index("idx_tasks_status", "status"),
    )


class ProjectTask(Task):
    __mapper_args__ = {"polymorphic_identity": "project"}

    @property
    def owner_id(self) -> Optional[uuid.UUID]:
        return self.project_id

    @property
    def template_task_id(self) -> Optional[uuid.UUID]:
        return self.phase_task_id

    # The properties below read relationships; load them before access.

    @property
    def owner_name(self) -> Optional[str]:
        return self.project.name if self.project else None

    @property
    def template_order(self) -> Optional[int]:
        return self.phase_task.order_index if self.phase_task else None

    @property
    def requires_sequential(self) -> bool:
        if self.phase_task is None or self.phase_task.phase is None:
            return False
        return bool(self.phase_task.phase.requires_sequential)


class JobTask(Task):
    __mapper_args__ = {"polymorphic_identity": "job"}

    @property
    def owner_id(self) -> Optional[uuid.UUID]:
        return self.job_id

    @property
    def template_task_id(self) -> Optional[uuid.UUID]:
        return self.job_task_id

    @property
    def owner_name(self) -> Optional[str]:
        return self.job.name if self.job else None

    @property
    def template_order(self) -> Optional[int]:
        return self.job_task.order_index if self.job_task else None

    @property
    def requires_sequential(self) -> bool:
        return bool(self.job.requires_sequential) if self.job else False


class ProjectHistory(Base):
    """Append-only audit record of a project's lifecycle."""

    __tablename__ = "project_history"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    phase_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("phases.id", ondelete="SET NULL")
    )
    action: Mapped[str] = mapped_column(
        String,
        CheckConstraint(_in("action", HISTORY_ACTIONS)),
        nullable=False,
    )
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, default=dict)
    created_by: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    __table_args__ = (
        Index("idx_project_history_lookup", "project_id", "phase_id", "action", "created_at"),
    )
