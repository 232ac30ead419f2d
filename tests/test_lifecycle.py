"""Tests for project creation and manual updates (hatchery/lifecycle.py)."""

import uuid

import pytest

from hatchery.errors import InvalidTransitionError
from hatchery.lifecycle import create_project, update_project


@pytest.fixture
def template_with_phases(store):
    template = store.add_template()
    phases = [store.add_phase(template, order_index=i, duration_days=3) for i in (2, 0, 1)]
    return template, sorted(phases, key=lambda p: p.order_index)


@pytest.fixture
def other_template_phase(store):
    other = store.add_template(name="Broodstock conditioning")
    return store.add_phase(other, order_index=0, duration_days=14)


class TestCreateProject:
    """Project creation and its initial history."""

    @pytest.mark.asyncio
    async def test_starts_in_first_phase(self, store, template_with_phases):
        """Without an explicit phase the project starts in the lowest-ordered one."""
        template, phases = template_with_phases

        project = await create_project(store, "Pair 7", template_id=template.id, created_by="maria")

        assert project.current_phase_id == phases[0].id
        assert project.status == "active"
        assert project.started_at is not None
        [started] = store.history_for(project, "phase_started")
        assert started.phase_id == phases[0].id
        assert started.metadata_ == {"initial_phase": True}
        assert started.created_by == "maria"
        [created] = store.history_for(project, "project_created")
        assert created.metadata_ == {"template_id": str(template.id)}

    @pytest.mark.asyncio
    async def test_explicit_phase(self, store, template_with_phases):
        template, phases = template_with_phases

        project = await create_project(store, "Pair 8", template_id=template.id, current_phase_id=phases[1].id)

        assert project.current_phase_id == phases[1].id

    @pytest.mark.asyncio
    async def test_explicit_phase_from_other_template_rejected(
        self, store, template_with_phases, other_template_phase
    ):
        """A starting phase must belong to the project's template."""
        template, _ = template_with_phases

        with pytest.raises(InvalidTransitionError):
            await create_project(store, "Pair 9", template_id=template.id, current_phase_id=other_template_phase.id)

        assert store.projects == {}
        assert store.history == []

    @pytest.mark.asyncio
    async def test_unknown_explicit_phase_rejected(self, store, template_with_phases):
        template, _ = template_with_phases

        with pytest.raises(InvalidTransitionError):
            await create_project(store, "Pair 9", template_id=template.id, current_phase_id=uuid.uuid4())

        assert store.projects == {}

    @pytest.mark.asyncio
    async def test_without_template(self, store):
        """A template-less project has no phase and logs only its creation."""
        project = await create_project(store, "Ad-hoc tank cleanup")

        assert project.current_phase_id is None
        assert store.history_for(project, "phase_started") == []
        [created] = store.history_for(project, "project_created")
        assert created.metadata_ == {"template_id": None}


class TestUpdateProject:
    """Manual phase, status and field changes."""

    @pytest.mark.asyncio
    async def test_missing_project(self, store):
        assert await update_project(store, uuid.uuid4(), name="Ghost") is None

    @pytest.mark.asyncio
    async def test_phase_change_is_logged(self, store, template_with_phases):
        """Moving phase completes the old one and starts the new one in history."""
        template, phases = template_with_phases
        project = store.add_project(template=template, phase=phases[0])

        await update_project(store, project.id, current_phase_id=phases[2].id, updated_by="sam")

        assert project.current_phase_id == phases[2].id
        [done] = store.history_for(project, "phase_completed")
        assert done.phase_id == phases[0].id
        assert done.metadata_ == {"manual_change": True}
        [started] = store.history_for(project, "phase_started")
        assert started.phase_id == phases[2].id
        assert started.created_by == "sam"

    @pytest.mark.asyncio
    async def test_manual_phase_restarts_phase_clock(self, store, template_with_phases):
        """The advancement sweep measures the new phase from the manual change."""
        from hatchery.scheduling.advancement import phase_start_for

        template, phases = template_with_phases
        project = store.add_project(template=template, phase=phases[0])

        await update_project(store, project.id, current_phase_id=phases[1].id)

        [started] = store.history_for(project, "phase_started")
        assert await phase_start_for(store, project) == started.created_at

    @pytest.mark.asyncio
    async def test_same_phase_not_logged(self, store, template_with_phases):
        template, phases = template_with_phases
        project = store.add_project(template=template, phase=phases[0])

        await update_project(store, project.id, current_phase_id=phases[0].id)

        assert store.history == []

    @pytest.mark.asyncio
    async def test_phase_from_other_template_rejected(self, store, template_with_phases, other_template_phase):
        """A phase from another template is refused and nothing changes."""
        template, phases = template_with_phases
        project = store.add_project(template=template, phase=phases[0])

        with pytest.raises(InvalidTransitionError) as exc:
            await update_project(store, project.id, current_phase_id=other_template_phase.id, status="paused")

        assert str(template.id) in str(exc.value)
        assert project.current_phase_id == phases[0].id
        assert project.status == "active"
        assert store.history == []

    @pytest.mark.asyncio
    async def test_unknown_phase_rejected(self, store, template_with_phases):
        template, phases = template_with_phases
        project = store.add_project(template=template, phase=phases[0])

        with pytest.raises(InvalidTransitionError):
            await update_project(store, project.id, current_phase_id=uuid.uuid4())

        assert project.current_phase_id == phases[0].id
        assert store.history == []

    @pytest.mark.asyncio
    async def test_status_change(self, store):
        """Status changes are logged with old and new values."""
        project = store.add_project()

        await update_project(store, project.id, status="paused")

        assert project.status == "paused"
        [entry] = store.history_for(project, "status_changed")
        assert entry.metadata_ == {"old_status": "active", "new_status": "paused", "manual_change": True}

    @pytest.mark.asyncio
    async def test_completion_stamps_completed_at(self, store):
        project = store.add_project()

        await update_project(store, project.id, status="completed")

        assert project.completed_at is not None

    @pytest.mark.asyncio
    async def test_unknown_status(self, store):
        project = store.add_project()

        with pytest.raises(InvalidTransitionError):
            await update_project(store, project.id, status="harvested")

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, store):
        """Completed and cancelled projects cannot be reopened."""
        project = store.add_project(status="cancelled")

        with pytest.raises(InvalidTransitionError):
            await update_project(store, project.id, status="active")

        assert project.status == "cancelled"

    @pytest.mark.asyncio
    async def test_empty_patch_is_noop(self, store):
        project = store.add_project()

        result = await update_project(store, project.id)

        assert result is project
        assert store.history == []

    @pytest.mark.asyncio
    async def test_rename_only(self, store):
        """Renames are applied without touching history."""
        project = store.add_project(name="Pair 3")

        await update_project(store, project.id, name="Pair 3 (maroon)")

        assert project.name == "Pair 3 (maroon)"
        assert store.history == []
