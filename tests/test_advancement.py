"""Tests for automatic phase advancement (hatchery/scheduling/advancement.py)."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from hatchery.scheduling.advancement import (
    advance_project,
    check_and_advance_phases,
    days_in_phase,
    phase_start_for,
)


NOW = datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)


def days_ago(n, now=NOW):
    return now - timedelta(days=n)


def _three_phase_template(store, durations=(3, 3, 3)):
    template = store.add_template()
    phases = [
        store.add_phase(template, order_index=i, duration_days=d, name=name)
        for i, (d, name) in enumerate(zip(durations, ("Spawn", "Larval", "Grow-out")))
    ]
    return template, phases


class TestDaysInPhase:
    """Whole days elapsed in a phase."""

    def test_floors_partial_days(self):
        """Partial days are floored."""
        assert days_in_phase(NOW - timedelta(days=2, hours=23), NOW) == 2

    def test_exact_days(self):
        assert days_in_phase(NOW - timedelta(days=3), NOW) == 3

    def test_naive_start_is_utc(self):
        """A naive start timestamp is read as UTC."""
        naive = (NOW - timedelta(days=5)).replace(tzinfo=None)
        assert days_in_phase(naive, NOW) == 5


class TestPhaseStart:
    """Resolving when the current phase began."""

    @pytest.mark.asyncio
    async def test_latest_phase_started_entry_wins(self, store):
        """The most recent phase_started entry for the phase is used."""
        template, phases = _three_phase_template(store)
        project = store.add_project(template=template, phase=phases[0], started_at=days_ago(30, NOW))
        store.add_history(project, "phase_started", phase=phases[0], created_at=days_ago(10, NOW))
        store.add_history(project, "phase_started", phase=phases[0], created_at=days_ago(2, NOW))

        assert await phase_start_for(store, project) == days_ago(2, NOW)

    @pytest.mark.asyncio
    async def test_falls_back_to_started_at(self, store):
        """Without history the project's started_at is the phase start."""
        template, phases = _three_phase_template(store)
        project = store.add_project(template=template, phase=phases[0], started_at=days_ago(4, NOW))

        assert await phase_start_for(store, project) == days_ago(4, NOW)

    @pytest.mark.asyncio
    async def test_ignores_entries_for_other_phases(self, store):
        """History for other phases does not count."""
        template, phases = _three_phase_template(store)
        project = store.add_project(template=template, phase=phases[1], started_at=days_ago(9, NOW))
        store.add_history(project, "phase_started", phase=phases[0], created_at=days_ago(1, NOW))

        assert await phase_start_for(store, project) == days_ago(9, NOW)


class TestAdvanceProject:
    """Advancing a single project."""

    @pytest.mark.asyncio
    async def test_moves_to_next_order_index(self, store):
        """A due project moves to the next phase and history records both ends."""
        template, phases = _three_phase_template(store)
        project = store.add_project(template=template, phase=phases[0])
        store.add_history(project, "phase_started", phase=phases[0], created_at=days_ago(3, NOW))

        result = await advance_project(store, project, NOW)

        assert result.from_phase == phases[0].id
        assert result.to_phase == phases[1].id
        assert result.completed is False
        assert project.current_phase_id == phases[1].id

        [done] = store.history_for(project, "phase_completed")
        assert done.phase_id == phases[0].id
        assert done.metadata_ == {"days_in_phase": 3, "auto_advanced": True}
        started = store.history_for(project, "phase_started")
        assert started[-1].phase_id == phases[1].id
        assert started[-1].metadata_ == {"auto_advanced": True}

    @pytest.mark.asyncio
    async def test_skips_gaps_in_order_index(self, store):
        """The next phase is the next higher order index, not index + 1."""
        template = store.add_template()
        first = store.add_phase(template, order_index=0, duration_days=1)
        store.add_phase(template, order_index=10, duration_days=1, name="Last")
        middle = store.add_phase(template, order_index=5, duration_days=1, name="Middle")
        project = store.add_project(template=template, phase=first, started_at=days_ago(2, NOW))

        result = await advance_project(store, project, NOW)

        assert result.to_phase == middle.id

    @pytest.mark.asyncio
    async def test_not_yet_due(self, store):
        """A phase that has not run its duration stays put."""
        template, phases = _three_phase_template(store)
        project = store.add_project(template=template, phase=phases[0], started_at=NOW - timedelta(days=2, hours=23))

        assert await advance_project(store, project, NOW) is None
        assert project.current_phase_id == phases[0].id
        assert store.history == []

    @pytest.mark.asyncio
    async def test_phase_without_duration_never_advances(self, store):
        """Phases without a duration are advanced manually only."""
        template, phases = _three_phase_template(store, durations=(None, 3, 3))
        project = store.add_project(template=template, phase=phases[0], started_at=days_ago(365, NOW))

        assert await advance_project(store, project, NOW) is None

    @pytest.mark.asyncio
    async def test_no_current_phase(self, store):
        """A project without a current phase is left alone."""
        project = store.add_project(template=store.add_template(), phase=None, started_at=days_ago(10, NOW))

        assert await advance_project(store, project, NOW) is None

    @pytest.mark.asyncio
    async def test_last_phase_completes_project(self, store):
        """Finishing the final phase completes the project."""
        template, phases = _three_phase_template(store)
        project = store.add_project(template=template, phase=phases[2])
        store.add_history(project, "phase_started", phase=phases[2], created_at=days_ago(3, NOW))

        result = await advance_project(store, project, NOW)

        assert result.completed is True
        assert result.to_phase is None
        assert project.status == "completed"
        assert project.completed_at == NOW
        assert project.current_phase_id == phases[2].id
        [entry] = store.history_for(project, "project_completed")
        assert entry.metadata_ == {"auto_completed": True, "final_phase_id": str(phases[2].id)}

    @pytest.mark.asyncio
    async def test_no_start_timestamp_is_skipped(self, store):
        """A project with no way to date its phase is skipped."""
        template, phases = _three_phase_template(store)
        project = store.add_project(template=template, phase=phases[0])
        project.created_at = None

        assert await advance_project(store, project, NOW) is None


class TestCheckAndAdvancePhases:
    """The advancement sweep over all active projects."""

    @pytest.mark.asyncio
    async def test_two_phase_walkthrough_and_rerun(self, store):
        """Walk a project through two phases; rerunning the same day does nothing more."""
        template = store.add_template()
        a = store.add_phase(template, order_index=0, duration_days=3, name="A")
        b = store.add_phase(template, order_index=1, duration_days=None, name="B")
        project = store.add_project(template=template, phase=a)
        store.add_history(project, "phase_started", phase=a, created_at=days_ago(3, NOW))

        first = await check_and_advance_phases(store, NOW)
        second = await check_and_advance_phases(store, NOW)

        assert [(r.from_phase, r.to_phase) for r in first] == [(a.id, b.id)]
        assert second == []
        assert project.current_phase_id == b.id
        assert project.status == "active"

    @pytest.mark.asyncio
    async def test_advances_only_one_step_per_sweep(self, store):
        """One sweep moves a project at most one phase."""
        template, phases = _three_phase_template(store, durations=(1, 1, 1))
        project = store.add_project(template=template, phase=phases[0], started_at=days_ago(30, NOW))

        await check_and_advance_phases(store, NOW)

        assert project.current_phase_id == phases[1].id

    @pytest.mark.asyncio
    async def test_inactive_projects_are_ignored(self, store):
        """Paused projects are not advanced."""
        template, phases = _three_phase_template(store)
        paused = store.add_project(template=template, phase=phases[0], status="paused", started_at=days_ago(10, NOW))

        assert await check_and_advance_phases(store, NOW) == []
        assert paused.current_phase_id == phases[0].id

    @pytest.mark.asyncio
    async def test_failure_on_one_project_does_not_stop_sweep(self, store):
        """A failing project is logged and the rest still advance."""
        template, phases = _three_phase_template(store)
        broken = store.add_project(name="Broken", template=template, phase=phases[0], started_at=days_ago(5, NOW))
        healthy = store.add_project(name="Healthy", template=template, phase=phases[0], started_at=days_ago(5, NOW))

        real_update = store.update_project

        async def flaky_update(project_id, patch):
            if project_id == broken.id:
                raise RuntimeError("deadlock detected")
            return await real_update(project_id, patch)

        store.update_project = AsyncMock(side_effect=flaky_update)

        result = await check_and_advance_phases(store, NOW)

        assert [r.project_id for r in result] == [healthy.id]
        assert healthy.current_phase_id == phases[1].id
        assert broken.current_phase_id == phases[0].id

    @pytest.mark.asyncio
    async def test_completion_reported_in_results(self, store):
        """Completions are reported with no next phase."""
        template = store.add_template()
        only = store.add_phase(template, order_index=0, duration_days=2)
        project = store.add_project(template=template, phase=only, started_at=days_ago(2, NOW))

        [result] = await check_and_advance_phases(store, NOW)

        assert result.completed is True
        assert project.status == "completed"
