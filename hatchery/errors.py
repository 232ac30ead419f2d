"""Exception types raised by the Hatchery engine."""

from typing import Optional
from uuid import UUID


class HatcheryError(Exception):
    """Base class for all Hatchery errors."""


class StoreError(HatcheryError):
    """The relational store rejected or failed a read/write."""


class AlreadyGeneratedError(HatcheryError):
    """A generation batch collided with tasks already present for its date."""

    def __init__(self, owner_id: Optional[UUID], due_date=None):
        self.owner_id = owner_id
        self.due_date = due_date
        super().__init__(f"Tasks already generated for {owner_id} on {due_date}")


class InvalidTransitionError(HatcheryError):
    """A manual status change would leave a terminal project status."""


class SequenceError(HatcheryError):
    """A sequential task was started before its predecessors were finished."""

    def __init__(self, task_id: UUID, blocking: list):
        self.task_id = task_id
        self.blocking = blocking
        titles = ", ".join(t.title for t in blocking)
        super().__init__(f"Task {task_id} is blocked by: {titles}")
