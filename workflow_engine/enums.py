"""Enumerations for project and stage run status values."""

from enum import Enum


class ProjectStatus(str, Enum):
    """Lifecycle status of a Project.

    Happy path: CREATED -> RUNNING -> COMPLETED. FAILED is reachable from
    any non-terminal state.
    """

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is permitted."""
        return self in (ProjectStatus.COMPLETED, ProjectStatus.FAILED)


class StageRunStatus(str, Enum):
    """Lifecycle status of a StageRun.

    PENDING -> RUNNING -> COMPLETED/FAILED, with APPROVED/REJECTED modelling
    a human review gate after RUNNING or COMPLETED.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    APPROVED = "approved"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value

    @property
    def is_active(self) -> bool:
        """Check if the run still occupies its stage slot."""
        return self in (StageRunStatus.PENDING, StageRunStatus.RUNNING)

    @property
    def sets_completed_at(self) -> bool:
        """Check if entering this status stamps ``completed_at``."""
        return self in (
            StageRunStatus.COMPLETED,
            StageRunStatus.FAILED,
            StageRunStatus.APPROVED,
            StageRunStatus.REJECTED,
        )
