"""
Lifecycle state machine for projects and stage runs.

Storage performs no validation of status changes, so every caller that
advances a record goes through the checks in this module first.

Project::

    created ──> running ──> completed
       │           │
       └───────────┴──────> failed

StageRun::

    pending ──> running ──> completed ──> approved | rejected
       │           │
       │           ├──────> failed
       │           └──────> approved | rejected
       └──────────────────> failed

There are no timeouts and no automatic retries: a run left in ``running``
stays there until something calls in with a new status.
"""

from __future__ import annotations

from datetime import datetime

from workflow_engine.enums import ProjectStatus, StageRunStatus
from workflow_engine.exceptions import InvalidTransitionError

PROJECT_TRANSITIONS: dict[ProjectStatus, frozenset[ProjectStatus]] = {
    ProjectStatus.CREATED: frozenset({ProjectStatus.RUNNING, ProjectStatus.FAILED}),
    ProjectStatus.RUNNING: frozenset({ProjectStatus.COMPLETED, ProjectStatus.FAILED}),
    ProjectStatus.COMPLETED: frozenset(),
    ProjectStatus.FAILED: frozenset(),
}

STAGE_RUN_TRANSITIONS: dict[StageRunStatus, frozenset[StageRunStatus]] = {
    StageRunStatus.PENDING: frozenset({StageRunStatus.RUNNING, StageRunStatus.FAILED}),
    StageRunStatus.RUNNING: frozenset(
        {
            StageRunStatus.COMPLETED,
            StageRunStatus.FAILED,
            StageRunStatus.APPROVED,
            StageRunStatus.REJECTED,
        }
    ),
    StageRunStatus.COMPLETED: frozenset({StageRunStatus.APPROVED, StageRunStatus.REJECTED}),
    StageRunStatus.FAILED: frozenset(),
    StageRunStatus.APPROVED: frozenset(),
    StageRunStatus.REJECTED: frozenset(),
}


def can_transition_project(current: ProjectStatus, target: ProjectStatus) -> bool:
    return ProjectStatus(target) in PROJECT_TRANSITIONS[ProjectStatus(current)]


def can_transition_stage_run(current: StageRunStatus, target: StageRunStatus) -> bool:
    return StageRunStatus(target) in STAGE_RUN_TRANSITIONS[StageRunStatus(current)]


def check_project_transition(current: ProjectStatus, target: ProjectStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is a legal edge."""
    if not can_transition_project(current, target):
        raise InvalidTransitionError("project", str(current), str(target))


def check_stage_run_transition(current: StageRunStatus, target: StageRunStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is a legal edge."""
    if not can_transition_stage_run(current, target):
        raise InvalidTransitionError("stage_run", str(current), str(target))


def stage_run_timing(
    current: StageRunStatus,
    target: StageRunStatus,
    now: datetime,
) -> tuple[datetime | None, datetime | None]:
    """Compute the ``(started_at, completed_at)`` values to write for a transition.

    Entering ``running`` stamps ``started_at``. Entering a terminal status
    stamps ``completed_at`` unless the run already has one, which is the case
    for a review decision on a completed run. ``None`` means "leave as is".
    """
    target = StageRunStatus(target)
    if target is StageRunStatus.RUNNING:
        return now, None
    if target.sets_completed_at and StageRunStatus(current) is not StageRunStatus.COMPLETED:
        return None, now
    return None, None
