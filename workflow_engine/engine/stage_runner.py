"""
Lifecycle-enforcing operations on projects and stage runs.

The repositories write whatever status they are handed. ``StageRunner`` is
the layer that reads the current record, checks the requested edge against
the state machine, computes timing fields, and only then writes.

Concurrency Model:
    Transitions for one project (the project itself and all of its stage
    runs) are serialized by a per-project ``asyncio.Lock``. This is also what
    guarantees at most one active run of a given stage per project. The
    guarantee holds within a single process only; another process writing
    the same rows is not coordinated with.

Example:
    >>> runner = StageRunner(store)
    >>> run = await runner.open_stage(project.project_id, "research")
    >>> run = await runner.start_stage(run.stage_run_id)
    >>> run = await runner.complete_stage(run.stage_run_id, output_context=b'{"ok": true}')
    >>> run = await runner.approve_stage(run.stage_run_id)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

import structlog

from workflow_engine.engine.lifecycle import check_project_transition, check_stage_run_transition, stage_run_timing
from workflow_engine.enums import ProjectStatus, StageRunStatus
from workflow_engine.exceptions import NotFoundError, StageConflictError
from workflow_engine.store.base import Store
from workflow_engine.store.models import Document, Project, StageRun

log = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StageRunner:
    """Advance projects and stage runs along legal lifecycle edges only."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = _utcnow) -> None:
        self.store = store
        self._clock = clock
        # Locks are never evicted; one per project seen by this process.
        self._locks: dict[UUID, asyncio.Lock] = {}

    def _get_lock(self, project_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        return lock

    async def _require_project(self, project_id: UUID) -> Project:
        project = await self.store.projects.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def _require_stage_run(self, stage_run_id: UUID) -> StageRun:
        stage_run = await self.store.stage_runs.get(stage_run_id)
        if stage_run is None:
            raise NotFoundError("stage_run", stage_run_id)
        return stage_run

    # Projects

    async def transition_project(self, project_id: UUID, target: ProjectStatus) -> Project:
        """Move a project to ``target``.

        Raises:
            NotFoundError: If the project does not exist
            InvalidTransitionError: If the edge is not permitted
            StorageError: If the write fails
        """
        target = ProjectStatus(target)
        async with self._get_lock(project_id):
            project = await self._require_project(project_id)
            check_project_transition(project.status, target)
            updated = await self.store.projects.update_status(project_id, target)
        log.info(
            "project_transitioned",
            project_id=str(project_id),
            from_status=str(project.status),
            to_status=str(target),
        )
        return updated

    async def start_project(self, project_id: UUID) -> Project:
        return await self.transition_project(project_id, ProjectStatus.RUNNING)

    async def complete_project(self, project_id: UUID) -> Project:
        return await self.transition_project(project_id, ProjectStatus.COMPLETED)

    async def fail_project(self, project_id: UUID) -> Project:
        return await self.transition_project(project_id, ProjectStatus.FAILED)

    # Stage runs

    async def open_stage(
        self,
        project_id: UUID,
        stage_name: str,
        input_context: Document | None = None,
    ) -> StageRun:
        """Create a ``pending`` run of ``stage_name`` for a project.

        Raises:
            NotFoundError: If the project does not exist
            StageConflictError: If the project is terminal, or a pending or
                running run of the same stage already exists
            StorageError: If the write fails
        """
        async with self._get_lock(project_id):
            project = await self._require_project(project_id)
            if project.status.is_terminal:
                raise StageConflictError(f"project {project_id} is {project.status}; cannot open stage {stage_name}")

            runs = await self.store.stage_runs.list_for_project(project_id)
            active = [r for r in runs if r.stage_name == stage_name and r.status.is_active]
            if active:
                raise StageConflictError(
                    f"stage {stage_name} already has an active run {active[0].stage_run_id} ({active[0].status})"
                )

            stage_run = await self.store.stage_runs.create(
                StageRun(project_id=project_id, stage_name=stage_name, input_context=input_context)
            )
        log.info(
            "stage_opened",
            project_id=str(project_id),
            stage=stage_name,
            stage_run_id=str(stage_run.stage_run_id),
        )
        return stage_run

    async def transition_stage(
        self,
        stage_run_id: UUID,
        target: StageRunStatus,
        output_context: Document | None = None,
    ) -> StageRun:
        """Move a stage run to ``target``, stamping timing fields as required.

        Raises:
            NotFoundError: If the stage run does not exist
            InvalidTransitionError: If the edge is not permitted
            StorageError: If the write fails
        """
        target = StageRunStatus(target)
        stage_run = await self._require_stage_run(stage_run_id)
        async with self._get_lock(stage_run.project_id):
            # Re-read under the lock; another transition may have won the race.
            stage_run = await self._require_stage_run(stage_run_id)
            check_stage_run_transition(stage_run.status, target)
            started_at, completed_at = stage_run_timing(stage_run.status, target, self._clock())
            updated = await self.store.stage_runs.update_status(
                stage_run_id,
                target,
                started_at=started_at,
                completed_at=completed_at,
                output_context=output_context,
            )
        log.info(
            "stage_transitioned",
            project_id=str(stage_run.project_id),
            stage=stage_run.stage_name,
            stage_run_id=str(stage_run_id),
            from_status=str(stage_run.status),
            to_status=str(target),
        )
        return updated

    async def start_stage(self, stage_run_id: UUID) -> StageRun:
        return await self.transition_stage(stage_run_id, StageRunStatus.RUNNING)

    async def complete_stage(self, stage_run_id: UUID, output_context: Document | None = None) -> StageRun:
        return await self.transition_stage(stage_run_id, StageRunStatus.COMPLETED, output_context)

    async def fail_stage(self, stage_run_id: UUID, output_context: Document | None = None) -> StageRun:
        return await self.transition_stage(stage_run_id, StageRunStatus.FAILED, output_context)

    async def approve_stage(self, stage_run_id: UUID) -> StageRun:
        return await self.transition_stage(stage_run_id, StageRunStatus.APPROVED)

    async def reject_stage(self, stage_run_id: UUID) -> StageRun:
        return await self.transition_stage(stage_run_id, StageRunStatus.REJECTED)
