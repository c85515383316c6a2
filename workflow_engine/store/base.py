"""Repository interfaces for the project, persona and stage run records."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from workflow_engine.enums import ProjectStatus, StageRunStatus
from workflow_engine.store.models import Document, Persona, Project, StageRun


class ProjectRepository(Protocol):
    async def create(self, project: Project) -> Project: ...

    async def create_from_event(self, project: Project) -> tuple[Project, bool]: ...

    async def get(self, project_id: UUID) -> Project | None: ...

    async def get_by_source_event(self, source_event_id: str) -> Project | None: ...

    async def list(self, status: ProjectStatus | None = None, limit: int = 50) -> list[Project]: ...

    async def update_status(self, project_id: UUID, status: ProjectStatus) -> Project: ...


class PersonaRepository(Protocol):
    async def create(self, persona: Persona) -> Persona: ...

    async def get(self, persona_id: UUID) -> Persona | None: ...


class StageRunRepository(Protocol):
    async def create(self, stage_run: StageRun) -> StageRun: ...

    async def get(self, stage_run_id: UUID) -> StageRun | None: ...

    async def list_for_project(self, project_id: UUID) -> list[StageRun]: ...

    async def update_status(
        self,
        stage_run_id: UUID,
        status: StageRunStatus,
        *,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        output_context: Document | None = None,
    ) -> StageRun: ...


class Store(Protocol):
    """Aggregate of the three repositories sharing one backend."""

    projects: ProjectRepository
    personas: PersonaRepository
    stage_runs: StageRunRepository

    async def close(self) -> None: ...
