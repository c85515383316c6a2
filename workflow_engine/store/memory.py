"""In-memory store backend for tests and local dry runs.

Mirrors the PostgreSQL repositories closely enough for the orchestration and
lifecycle code to be exercised without a database: identifiers and
timestamps are assigned here, documents are checked for well-formedness,
stage runs must reference an existing project, ``source_event_id`` is
unique, and every read returns a copy so callers cannot mutate stored rows.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from workflow_engine.enums import ProjectStatus, StageRunStatus
from workflow_engine.exceptions import StorageError
from workflow_engine.store.models import Document, Persona, Project, StageRun, is_well_formed

_TICK = timedelta(microseconds=1)


def _now() -> datetime:
    return datetime.now(UTC)


def _advance(previous: datetime | None) -> datetime:
    now = _now()
    if previous is not None and now <= previous:
        return previous + _TICK
    return now


def _check_document(document: Document | None, operation: str) -> None:
    if document is not None and not is_well_formed(document):
        raise StorageError("document is not well-formed JSON", operation=operation)


class InMemoryProjectRepository:
    def __init__(self) -> None:
        self._rows: dict[UUID, Project] = {}

    async def create(self, project: Project) -> Project:
        if project.source_event_id is not None and self._find_by_source(project.source_event_id):
            raise StorageError(
                f"duplicate source_event_id {project.source_event_id}",
                operation="create_project",
            )
        now = _now()
        record = replace(
            project,
            project_id=uuid4(),
            status=ProjectStatus.CREATED,
            created_at=now,
            updated_at=now,
        )
        self._rows[record.project_id] = record
        return replace(record)

    async def create_from_event(self, project: Project) -> tuple[Project, bool]:
        if project.source_event_id is not None:
            existing = self._find_by_source(project.source_event_id)
            if existing is not None:
                return replace(existing), False
        return await self.create(project), True

    async def get(self, project_id: UUID) -> Project | None:
        record = self._rows.get(project_id)
        return replace(record) if record else None

    async def get_by_source_event(self, source_event_id: str) -> Project | None:
        record = self._find_by_source(source_event_id)
        return replace(record) if record else None

    async def list(self, status: ProjectStatus | None = None, limit: int = 50) -> list[Project]:
        rows = [r for r in self._rows.values() if status is None or r.status == status]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return [replace(r) for r in rows[:limit]]

    async def update_status(self, project_id: UUID, status: ProjectStatus) -> Project:
        current = self._rows.get(project_id)
        if current is None:
            raise StorageError(f"project {project_id} does not exist", operation="update_project_status")
        updated = replace(current, status=ProjectStatus(status), updated_at=_advance(current.updated_at))
        self._rows[project_id] = updated
        return replace(updated)

    def _find_by_source(self, source_event_id: str) -> Project | None:
        for record in self._rows.values():
            if record.source_event_id == source_event_id:
                return record
        return None


class InMemoryPersonaRepository:
    def __init__(self) -> None:
        self._rows: dict[UUID, Persona] = {}

    async def create(self, persona: Persona) -> Persona:
        if persona.model_config is None:
            raise StorageError("model_config is required", operation="create_persona")
        _check_document(persona.model_config, "create_persona")
        now = _now()
        record = replace(persona, persona_id=uuid4(), created_at=now, updated_at=now)
        self._rows[record.persona_id] = record
        return replace(record)

    async def get(self, persona_id: UUID) -> Persona | None:
        record = self._rows.get(persona_id)
        return replace(record) if record else None


class InMemoryStageRunRepository:
    def __init__(self, projects: InMemoryProjectRepository) -> None:
        self._projects = projects
        self._rows: dict[UUID, StageRun] = {}

    async def create(self, stage_run: StageRun) -> StageRun:
        _check_document(stage_run.input_context, "create_stage_run")
        _check_document(stage_run.output_context, "create_stage_run")
        if await self._projects.get(stage_run.project_id) is None:
            raise StorageError(f"project {stage_run.project_id} does not exist", operation="create_stage_run")
        now = _now()
        record = replace(
            stage_run,
            stage_run_id=uuid4(),
            status=StageRunStatus.PENDING,
            started_at=None,
            completed_at=None,
            created_at=now,
            updated_at=now,
        )
        self._rows[record.stage_run_id] = record
        return replace(record)

    async def get(self, stage_run_id: UUID) -> StageRun | None:
        record = self._rows.get(stage_run_id)
        return replace(record) if record else None

    async def list_for_project(self, project_id: UUID) -> list[StageRun]:
        rows = [r for r in self._rows.values() if r.project_id == project_id]
        rows.sort(key=lambda r: r.created_at)
        return [replace(r) for r in rows]

    async def update_status(
        self,
        stage_run_id: UUID,
        status: StageRunStatus,
        *,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        output_context: Document | None = None,
    ) -> StageRun:
        _check_document(output_context, "update_stage_run_status")
        current = self._rows.get(stage_run_id)
        if current is None:
            raise StorageError(f"stage run {stage_run_id} does not exist", operation="update_stage_run_status")
        updated = replace(
            current,
            status=StageRunStatus(status),
            started_at=started_at if started_at is not None else current.started_at,
            completed_at=completed_at if completed_at is not None else current.completed_at,
            output_context=output_context if output_context is not None else current.output_context,
            updated_at=_advance(current.updated_at),
        )
        self._rows[stage_run_id] = updated
        return replace(updated)


class InMemoryStore:
    """In-memory counterpart of ``PostgresStore``."""

    def __init__(self) -> None:
        self.projects = InMemoryProjectRepository()
        self.personas = InMemoryPersonaRepository()
        self.stage_runs = InMemoryStageRunRepository(self.projects)

    async def migrate(self) -> None:
        return None

    async def close(self) -> None:
        return None
