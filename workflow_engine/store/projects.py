"""PostgreSQL-backed project repository."""

from __future__ import annotations

import uuid
from typing import Any
from uuid import UUID

import structlog

from workflow_engine.enums import ProjectStatus
from workflow_engine.exceptions import StorageError
from workflow_engine.store.database import Database
from workflow_engine.store.models import Project

log = structlog.get_logger(__name__)

_COLUMNS = "project_id, name, description, status, source_event_id, created_at, updated_at"


def _row_to_project(row: dict[str, Any], operation: str) -> Project:
    try:
        status = ProjectStatus(row["status"])
    except ValueError as e:
        raise StorageError(f"unknown project status {row['status']!r}", operation=operation) from e
    return Project(
        project_id=row["project_id"],
        name=row["name"],
        description=row["description"],
        status=status,
        source_event_id=row["source_event_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresProjectRepository:
    """Create, read and advance projects in the ``projects`` table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(self, project: Project) -> Project:
        """Insert a new project in ``created`` status.

        The identifier and both timestamps are assigned here; any values the
        caller placed on ``project`` for those fields are overwritten.
        """
        project_id = uuid.uuid4()
        async with self._db.connection("create_project") as conn:
            cur = await conn.execute(
                f"""
                INSERT INTO projects ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, now(), now())
                RETURNING {_COLUMNS}
                """,
                (project_id, project.name, project.description, ProjectStatus.CREATED.value, project.source_event_id),
            )
            row = await cur.fetchone()
        created = _row_to_project(row, "create_project")
        log.debug("project_inserted", project_id=str(created.project_id))
        return created

    async def create_from_event(self, project: Project) -> tuple[Project, bool]:
        """Insert a project unless one already exists for its source event.

        Returns:
            Tuple of the stored project and whether it was newly created.
        """
        if project.source_event_id is None:
            return await self.create(project), True

        project_id = uuid.uuid4()
        async with self._db.connection("create_project_from_event") as conn:
            cur = await conn.execute(
                f"""
                INSERT INTO projects ({_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, now(), now())
                ON CONFLICT (source_event_id) DO NOTHING
                RETURNING {_COLUMNS}
                """,
                (project_id, project.name, project.description, ProjectStatus.CREATED.value, project.source_event_id),
            )
            row = await cur.fetchone()
            if row is None:
                cur = await conn.execute(
                    f"SELECT {_COLUMNS} FROM projects WHERE source_event_id = %s",
                    (project.source_event_id,),
                )
                row = await cur.fetchone()
                if row is None:
                    raise StorageError(
                        f"conflict on source event {project.source_event_id} but no row found",
                        operation="create_project_from_event",
                    )
                return _row_to_project(row, "create_project_from_event"), False
        return _row_to_project(row, "create_project_from_event"), True

    async def get(self, project_id: UUID) -> Project | None:
        async with self._db.connection("get_project") as conn:
            cur = await conn.execute(f"SELECT {_COLUMNS} FROM projects WHERE project_id = %s", (project_id,))
            row = await cur.fetchone()
        return _row_to_project(row, "get_project") if row else None

    async def get_by_source_event(self, source_event_id: str) -> Project | None:
        async with self._db.connection("get_project_by_source_event") as conn:
            cur = await conn.execute(
                f"SELECT {_COLUMNS} FROM projects WHERE source_event_id = %s",
                (source_event_id,),
            )
            row = await cur.fetchone()
        return _row_to_project(row, "get_project_by_source_event") if row else None

    async def list(self, status: ProjectStatus | None = None, limit: int = 50) -> list[Project]:
        """List projects, newest first, optionally filtered by status."""
        async with self._db.connection("list_projects") as conn:
            if status is None:
                cur = await conn.execute(
                    f"SELECT {_COLUMNS} FROM projects ORDER BY created_at DESC LIMIT %s",
                    (limit,),
                )
            else:
                cur = await conn.execute(
                    f"SELECT {_COLUMNS} FROM projects WHERE status = %s ORDER BY created_at DESC LIMIT %s",
                    (ProjectStatus(status).value, limit),
                )
            rows = await cur.fetchall()
        return [_row_to_project(row, "list_projects") for row in rows]

    async def update_status(self, project_id: UUID, status: ProjectStatus) -> Project:
        """Set a project's status and move ``updated_at`` strictly forward.

        Raises:
            StorageError: If no project has this identifier, or on transport failure
        """
        async with self._db.connection("update_project_status") as conn:
            cur = await conn.execute(
                f"""
                UPDATE projects
                SET status = %s,
                    updated_at = GREATEST(clock_timestamp(), updated_at + interval '1 microsecond')
                WHERE project_id = %s
                RETURNING {_COLUMNS}
                """,
                (ProjectStatus(status).value, project_id),
            )
            row = await cur.fetchone()
        if row is None:
            raise StorageError(f"project {project_id} does not exist", operation="update_project_status")
        return _row_to_project(row, "update_project_status")
