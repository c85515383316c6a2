"""PostgreSQL-backed stage run repository."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any
from uuid import UUID

from workflow_engine.enums import StageRunStatus
from workflow_engine.exceptions import StorageError
from workflow_engine.store.database import Database, document_param, document_value
from workflow_engine.store.models import Document, StageRun

_COLUMNS = (
    "stage_run_id, project_id, stage_name, status, "
    "input_context::text AS input_context, output_context::text AS output_context, "
    "started_at, completed_at, created_at, updated_at"
)


def _row_to_stage_run(row: dict[str, Any], operation: str) -> StageRun:
    try:
        status = StageRunStatus(row["status"])
    except ValueError as e:
        raise StorageError(f"unknown stage run status {row['status']!r}", operation=operation) from e
    return StageRun(
        stage_run_id=row["stage_run_id"],
        project_id=row["project_id"],
        stage_name=row["stage_name"],
        status=status,
        input_context=document_value(row["input_context"]),
        output_context=document_value(row["output_context"]),
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresStageRunRepository:
    """Create, read and transition rows of the ``stage_runs`` table.

    The repository stores whatever status it is given; legality of the
    transition is checked by the stage runner before calling in.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(self, stage_run: StageRun) -> StageRun:
        """Insert a stage run in ``pending`` status with unset timing fields.

        Raises:
            StorageError: If the project does not exist (foreign key), the
                input context is not valid JSON, or on transport failure
        """
        stage_run_id = uuid.uuid4()
        input_context = document_param(stage_run.input_context, "create_stage_run")
        output_context = document_param(stage_run.output_context, "create_stage_run")
        async with self._db.connection("create_stage_run") as conn:
            cur = await conn.execute(
                f"""
                INSERT INTO stage_runs (
                    stage_run_id, project_id, stage_name, status, input_context, output_context,
                    started_at, completed_at, created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s::jsonb, %s::jsonb, NULL, NULL, now(), now())
                RETURNING {_COLUMNS}
                """,
                (
                    stage_run_id,
                    stage_run.project_id,
                    stage_run.stage_name,
                    StageRunStatus.PENDING.value,
                    input_context,
                    output_context,
                ),
            )
            row = await cur.fetchone()
        return _row_to_stage_run(row, "create_stage_run")

    async def get(self, stage_run_id: UUID) -> StageRun | None:
        async with self._db.connection("get_stage_run") as conn:
            cur = await conn.execute(f"SELECT {_COLUMNS} FROM stage_runs WHERE stage_run_id = %s", (stage_run_id,))
            row = await cur.fetchone()
        return _row_to_stage_run(row, "get_stage_run") if row else None

    async def list_for_project(self, project_id: UUID) -> list[StageRun]:
        async with self._db.connection("list_stage_runs") as conn:
            cur = await conn.execute(
                f"SELECT {_COLUMNS} FROM stage_runs WHERE project_id = %s ORDER BY created_at, stage_run_id",
                (project_id,),
            )
            rows = await cur.fetchall()
        return [_row_to_stage_run(row, "list_stage_runs") for row in rows]

    async def update_status(
        self,
        stage_run_id: UUID,
        status: StageRunStatus,
        *,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        output_context: Document | None = None,
    ) -> StageRun:
        """Set a stage run's status and, optionally, its timing and output.

        Timing fields and the output context left as ``None`` keep their
        stored values.

        Raises:
            StorageError: If no stage run has this identifier, or on transport failure
        """
        output = document_param(output_context, "update_stage_run_status")
        async with self._db.connection("update_stage_run_status") as conn:
            cur = await conn.execute(
                f"""
                UPDATE stage_runs
                SET status = %s,
                    started_at = COALESCE(%s::timestamptz, started_at),
                    completed_at = COALESCE(%s::timestamptz, completed_at),
                    output_context = COALESCE(%s::jsonb, output_context),
                    updated_at = GREATEST(clock_timestamp(), updated_at + interval '1 microsecond')
                WHERE stage_run_id = %s
                RETURNING {_COLUMNS}
                """,
                (StageRunStatus(status).value, started_at, completed_at, output, stage_run_id),
            )
            row = await cur.fetchone()
        if row is None:
            raise StorageError(f"stage run {stage_run_id} does not exist", operation="update_stage_run_status")
        return _row_to_stage_run(row, "update_stage_run_status")
