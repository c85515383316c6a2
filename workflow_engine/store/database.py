"""
PostgreSQL connection pool and schema management.

The ``Database`` object owns the only shared mutable resource of the control
plane: a bounded ``psycopg_pool.AsyncConnectionPool``. The pool caps the
number of open connections, keeps a floor of idle connections, and rotates
connections after a maximum lifetime. Each checkout is independent, so
repositories running in concurrent handler tasks need no further locking.

Connectivity is verified eagerly by ``connect()``; an unreachable server
fails fast with ``ConnectivityError`` instead of surfacing later as a
storage failure on the first event.

Example:
    >>> db = Database(settings.database, connect_timeout=5.0)
    >>> await db.connect()
    >>> async with db.connection("get_project") as conn:
    ...     await conn.execute("SELECT 1")
    >>> await db.close()
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import psycopg
import structlog
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from workflow_engine.config.settings import DatabaseSettings
from workflow_engine.exceptions import ConnectivityError, StorageError
from workflow_engine.store.models import Document

log = structlog.get_logger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS projects (
        project_id UUID PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL,
        source_event_id TEXT UNIQUE,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_projects_status
    ON projects(status)
    """,
    """
    CREATE TABLE IF NOT EXISTS personas (
        persona_id UUID PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        prompt_template TEXT NOT NULL,
        model_config JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_runs (
        stage_run_id UUID PRIMARY KEY,
        project_id UUID NOT NULL REFERENCES projects(project_id),
        stage_name TEXT NOT NULL,
        status TEXT NOT NULL,
        input_context JSONB,
        output_context JSONB,
        started_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_stage_runs_project_id
    ON stage_runs(project_id, created_at)
    """,
)


def document_param(document: Document | None, operation: str) -> str | None:
    """Convert document bytes into the text form bound to a ``::jsonb`` placeholder."""
    if document is None:
        return None
    try:
        return document.decode("utf-8")
    except UnicodeDecodeError as e:
        raise StorageError("document is not valid UTF-8", operation=operation) from e


def document_value(value: str | None) -> Document | None:
    """Convert a ``jsonb::text`` column back into document bytes."""
    return value.encode("utf-8") if value is not None else None


class Database:
    """Bounded PostgreSQL connection pool with eager connectivity checks."""

    def __init__(self, settings: DatabaseSettings, connect_timeout: float = 5.0) -> None:
        self.settings = settings
        self.connect_timeout = connect_timeout
        self._pool: AsyncConnectionPool | None = None

    async def connect(self) -> None:
        """Open the pool and verify the server answers.

        Raises:
            ConnectivityError: If the pool cannot be filled or ``SELECT 1``
                fails within ``connect_timeout`` seconds.
        """
        if self._pool is not None:
            return

        pool = AsyncConnectionPool(
            conninfo=self.settings.conninfo(),
            min_size=self.settings.pool_min_size,
            max_size=self.settings.pool_max_size,
            max_lifetime=self.settings.pool_max_lifetime,
            max_idle=self.settings.pool_max_idle,
            timeout=self.settings.pool_timeout,
            kwargs={"row_factory": dict_row},
            name="workflow-engine",
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=self.connect_timeout)
            async with pool.connection(timeout=self.connect_timeout) as conn:
                await conn.execute("SELECT 1")
        except (psycopg.Error, OSError) as e:
            await pool.close()
            log.error("database_connect_failed", host=self.settings.host, port=self.settings.port, error=str(e))
            raise ConnectivityError(f"Failed to connect to database: {e}", service="postgres") from e

        self._pool = pool
        log.info(
            "database_connected",
            host=self.settings.host,
            port=self.settings.port,
            max_size=self.settings.pool_max_size,
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            log.info("database_closed")

    @asynccontextmanager
    async def connection(self, operation: str) -> AsyncIterator[psycopg.AsyncConnection]:
        """Check out a connection for one repository operation.

        The transaction commits when the block exits normally and rolls back
        otherwise. Driver and pool failures (including checkout timeouts)
        are raised as ``StorageError`` tagged with ``operation``.
        """
        if self._pool is None:
            raise StorageError("database is not connected", operation=operation)
        try:
            async with self._pool.connection() as conn:
                yield conn
        except psycopg.Error as e:
            raise StorageError(str(e), operation=operation) from e

    async def migrate(self) -> None:
        """Create the projects, personas and stage_runs tables if absent."""
        async with self.connection("migrate") as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
        log.info("schema_migrated", tables=["projects", "personas", "stage_runs"])

    async def truncate(self) -> None:
        """Remove every row from the three tables. Used by integration tests."""
        async with self.connection("truncate") as conn:
            await conn.execute("TRUNCATE TABLE stage_runs, personas, projects CASCADE")
