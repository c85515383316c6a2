"""PostgreSQL store: one pool shared by the three repositories."""

from __future__ import annotations

from workflow_engine.config.settings import DatabaseSettings
from workflow_engine.store.database import Database
from workflow_engine.store.personas import PostgresPersonaRepository
from workflow_engine.store.projects import PostgresProjectRepository
from workflow_engine.store.stage_runs import PostgresStageRunRepository


class PostgresStore:
    """Persist projects, personas and stage runs in PostgreSQL."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self.projects = PostgresProjectRepository(db)
        self.personas = PostgresPersonaRepository(db)
        self.stage_runs = PostgresStageRunRepository(db)

    @classmethod
    async def open(cls, settings: DatabaseSettings, connect_timeout: float = 5.0) -> PostgresStore:
        """Connect the pool and return a ready store.

        Raises:
            ConnectivityError: If the database cannot be reached
        """
        db = Database(settings, connect_timeout=connect_timeout)
        await db.connect()
        return cls(db)

    async def migrate(self) -> None:
        await self.db.migrate()

    async def close(self) -> None:
        await self.db.close()
