"""PostgreSQL-backed persona repository."""

from __future__ import annotations

import uuid
from typing import Any
from uuid import UUID

from workflow_engine.store.database import Database, document_param, document_value
from workflow_engine.store.models import Persona

_COLUMNS = "persona_id, name, description, prompt_template, model_config::text AS model_config, created_at, updated_at"


def _row_to_persona(row: dict[str, Any]) -> Persona:
    return Persona(
        persona_id=row["persona_id"],
        name=row["name"],
        description=row["description"],
        prompt_template=row["prompt_template"],
        model_config=document_value(row["model_config"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresPersonaRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    async def create(self, persona: Persona) -> Persona:
        persona_id = uuid.uuid4()
        model_config = document_param(persona.model_config, "create_persona")
        async with self._db.connection("create_persona") as conn:
            cur = await conn.execute(
                f"""
                INSERT INTO personas (
                    persona_id, name, description, prompt_template, model_config, created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s::jsonb, now(), now())
                RETURNING {_COLUMNS}
                """,
                (persona_id, persona.name, persona.description, persona.prompt_template, model_config),
            )
            row = await cur.fetchone()
        return _row_to_persona(row)

    async def get(self, persona_id: UUID) -> Persona | None:
        async with self._db.connection("get_persona") as conn:
            cur = await conn.execute(f"SELECT {_COLUMNS} FROM personas WHERE persona_id = %s", (persona_id,))
            row = await cur.fetchone()
        return _row_to_persona(row) if row else None
