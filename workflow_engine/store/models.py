"""
Persisted records for projects, personas and stage runs.

Records are plain dataclasses filled in by the repositories: callers supply
the descriptive fields, repositories supply identity, status defaults and
timestamps. Optional values are ``None`` when unset, never a sentinel.

Opaque documents (``model_config``, ``input_context``, ``output_context``)
are raw JSON bytes. The persistence layer checks them for well-formedness
only; their meaning belongs to the stage execution collaborator.

Example:
    Creating a stage run record::

        run = StageRun(
            project_id=project.project_id,
            stage_name="research",
            input_context=b'{"topic": "launch"}',
        )
        run = await store.stage_runs.create(run)
        assert run.status is StageRunStatus.PENDING
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from workflow_engine.enums import ProjectStatus, StageRunStatus

Document = bytes
"""Raw JSON document bytes, stored and returned without interpretation."""


def encode_document(value: Any) -> Document:
    """Serialize a Python value into a document."""
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


def decode_document(document: Document | None) -> Any:
    """Parse a document back into Python values; ``None`` stays ``None``."""
    if document is None:
        return None
    return json.loads(document)


def is_well_formed(document: Document) -> bool:
    """Check that a document is valid UTF-8 JSON."""
    try:
        json.loads(document.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return False
    return True


@dataclass
class Project:
    """Top-level unit of work tracked through a status lifecycle."""

    name: str
    """Human-readable project name. Required."""

    description: str | None = None
    """Optional free-text description."""

    project_id: UUID | None = None
    """Assigned by the repository on creation; immutable afterwards."""

    status: ProjectStatus = ProjectStatus.CREATED
    """Current lifecycle status."""

    source_event_id: str | None = None
    """Identifier of the inbound event that created this project, if any.

    Unique across projects, so replaying the same event cannot create a
    second project.
    """

    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Persona:
    """Reusable named configuration (prompt template plus model settings)."""

    name: str
    prompt_template: str
    model_config: Document
    description: str | None = None
    persona_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class StageRun:
    """One execution attempt of a named stage within a project's workflow.

    A stage run references its project by identifier only. It is created in
    ``pending`` with no timing information; ``started_at`` is stamped when it
    enters ``running`` and ``completed_at`` when it reaches a terminal status.
    """

    project_id: UUID
    stage_name: str
    input_context: Document | None = None
    output_context: Document | None = None
    stage_run_id: UUID | None = None
    status: StageRunStatus = StageRunStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
