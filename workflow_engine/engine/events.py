"""Inbound event payloads carried on the event bus.

Payloads have no version field: a change of shape is a breaking change for
every subscriber. Unknown fields are ignored so publishers can add data
without breaking this consumer.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from workflow_engine.exceptions import MalformedEventError


class ProjectCreatedEvent(BaseModel):
    """Payload published on the project-created channel.

    Example payload::

        {"id": "6f1c...", "name": "Acme Launch", "description": "demo"}
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str = Field(..., min_length=1, description="Publisher-assigned event identifier")
    name: str = Field(..., min_length=1, description="Project name")
    description: str | None = Field(default=None, description="Optional project description")

    def to_payload(self) -> str:
        return self.model_dump_json()


def parse_project_created(payload: str | bytes) -> ProjectCreatedEvent:
    """Parse a raw bus payload.

    Raises:
        MalformedEventError: If the payload is not UTF-8 JSON, not an object,
            or lacks a non-empty ``id`` or ``name``
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEventError("payload is not valid UTF-8") from e

    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"payload is not valid JSON: {e.msg}", payload=payload) from e

    if not isinstance(data, dict):
        raise MalformedEventError("payload must be a JSON object", payload=payload)

    try:
        return ProjectCreatedEvent.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise MalformedEventError(f"payload failed validation: {fields}", payload=payload) from e
