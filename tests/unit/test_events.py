"""Tests for project-created event parsing."""

import json

import pytest

from workflow_engine.engine.events import ProjectCreatedEvent, parse_project_created
from workflow_engine.exceptions import MalformedEventError


class TestParseProjectCreated:
    def test_full_payload(self):
        event = parse_project_created('{"id": "evt-1", "name": "Acme Launch", "description": "demo"}')

        assert event.id == "evt-1"
        assert event.name == "Acme Launch"
        assert event.description == "demo"

    def test_description_optional(self):
        event = parse_project_created('{"id": "evt-1", "name": "Acme Launch"}')

        assert event.description is None

    def test_bytes_payload(self):
        event = parse_project_created(b'{"id": "evt-1", "name": "Acme Launch"}')

        assert event.name == "Acme Launch"

    def test_unknown_fields_ignored(self):
        event = parse_project_created('{"id": "evt-1", "name": "Acme", "owner": "ops", "priority": 3}')

        assert event.name == "Acme"
        assert not hasattr(event, "owner")

    def test_whitespace_stripped(self):
        event = parse_project_created('{"id": " evt-1 ", "name": "  Acme  "}')

        assert event.id == "evt-1"
        assert event.name == "Acme"

    @pytest.mark.parametrize(
        "payload,match",
        [
            ("{not json", "not valid JSON"),
            ("", "not valid JSON"),
            ("[1, 2, 3]", "JSON object"),
            ('"just a string"', "JSON object"),
            ('{"name": "Acme"}', "id"),
            ('{"id": "evt-1"}', "name"),
            ('{"id": "evt-1", "name": ""}', "name"),
            ('{"id": "evt-1", "name": "   "}', "name"),
            ('{"id": "", "name": "Acme"}', "id"),
            ('{"id": "evt-1", "name": 42}', "name"),
        ],
    )
    def test_malformed_payloads(self, payload, match):
        with pytest.raises(MalformedEventError, match=match):
            parse_project_created(payload)

    def test_malformed_keeps_payload(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_project_created("{not json")

        assert exc_info.value.payload == "{not json"

    def test_invalid_utf8(self):
        with pytest.raises(MalformedEventError, match="UTF-8"):
            parse_project_created(b"\xff\xfe")


class TestProjectCreatedEvent:
    def test_to_payload_parses_back(self):
        event = ProjectCreatedEvent(id="evt-1", name="Acme Launch", description=None)

        assert json.loads(event.to_payload()) == {"id": "evt-1", "name": "Acme Launch", "description": None}
        assert parse_project_created(event.to_payload()) == event
