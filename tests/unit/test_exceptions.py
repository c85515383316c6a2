"""Tests for workflow_engine.exceptions module."""

from uuid import UUID

import pytest

from workflow_engine.exceptions import (
    ConfigurationError,
    ConnectivityError,
    InvalidTransitionError,
    MalformedEventError,
    NotFoundError,
    StageConflictError,
    StorageError,
    WorkflowEngineError,
)


class TestWorkflowEngineError:
    """Test base WorkflowEngineError class."""

    def test_init_with_message(self):
        error = WorkflowEngineError("Test error message")

        assert error.message == "Test error message"
        assert str(error) == "Test error message"

    def test_subclasses_share_base(self):
        for exc_cls in (ConfigurationError, ConnectivityError, StorageError, MalformedEventError, StageConflictError):
            assert issubclass(exc_cls, WorkflowEngineError)
        assert issubclass(InvalidTransitionError, WorkflowEngineError)
        assert issubclass(NotFoundError, WorkflowEngineError)


class TestConnectivityError:
    """Test ConnectivityError formatting."""

    def test_service_in_str_not_message(self):
        error = ConnectivityError("connection refused", service="redis")

        assert error.service == "redis"
        assert error.message == "connection refused"
        assert str(error) == "connection refused (redis)"

    def test_without_service(self):
        error = ConnectivityError("connection refused")

        assert error.service is None
        assert str(error) == "connection refused"


class TestStorageError:
    """Test StorageError formatting."""

    def test_operation_prefix(self):
        error = StorageError("duplicate key", operation="create_project")

        assert error.operation == "create_project"
        assert error.message == "duplicate key"
        assert str(error) == "create_project: duplicate key"

    def test_chained_cause_preserved(self):
        original = ValueError("boom")

        with pytest.raises(StorageError) as exc_info:
            try:
                raise original
            except ValueError as e:
                raise StorageError("write failed", operation="update_project_status") from e

        assert exc_info.value.__cause__ is original


class TestMalformedEventError:
    def test_payload_kept(self):
        error = MalformedEventError("payload is not valid JSON", payload="{not json")

        assert error.payload == "{not json"
        assert error.message == "payload is not valid JSON"


class TestInvalidTransitionError:
    def test_message_names_both_states(self):
        error = InvalidTransitionError("project", "completed", "running")

        assert error.entity == "project"
        assert error.current == "completed"
        assert error.target == "running"
        assert str(error) == "Illegal project transition: completed -> running"


class TestNotFoundError:
    def test_message(self):
        identifier = UUID("00000000-0000-0000-0000-000000000001")
        error = NotFoundError("stage_run", identifier)

        assert error.entity == "stage_run"
        assert error.identifier == identifier
        assert str(error) == f"stage_run not found: {identifier}"
