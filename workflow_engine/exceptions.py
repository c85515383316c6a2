"""Custom exception hierarchy for the workflow engine control plane.

This module defines the structured exception hierarchy used to separate
fatal startup failures from per-operation failures that the orchestration
loop contains and logs.

Exception Hierarchy:
    WorkflowEngineError (base)
    ├── ConfigurationError
    ├── ConnectivityError
    ├── StorageError
    ├── MalformedEventError
    ├── InvalidTransitionError
    ├── NotFoundError
    └── StageConflictError

Fatal vs. contained:
    ConfigurationError and ConnectivityError only occur during startup and
    terminate the process. StorageError and MalformedEventError occur while
    handling a single event or repository call and are logged at that scope.

Example Usage:
    >>> from workflow_engine.exceptions import ConfigurationError
    >>> try:
    ...     port = int(raw_port)
    ... except ValueError as e:
    ...     raise ConfigurationError(f"Invalid DB_PORT: {raw_port}") from e
"""


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(WorkflowEngineError):
    """Configuration-related errors.

    Raised when startup configuration is invalid or cannot be read.

    Examples:
        - Non-numeric DB_PORT or REDIS_DB
        - Configuration file not found
        - Invalid YAML syntax
    """

    pass


class ConnectivityError(WorkflowEngineError):
    """Storage or event bus could not be reached at startup.

    Attributes:
        message: Human-readable error description
        service: Name of the unreachable service ("postgres" or "redis")
    """

    def __init__(self, message: str, service: str | None = None) -> None:
        self.service = service
        full_message = f"{message} ({service})" if service else message
        super().__init__(full_message)
        self.message = message


class StorageError(WorkflowEngineError):
    """A persistence operation failed.

    Covers constraint violations, malformed documents, missing rows on
    update, transient I/O failures and pool exhaustion. A missing row on a
    lookup is not a StorageError; repositories return ``None`` for that.

    Attributes:
        message: Human-readable error description
        operation: Repository operation that failed (e.g. "create_project")
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        self.operation = operation
        full_message = f"{operation}: {message}" if operation else message
        super().__init__(full_message)
        self.message = message


class MalformedEventError(WorkflowEngineError):
    """An event payload could not be parsed into the expected shape.

    Attributes:
        message: Human-readable error description
        payload: The raw payload that failed to parse
    """

    def __init__(self, message: str, payload: str | None = None) -> None:
        self.payload = payload
        super().__init__(message)


class InvalidTransitionError(WorkflowEngineError):
    """A lifecycle transition outside the permitted edges was requested.

    Attributes:
        entity: Entity kind ("project" or "stage_run")
        current: Current status value
        target: Requested status value
    """

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Illegal {entity} transition: {current} -> {target}")


class NotFoundError(WorkflowEngineError):
    """A transition targeted a record that does not exist.

    Raised by the stage runner only. Repository lookups signal absence by
    returning ``None``.
    """

    def __init__(self, entity: str, identifier: object) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class StageConflictError(WorkflowEngineError):
    """A stage run cannot be opened for a project right now.

    Raised when the project already has an active (pending or running) run
    of the same stage, or when the project has reached a terminal status.
    """

    pass
