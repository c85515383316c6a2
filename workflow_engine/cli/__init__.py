"""CLI commands for the workflow engine.

Most commands live in ``workflow_engine.main``; commands that manage their
own configuration loading (such as ``health-check``) live here.
"""

from workflow_engine.cli.health import health_check

__all__ = ["health_check"]
