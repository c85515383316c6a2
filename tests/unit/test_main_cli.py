"""Unit tests for the workflow_engine.main CLI module.

This module tests the CLI entry point including:
- Settings loading and configuration errors
- Every command against an in-memory store or fakeredis
- Exit codes for configuration and connectivity failures
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from click.testing import CliRunner
from fakeredis import aioredis

from workflow_engine.engine.bus import RedisEventBus
from workflow_engine.enums import ProjectStatus, StageRunStatus
from workflow_engine.exceptions import ConnectivityError
from workflow_engine.main import cli
from workflow_engine.store.memory import InMemoryStore
from workflow_engine.store.models import Project, StageRun


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep the CLI from installing a cached stdout logger between invocations."""
    with patch("workflow_engine.main.configure_logging"):
        yield


@pytest.fixture
def base_args(tmp_path):
    return ["--env-file", str(tmp_path / "missing.env")]


@pytest.fixture
def memory_store(clean_env):
    """In-memory store handed to commands in place of PostgreSQL."""
    store = InMemoryStore()
    with patch("workflow_engine.main.PostgresStore.open", new=AsyncMock(return_value=store)):
        yield store


def seed_project(store: InMemoryStore, **kwargs) -> Project:
    return asyncio.run(store.projects.create(Project(**{"name": "Acme Launch", **kwargs})))


# =============================================================================
# Group and settings
# =============================================================================


class TestCliGroup:
    def test_help_lists_commands(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in (
            "run",
            "migrate",
            "publish",
            "health-check",
            "list-projects",
            "show-project",
            "set-project-status",
            "open-stage",
            "set-stage-status",
        ):
            assert command in result.output

    def test_invalid_env_is_config_error(self, cli_runner, clean_env, base_args):
        clean_env.setenv("DB_PORT", "abc")

        result = cli_runner.invoke(cli, [*base_args, "list-projects"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_missing_yaml_is_config_error(self, cli_runner, clean_env, base_args, tmp_path):
        result = cli_runner.invoke(cli, [*base_args, "--config", str(tmp_path / "nope.yaml"), "migrate"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output


# =============================================================================
# Commands
# =============================================================================


class TestRunCommand:
    def test_connectivity_failure_exits_2(self, cli_runner, clean_env, base_args):
        with patch(
            "workflow_engine.main.serve",
            new=AsyncMock(side_effect=ConnectivityError("Failed to connect to Redis", service="redis")),
        ):
            result = cli_runner.invoke(cli, [*base_args, "run"])

        assert result.exit_code == 2
        assert "Failed to connect to Redis" in result.output

    def test_clean_shutdown_exits_0(self, cli_runner, clean_env, base_args):
        with patch("workflow_engine.main.serve", new=AsyncMock(return_value=None)) as serve:
            result = cli_runner.invoke(cli, [*base_args, "run"])

        assert result.exit_code == 0
        serve.assert_awaited_once()


class TestMigrateCommand:
    def test_migrate(self, cli_runner, memory_store, base_args):
        result = cli_runner.invoke(cli, [*base_args, "migrate"])

        assert result.exit_code == 0
        assert "Schema is up to date" in result.output

    def test_database_unreachable(self, cli_runner, clean_env, base_args):
        with patch(
            "workflow_engine.main.PostgresStore.open",
            new=AsyncMock(side_effect=ConnectivityError("Failed to connect to database", service="postgres")),
        ):
            result = cli_runner.invoke(cli, [*base_args, "migrate"])

        assert result.exit_code == 2


class TestPublishCommand:
    def test_publishes_event(self, cli_runner, clean_env, base_args):
        client = aioredis.FakeRedis()
        with patch(
            "workflow_engine.main.RedisEventBus.from_settings",
            return_value=RedisEventBus(client),
        ):
            result = cli_runner.invoke(
                cli,
                [*base_args, "publish", "--name", "Acme Launch", "--description", "demo", "--event-id", "evt-1"],
            )

        assert result.exit_code == 0
        assert "Published event evt-1 to project_created_events (0 receivers)" in result.output


class TestProjectCommands:
    def test_list_projects_empty(self, cli_runner, memory_store, base_args):
        result = cli_runner.invoke(cli, [*base_args, "list-projects"])

        assert result.exit_code == 0
        assert "No projects found." in result.output

    def test_list_projects(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store)

        result = cli_runner.invoke(cli, [*base_args, "list-projects"])

        assert result.exit_code == 0
        assert str(project.project_id) in result.output
        assert "Acme Launch" in result.output
        assert "created" in result.output

    def test_list_projects_status_filter(self, cli_runner, memory_store, base_args):
        seed_project(memory_store)

        result = cli_runner.invoke(cli, [*base_args, "list-projects", "--status", "running"])

        assert result.exit_code == 0
        assert "No projects found." in result.output

    def test_list_projects_rejects_unknown_status(self, cli_runner, memory_store, base_args):
        result = cli_runner.invoke(cli, [*base_args, "list-projects", "--status", "archived"])

        assert result.exit_code == 2

    def test_show_project(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store, description="demo")
        asyncio.run(memory_store.stage_runs.create(StageRun(project_id=project.project_id, stage_name="research")))

        result = cli_runner.invoke(cli, [*base_args, "show-project", str(project.project_id)])

        assert result.exit_code == 0
        assert "Name: Acme Launch" in result.output
        assert "Description: demo" in result.output
        assert "Stage runs (1):" in result.output
        assert "research: pending" in result.output

    def test_show_missing_project(self, cli_runner, memory_store, base_args):
        result = cli_runner.invoke(cli, [*base_args, "show-project", str(uuid4())])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_set_project_status(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store)

        result = cli_runner.invoke(cli, [*base_args, "set-project-status", str(project.project_id), "running"])

        assert result.exit_code == 0
        stored = asyncio.run(memory_store.projects.get(project.project_id))
        assert stored.status is ProjectStatus.RUNNING

    def test_set_project_status_illegal(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store)

        result = cli_runner.invoke(cli, [*base_args, "set-project-status", str(project.project_id), "completed"])

        assert result.exit_code == 1
        assert "Illegal project transition: created -> completed" in result.output


class TestStageCommands:
    def test_open_stage_with_input(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store)

        result = cli_runner.invoke(
            cli,
            [*base_args, "open-stage", str(project.project_id), "research", "--input", '{"topic": "launch"}'],
        )

        assert result.exit_code == 0
        [run] = asyncio.run(memory_store.stage_runs.list_for_project(project.project_id))
        assert run.status is StageRunStatus.PENDING
        assert json.loads(run.input_context) == {"topic": "launch"}

    def test_open_stage_rejects_bad_json(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store)

        result = cli_runner.invoke(
            cli, [*base_args, "open-stage", str(project.project_id), "research", "--input", "{oops"]
        )

        assert result.exit_code == 2
        assert "not valid JSON" in result.output

    def test_open_stage_conflict(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store)
        cli_runner.invoke(cli, [*base_args, "open-stage", str(project.project_id), "research"])

        result = cli_runner.invoke(cli, [*base_args, "open-stage", str(project.project_id), "research"])

        assert result.exit_code == 1
        assert "already has an active run" in result.output

    def test_set_stage_status_with_output(self, cli_runner, memory_store, base_args):
        project = seed_project(memory_store)
        run = asyncio.run(memory_store.stage_runs.create(StageRun(project_id=project.project_id, stage_name="draft")))
        cli_runner.invoke(cli, [*base_args, "set-stage-status", str(run.stage_run_id), "running"])

        result = cli_runner.invoke(
            cli,
            [*base_args, "set-stage-status", str(run.stage_run_id), "completed", "--output", '{"ok": true}'],
        )

        assert result.exit_code == 0
        stored = asyncio.run(memory_store.stage_runs.get(run.stage_run_id))
        assert stored.status is StageRunStatus.COMPLETED
        assert stored.started_at is not None
        assert stored.completed_at is not None
        assert json.loads(stored.output_context) == {"ok": True}

    def test_set_stage_status_missing_run(self, cli_runner, memory_store, base_args):
        result = cli_runner.invoke(cli, [*base_args, "set-stage-status", str(uuid4()), "running"])

        assert result.exit_code == 1
        assert "stage_run not found" in result.output
