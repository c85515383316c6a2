"""CLI entry point for the workflow engine."""

import asyncio
import json
import sys
import uuid
from uuid import UUID

import click
import structlog

from workflow_engine.cli.health import health_check
from workflow_engine.config.settings import EngineSettings, load_settings
from workflow_engine.engine.bus import RedisEventBus
from workflow_engine.engine.events import ProjectCreatedEvent
from workflow_engine.engine.orchestrator import serve
from workflow_engine.engine.stage_runner import StageRunner
from workflow_engine.enums import ProjectStatus, StageRunStatus
from workflow_engine.exceptions import ConfigurationError, ConnectivityError, NotFoundError, WorkflowEngineError
from workflow_engine.store.models import Document, Project, StageRun
from workflow_engine.store.postgres import PostgresStore
from workflow_engine.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

EXIT_CONFIG_ERROR = 1
EXIT_CONNECTIVITY_ERROR = 2


@click.group()
@click.option("--config", default=None, type=click.Path(), help="Optional YAML configuration file")
@click.option("--env-file", default=".env", type=click.Path(), help="Dotenv file read for settings")
@click.option("--log-level", default="INFO", help="Logging level")
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default="json",
    help="Log output format",
)
@click.pass_context
def cli(ctx: click.Context, config: str | None, env_file: str, log_level: str, log_format: str) -> None:
    """workflow-engine: event-driven project orchestration control plane."""
    configure_logging(log_level, json_output=log_format == "json")

    # health-check reports configuration problems itself
    if ctx.invoked_subcommand == "health-check":
        ctx.obj = {"settings": None, "config": config, "env_file": env_file}
        return

    try:
        settings = load_settings(config, env_file=env_file)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(EXIT_CONFIG_ERROR)

    ctx.obj = {"settings": settings, "config": config, "env_file": env_file}


def _run(coro) -> None:
    """Run a command coroutine, translating failures into exit codes."""
    try:
        asyncio.run(coro)
    except ConnectivityError as e:
        click.echo(f"Error: {e}", err=True)
        log.debug("connectivity_error", exc_info=True)
        sys.exit(EXIT_CONNECTIVITY_ERROR)
    except WorkflowEngineError as e:
        click.echo(f"Error: {e}", err=True)
        log.debug("command_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


def _parse_document(raw: str | None, option: str) -> Document | None:
    if raw is None:
        return None
    try:
        json.loads(raw)
    except ValueError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint=option) from e
    return raw.encode("utf-8")


def _format_project(project: Project) -> str:
    return f"{project.project_id}  {project.status:<9}  {project.name}"


def _format_stage_run(run: StageRun) -> str:
    line = f"  {run.stage_run_id}  {run.stage_name}: {run.status}"
    if run.started_at:
        line += f"  started={run.started_at.isoformat()}"
    if run.completed_at:
        line += f"  completed={run.completed_at.isoformat()}"
    return line


async def _open_store(settings: EngineSettings) -> PostgresStore:
    return await PostgresStore.open(settings.database, connect_timeout=settings.orchestrator.connect_timeout)


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the orchestrator until SIGINT or SIGTERM."""
    _run(serve(ctx.obj["settings"]))


@cli.command()
@click.pass_context
def migrate(ctx: click.Context) -> None:
    """Create the database schema if it does not exist."""
    _run(_migrate(ctx.obj["settings"]))


async def _migrate(settings: EngineSettings) -> None:
    store = await _open_store(settings)
    try:
        await store.migrate()
    finally:
        await store.close()
    click.echo("Schema is up to date.")


@cli.command()
@click.option("--name", default="Acme Launch", help="Project name")
@click.option("--description", default=None, help="Project description")
@click.option("--event-id", default=None, help="Event id (random when omitted)")
@click.pass_context
def publish(ctx: click.Context, name: str, description: str | None, event_id: str | None) -> None:
    """Publish a project-created event."""
    event = ProjectCreatedEvent(id=event_id or str(uuid.uuid4()), name=name, description=description)
    _run(_publish(ctx.obj["settings"], event))


async def _publish(settings: EngineSettings, event: ProjectCreatedEvent) -> None:
    bus = RedisEventBus.from_settings(settings.redis)
    try:
        await bus.connect(timeout=settings.orchestrator.connect_timeout)
        receivers = await bus.publish(settings.orchestrator.channel, event.to_payload())
    finally:
        await bus.close()
    click.echo(f"Published event {event.id} to {settings.orchestrator.channel} ({receivers} receivers)")


@cli.command("list-projects")
@click.option("--status", type=click.Choice([s.value for s in ProjectStatus]), default=None, help="Filter by status")
@click.option("--limit", type=int, default=50, help="Maximum number of projects")
@click.pass_context
def list_projects(ctx: click.Context, status: str | None, limit: int) -> None:
    """List projects, newest first."""
    _run(_list_projects(ctx.obj["settings"], ProjectStatus(status) if status else None, limit))


async def _list_projects(settings: EngineSettings, status: ProjectStatus | None, limit: int) -> None:
    store = await _open_store(settings)
    try:
        projects = await store.projects.list(status=status, limit=limit)
    finally:
        await store.close()

    if not projects:
        click.echo("No projects found.")
        return
    for project in projects:
        click.echo(_format_project(project))


@cli.command("show-project")
@click.argument("project_id", type=click.UUID)
@click.pass_context
def show_project(ctx: click.Context, project_id: UUID) -> None:
    """Show a project and its stage runs."""
    _run(_show_project(ctx.obj["settings"], project_id))


async def _show_project(settings: EngineSettings, project_id: UUID) -> None:
    store = await _open_store(settings)
    try:
        project = await store.projects.get(project_id)
        runs = await store.stage_runs.list_for_project(project_id) if project else []
    finally:
        await store.close()

    if project is None:
        raise NotFoundError("project", project_id)

    click.echo(f"Project {project.project_id}")
    click.echo(f"Name: {project.name}")
    if project.description:
        click.echo(f"Description: {project.description}")
    click.echo(f"Status: {project.status}")
    if project.source_event_id:
        click.echo(f"Source event: {project.source_event_id}")
    click.echo(f"Created: {project.created_at.isoformat() if project.created_at else 'unknown'}")
    click.echo(f"Updated: {project.updated_at.isoformat() if project.updated_at else 'unknown'}")
    click.echo(f"\nStage runs ({len(runs)}):")
    for stage_run in runs:
        click.echo(_format_stage_run(stage_run))


@cli.command("set-project-status")
@click.argument("project_id", type=click.UUID)
@click.argument("status", type=click.Choice([s.value for s in ProjectStatus]))
@click.pass_context
def set_project_status(ctx: click.Context, project_id: UUID, status: str) -> None:
    """Move a project to STATUS along a permitted lifecycle edge."""
    _run(_set_project_status(ctx.obj["settings"], project_id, ProjectStatus(status)))


async def _set_project_status(settings: EngineSettings, project_id: UUID, status: ProjectStatus) -> None:
    store = await _open_store(settings)
    try:
        project = await StageRunner(store).transition_project(project_id, status)
    finally:
        await store.close()
    click.echo(_format_project(project))


@cli.command("open-stage")
@click.argument("project_id", type=click.UUID)
@click.argument("stage_name")
@click.option("--input", "input_json", default=None, help="Input context as a JSON document")
@click.pass_context
def open_stage(ctx: click.Context, project_id: UUID, stage_name: str, input_json: str | None) -> None:
    """Open a pending STAGE_NAME run for a project."""
    input_context = _parse_document(input_json, "--input")
    _run(_open_stage(ctx.obj["settings"], project_id, stage_name, input_context))


async def _open_stage(
    settings: EngineSettings, project_id: UUID, stage_name: str, input_context: Document | None
) -> None:
    store = await _open_store(settings)
    try:
        stage_run = await StageRunner(store).open_stage(project_id, stage_name, input_context)
    finally:
        await store.close()
    click.echo(_format_stage_run(stage_run).strip())


@cli.command("set-stage-status")
@click.argument("stage_run_id", type=click.UUID)
@click.argument("status", type=click.Choice([s.value for s in StageRunStatus]))
@click.option("--output", "output_json", default=None, help="Output context as a JSON document")
@click.pass_context
def set_stage_status(ctx: click.Context, stage_run_id: UUID, status: str, output_json: str | None) -> None:
    """Move a stage run to STATUS along a permitted lifecycle edge."""
    output_context = _parse_document(output_json, "--output")
    _run(_set_stage_status(ctx.obj["settings"], stage_run_id, StageRunStatus(status), output_context))


async def _set_stage_status(
    settings: EngineSettings, stage_run_id: UUID, status: StageRunStatus, output_context: Document | None
) -> None:
    store = await _open_store(settings)
    try:
        stage_run = await StageRunner(store).transition_stage(stage_run_id, status, output_context)
    finally:
        await store.close()
    click.echo(_format_stage_run(stage_run).strip())


cli.add_command(health_check)


if __name__ == "__main__":
    cli()
