"""Health check command for the workflow engine."""

import asyncio
import sys

import click
import structlog

from workflow_engine.config.settings import EngineSettings, load_settings
from workflow_engine.engine.bus import RedisEventBus
from workflow_engine.exceptions import ConfigurationError, ConnectivityError
from workflow_engine.store.database import Database

log = structlog.get_logger(__name__)


# Exit codes for semantic error reporting
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_CONNECTIVITY_ERROR = 2


def _print_check(name: str, status: bool, detail: str | None = None) -> None:
    """Print a check result with consistent formatting.

    Args:
        name: Name of the check
        status: True if passed, False if failed
        detail: Optional detail message
    """
    if status:
        click.echo(f"  {click.style('[OK]', fg='green')} {name}")
    else:
        click.echo(f"  {click.style('[FAIL]', fg='red')} {name}")

    if detail:
        click.echo(f"       {detail}")


async def _check_database(settings: EngineSettings) -> str | None:
    db = Database(settings.database, connect_timeout=settings.orchestrator.connect_timeout)
    try:
        await db.connect()
    except ConnectivityError as e:
        return e.message
    await db.close()
    return None


async def _check_redis(settings: EngineSettings) -> str | None:
    bus = RedisEventBus.from_settings(settings.redis)
    try:
        await bus.connect(timeout=settings.orchestrator.connect_timeout)
    except ConnectivityError as e:
        return e.message
    finally:
        await bus.close()
    return None


@click.command("health-check")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed information for each check")
@click.option(
    "--skip-connectivity",
    is_flag=True,
    help="Skip database and Redis checks (config validation only)",
)
@click.pass_context
def health_check(ctx: click.Context, verbose: bool, skip_connectivity: bool) -> None:
    """Validate configuration and test connectivity.

    \b
    Exit codes:
      0 - All checks passed
      1 - Configuration error
      2 - Database or Redis unreachable
    """
    obj = ctx.obj or {}
    click.echo(click.style("workflow-engine Health Check", bold=True))
    click.echo()
    click.echo(click.style("Configuration:", bold=True))

    try:
        settings = load_settings(obj.get("config"), env_file=obj.get("env_file", ".env"))
    except ConfigurationError as e:
        _print_check("Config validates", False, e.message)
        sys.exit(EXIT_CONFIG_ERROR)

    _print_check(
        "Config validates",
        True,
        f"Database: {settings.database.host}:{settings.database.port}/{settings.database.name}, "
        f"Redis: {settings.redis.addr}"
        if verbose
        else None,
    )

    if skip_connectivity:
        click.echo()
        click.echo(click.style("All checks passed!", fg="green", bold=True))
        sys.exit(EXIT_SUCCESS)

    click.echo()
    click.echo(click.style("Connectivity:", bold=True))

    all_passed = True
    error = asyncio.run(_check_database(settings))
    _print_check("PostgreSQL", error is None, error)
    all_passed = all_passed and error is None

    error = asyncio.run(_check_redis(settings))
    _print_check("Redis", error is None, error)
    all_passed = all_passed and error is None

    click.echo()
    if all_passed:
        click.echo(click.style("All checks passed!", fg="green", bold=True))
        sys.exit(EXIT_SUCCESS)

    log.debug("health_check_failed")
    click.echo(click.style("Some checks failed.", fg="red", bold=True))
    sys.exit(EXIT_CONNECTIVITY_ERROR)
