#!/usr/bin/env python3
"""
Main CLI entry point for the usergraph server and its database migrations.
"""

import os
import sys
from pathlib import Path

import click
import uvicorn

from alembic import command
from alembic.config import Config
from usergraph import __version__
from usergraph.logging import configure_logging, get_logger

logger = get_logger(__name__)

LOG_LEVELS = ["debug", "info", "warning", "error"]


def get_alembic_config() -> Config:
    """Locate alembic.ini at the project root."""
    project_dir = Path(__file__).resolve().parents[2]
    alembic_ini = project_dir / "alembic.ini"

    if not alembic_ini.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini}")

    return Config(str(alembic_ini))


@click.group()
@click.version_option(version=__version__, prog_name="usergraph")
def cli() -> None:
    """usergraph CLI - run the GraphQL server and manage the database."""
    pass


@cli.command()
@click.option("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
@click.option("--port", default=8080, type=int, help="Port to bind to (default: 8080)")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development")
@click.option(
    "--workers", default=1, type=int, help="Number of worker processes (default: 1)"
)
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(LOG_LEVELS),
    help="Log level (default: info)",
)
def serve(host: str, port: int, reload: bool, workers: int, log_level: str) -> None:
    """Start the GraphQL API server."""
    configure_logging(debug=(log_level == "debug"))

    logger.info(
        "Starting usergraph API server",
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level,
    )

    # Settings are read at import time by each worker process
    if log_level == "debug":
        os.environ["USERGRAPH_DEBUG"] = "true"
    os.environ.setdefault("USERGRAPH_LOG_LEVEL", log_level)

    try:
        uvicorn.run(
            "usergraph.api.app:app",
            host=host,
            port=port,
            reload=reload,
            workers=(workers if not reload else 1),
            log_level=log_level,
            access_log=True,
        )
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
    except Exception as e:
        logger.error("Server startup failed", error=str(e))
        sys.exit(1)


def _alembic(action: str, *args: str) -> None:
    """Run an Alembic command against the users schema; exit 1 on failure."""
    try:
        getattr(command, action)(get_alembic_config(), *args)
    except Exception as e:
        logger.error("Migration command failed", action=action, args=args, error=str(e))
        sys.exit(1)


@cli.group()
def migrate() -> None:
    """Create or roll back the users table."""
    pass


@migrate.command()
@click.argument("revision", default="head")
def upgrade(revision: str) -> None:
    """Apply migrations up to REVISION (default: head)."""
    logger.info("Upgrading database", revision=revision)
    _alembic("upgrade", revision)


@migrate.command()
@click.argument("revision", default="-1")
def downgrade(revision: str) -> None:
    """Roll back to REVISION (default: one step)."""
    logger.info("Downgrading database", revision=revision)
    _alembic("downgrade", revision)


@migrate.command()
def current() -> None:
    """Show the revision the database is at."""
    _alembic("current")


@migrate.command()
def history() -> None:
    """List known revisions."""
    _alembic("history")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
