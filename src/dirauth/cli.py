"""Administrative command-line interface."""

from __future__ import annotations

import sys
from pathlib import Path

import click
import structlog
import uvicorn
from cryptography.fernet import Fernet
from safir.asyncio import run_with_asyncio
from safir.click import display_help

from .database import initialize_dirauth_database
from .dependencies.config import config_dependency
from .main import create_openapi

__all__ = [
    "generate_key",
    "help",
    "init",
    "main",
    "openapi_schema",
    "run",
]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Administrative command-line interface for dirauth."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic)


@main.command()
def generate_key() -> None:
    """Generate a new session secret for the state cookie."""
    sys.stdout.write(Fernet.generate_key().decode() + "\n")


@main.command()
@click.option(
    "--config-path",
    envvar="DIRAUTH_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=None,
    help="Application configuration file.",
)
@click.option(
    "--reset",
    default=False,
    is_flag=True,
    help="Delete all existing accounts first.",
)
@run_with_asyncio
async def init(*, config_path: Path | None, reset: bool) -> None:
    """Initialize the database storage."""
    if config_path:
        config_dependency.set_config_path(config_path)
    config = config_dependency.config()
    logger = structlog.get_logger("dirauth")
    logger.debug("Initializing database")
    await initialize_dirauth_database(config, logger, reset=reset)
    logger.debug("Finished initializing database")


@main.command()
@click.option(
    "--output",
    default=None,
    type=click.Path(path_type=Path),
    help="Output path (output to stdout if not given).",
)
def openapi_schema(*, output: Path | None) -> None:
    """Generate the OpenAPI schema."""
    schema = create_openapi()
    if output:
        output.parent.mkdir(exist_ok=True)
        output.write_text(schema)
    else:
        sys.stdout.write(schema)


@main.command()
@click.option(
    "--port", default=8080, type=int, help="Port to run the application on."
)
def run(*, port: int) -> None:
    """Run the application (for testing only)."""
    uvicorn.run(
        "dirauth.main:create_app",
        factory=True,
        port=port,
        reload=True,
        reload_dirs=["src"],
    )
