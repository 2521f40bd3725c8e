"""Database utility functions for dirauth."""

from __future__ import annotations

from safir.database import create_database_engine, initialize_database
from sqlalchemy.ext.asyncio import AsyncEngine
from structlog.stdlib import BoundLogger

from .config import Config
from .schema import SchemaBase

__all__ = ["initialize_dirauth_database"]


async def initialize_dirauth_database(
    config: Config,
    logger: BoundLogger,
    engine: AsyncEngine | None = None,
    *,
    reset: bool = False,
) -> None:
    """Initialize the database.

    This is the internal async implementation of the ``init`` command.

    Parameters
    ----------
    config
        dirauth configuration.
    logger
        Logger to use for status reporting.
    engine
        If given, database engine to use, which avoids the need to create
        another one. It is not disposed of by this function.
    reset
        If set to `True`, drop all existing tables first, deleting all
        accounts.
    """
    if engine:
        await initialize_database(
            engine, logger, schema=SchemaBase.metadata, reset=reset
        )
        return
    engine = create_database_engine(
        config.database_url, config.database_password
    )
    try:
        await initialize_database(
            engine, logger, schema=SchemaBase.metadata, reset=reset
        )
    finally:
        await engine.dispose()
