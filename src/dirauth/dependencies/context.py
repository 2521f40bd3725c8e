"""Request context dependency for FastAPI.

This dependency gathers a variety of information into a single object for the
convenience of writing request handlers. It also provides a place to store a
`structlog.BoundLogger` that can gather additional context during processing,
including from dependencies.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Request
from safir.database import create_async_session
from safir.dependencies.logger import logger_dependency
from sqlalchemy.ext.asyncio import AsyncEngine, async_scoped_session
from structlog.stdlib import BoundLogger

from ..config import Config
from ..factory import Factory, ProcessContext
from ..models.state import State

__all__ = [
    "ContextDependency",
    "RequestContext",
    "context_dependency",
]


@dataclass(slots=True)
class RequestContext:
    """Holds the incoming request and its surrounding context.

    The primary reason for the existence of this class is to allow the
    functions involved in request processing to repeatedly rebind the request
    logger to include more information, without having to pass both the
    request and the logger separately to every function.
    """

    request: Request
    """The incoming request."""

    config: Config
    """dirauth's configuration."""

    logger: BoundLogger
    """The request logger, rebound with discovered context."""

    session: async_scoped_session
    """The database session."""

    factory: Factory
    """The component factory."""

    @property
    def state(self) -> State:
        """User cookie state."""
        return self.request.state.cookie

    @state.setter
    def state(self, state: State) -> None:
        """Set the cookie state."""
        self.request.state.cookie = state

    def rebind_logger(self, **values: Any) -> None:
        """Add the given values to the logging context.

        Parameters
        ----------
        **values
            Additional values that should be added to the logging context.
        """
        self.logger = self.logger.bind(**values)
        self.factory.set_logger(self.logger)


class ContextDependency:
    """Provide a per-request context as a FastAPI dependency.

    Each request gets a `RequestContext` with its own database session, which
    is removed when the request finishes. To save overhead, the portions of
    the context that are shared by all requests are collected into the single
    process-global `~dirauth.factory.ProcessContext` and reused with each
    request.
    """

    def __init__(self) -> None:
        self._config: Config | None = None
        self._process_context: ProcessContext | None = None

    async def __call__(
        self,
        *,
        request: Request,
        logger: Annotated[BoundLogger, Depends(logger_dependency)],
    ) -> AsyncIterator[RequestContext]:
        """Create a per-request context and yield it."""
        if not self._config or not self._process_context:
            raise RuntimeError("ContextDependency not initialized")
        session = await create_async_session(self._process_context.engine)
        try:
            yield RequestContext(
                request=request,
                config=self._config,
                logger=logger,
                session=session,
                factory=Factory(self._process_context, session, logger),
            )
        finally:
            await session.remove()

    async def aclose(self) -> None:
        """Clean up the per-process configuration."""
        if self._process_context:
            await self._process_context.aclose()
        self._config = None
        self._process_context = None

    async def initialize(
        self, config: Config, engine: AsyncEngine | None = None
    ) -> None:
        """Initialize the process-wide shared context.

        Parameters
        ----------
        config
            dirauth configuration.
        engine
            Database engine to use. If not given, one is created from the
            configuration.
        """
        if self._process_context:
            await self._process_context.aclose()
        self._config = config
        self._process_context = await ProcessContext.from_config(
            config, engine
        )


context_dependency = ContextDependency()
"""The dependency that will return the per-request context."""
