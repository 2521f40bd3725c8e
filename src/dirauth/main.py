"""Application definition for dirauth."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from safir.fastapi import ClientRequestError, client_request_error_handler
from safir.logging import configure_uvicorn_logging
from safir.middleware.x_forwarded import XForwardedMiddleware
from safir.models import ErrorModel
from safir.slack.webhook import SlackRouteErrorHandler
from sqlalchemy.ext.asyncio import AsyncEngine

from . import __version__
from .constants import COOKIE_NAME
from .dependencies.config import config_dependency
from .dependencies.context import context_dependency
from .handlers import internal, login
from .middleware.state import StateMiddleware

__all__ = ["create_app", "create_openapi"]


def create_app(
    *, load_config: bool = True, engine: AsyncEngine | None = None
) -> FastAPI:
    """Create the FastAPI application.

    This is in a function rather than using a global variable (as is more
    typical for FastAPI) because some middleware depends on configuration
    settings and we therefore want to recreate the application between tests.

    Parameters
    ----------
    load_config
        If set to `False`, do not try to load the configuration. Configure
        `~safir.middleware.x_forwarded.XForwardedMiddleware` with the default
        set of proxy IP addresses. This is used primarily for OpenAPI
        schema generation, where constructing the app is required but the
        configuration won't matter.
    engine
        Database engine to use instead of creating one from the
        configuration, used by the test suite.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        config = config_dependency.config()
        await context_dependency.initialize(config, engine)

        yield

        await context_dependency.aclose()

    app = FastAPI(
        title="dirauth",
        description=(
            "dirauth authenticates users with a username and password"
            " against an LDAP server and maintains a local account for each"
            " directory identity."
        ),
        version=__version__,
        tags_metadata=[
            {
                "name": "browser",
                "description": "Routes intended for use from a web browser.",
            },
            {
                "name": "internal",
                "description": "Internal routes used by health checks.",
            },
        ],
        openapi_url="/auth/openapi.json",
        docs_url="/auth/docs",
        redoc_url="/auth/redoc",
        lifespan=lifespan,
    )

    # Add all of the routes.
    app.include_router(internal.router)
    app.include_router(
        login.router,
        responses={400: {"description": "Bad request", "model": ErrorModel}},
    )

    # Load configuration if it is available to us and configure Uvicorn
    # logging.
    config = None
    if load_config:
        config = config_dependency.config()
        configure_uvicorn_logging(config.log_level)

    # Install the middleware. The last one added runs first.
    if config:
        app.add_middleware(
            StateMiddleware,
            cookie_name=COOKIE_NAME,
            parameters=config.cookie_parameters,
        )
        app.add_middleware(
            XForwardedMiddleware,
            proxies=config.proxies,  # type: ignore[arg-type]
        )

    # Configure Slack alerts.
    if config and config.slack_alerts and config.slack_webhook:
        logger = structlog.get_logger("dirauth")
        SlackRouteErrorHandler.initialize(
            config.slack_webhook.get_secret_value(), "dirauth", logger
        )
        logger.debug("Initialized Slack webhook")

    # Handle exceptions descended from ClientRequestError.
    app.exception_handler(ClientRequestError)(client_request_error_handler)

    return app


def create_openapi() -> str:
    """Generate the OpenAPI schema.

    Returns
    -------
    str
        OpenAPI schema as serialized JSON.
    """
    app = create_app(load_config=False)
    schema = get_openapi(
        title=app.title,
        description=app.description,
        version=app.version,
        routes=app.routes,
    )
    return json.dumps(schema)
