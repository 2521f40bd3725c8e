"""Test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
import respx
import structlog
from asgi_lifespan import LifespanManager
from cryptography.fernet import Fernet
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from safir.testing.slack import MockSlackWebhook, mock_slack_webhook
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from dirauth.config import Config
from dirauth.database import initialize_dirauth_database
from dirauth.factory import Factory
from dirauth.main import create_app

from .support.config import configure
from .support.constants import (
    TEST_HOSTNAME,
    TEST_SERVICE_PASSWORD,
    TEST_SLACK_WEBHOOK,
)
from .support.ldap import MockLDAP, patch_ldap


@pytest.fixture(autouse=True)
def environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set default values of environment variables for testing."""
    session_secret = Fernet.generate_key().decode()
    monkeypatch.setenv("DIRAUTH_LDAP_BIND_CREDENTIALS", TEST_SERVICE_PASSWORD)
    monkeypatch.setenv("DIRAUTH_SESSION_SECRET", session_secret)
    monkeypatch.setenv("DIRAUTH_SLACK_WEBHOOK", TEST_SLACK_WEBHOOK)


@pytest_asyncio.fixture
async def app(
    empty_database: None,
    engine: AsyncEngine,
    mock_slack: MockSlackWebhook,
) -> AsyncIterator[FastAPI]:
    """Return a configured test application.

    Wraps the application in a lifespan manager so that startup and shutdown
    events are sent during test execution.
    """
    app = create_app(engine=engine)
    async with LifespanManager(app):
        yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an ``httpx.AsyncClient`` configured to talk to the test app."""
    async with AsyncClient(
        base_url=f"https://{TEST_HOSTNAME}",
        transport=ASGITransport(app=app),
    ) as client:
        yield client


@pytest.fixture
def config() -> Config:
    """Set up and return the default test configuration.

    Notes
    -----
    This fixture must not be async so that it can be used by the cli tests,
    which must not be async because the Click support starts its own asyncio
    loop.
    """
    return configure("base")


@pytest_asyncio.fixture
async def empty_database(engine: AsyncEngine, config: Config) -> None:
    """Empty the database before a test."""
    logger = structlog.get_logger("dirauth")
    await initialize_dirauth_database(config, logger, engine, reset=True)


@pytest.fixture
def engine(tmp_path: Path) -> AsyncEngine:
    """Create a database engine for testing.

    The test suite uses a SQLite database in a temporary directory rather
    than PostgreSQL, so each test gets a fresh database. A file is used
    rather than an in-memory database so that concurrent sessions share it.
    """
    return create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'dirauth.sqlite'}"
    )


@pytest_asyncio.fixture
async def factory(
    empty_database: None, config: Config, engine: AsyncEngine
) -> AsyncIterator[Factory]:
    """Return a component factory.

    Note that this creates a separate SQLAlchemy async_scoped_session from any
    that may be created by the FastAPI app.
    """
    async with Factory.standalone(config, engine) as factory:
        yield factory


@pytest.fixture
def mock_ldap(config: Config) -> Iterator[MockLDAP]:
    """Replace the bonsai LDAP API with a mock class.

    The service account from the test configuration is allowed to bind.
    """
    for mock in patch_ldap():
        if config.ldap.bind_dn:
            mock.passwords[config.ldap.bind_dn] = TEST_SERVICE_PASSWORD
        yield mock


@pytest.fixture
def mock_slack(
    config: Config, respx_mock: respx.Router
) -> MockSlackWebhook:
    """Mock a Slack webhook."""
    assert config.slack_webhook
    webhook = config.slack_webhook.get_secret_value()
    return mock_slack_webhook(webhook, respx_mock)
