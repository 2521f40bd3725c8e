"""Create dirauth components."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Self

import structlog
from safir.database import create_async_session, create_database_engine
from safir.slack.webhook import SlackWebhookClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_scoped_session
from structlog.stdlib import BoundLogger

from .config import Config
from .schema import Account as SQLAccount
from .services.account import AccountService
from .services.health import HealthCheckService
from .services.identity import IdentityService
from .services.login import LoginService
from .storage.account import AccountStore
from .storage.ldap import LDAPStorage

__all__ = ["Factory", "ProcessContext"]


@dataclass(frozen=True, slots=True)
class ProcessContext:
    """Per-process application context.

    This object caches all of the per-process singletons that can be reused
    for every request and only need to be recreated if the application
    configuration changes. This does not include the database session or any
    LDAP connections. Each request creates a new scoped session that's
    removed at the end of the request, and LDAP connections are opened and
    closed during each authentication.
    """

    config: Config
    """dirauth's configuration."""

    engine: AsyncEngine
    """Database engine used to create sessions."""

    @classmethod
    async def from_config(
        cls, config: Config, engine: AsyncEngine | None = None
    ) -> Self:
        """Create a new process context from the dirauth configuration.

        Parameters
        ----------
        config
            The dirauth configuration.
        engine
            Database engine to use. If not given, one is created from the
            database settings in the configuration.

        Returns
        -------
        ProcessContext
            Shared context for a dirauth process.
        """
        if not engine:
            engine = create_database_engine(
                config.database_url, config.database_password
            )
        return cls(config=config, engine=engine)

    async def aclose(self) -> None:
        """Clean up a process context.

        Called during shutdown, or before recreating the process context using
        a different configuration.
        """
        await self.engine.dispose()


class Factory:
    """Build dirauth components.

    Uses the contents of a `ProcessContext` to construct the components of the
    application on demand.

    Parameters
    ----------
    context
        Shared process context.
    session
        Database session.
    logger
        Logger to use for errors.
    """

    @classmethod
    async def create(
        cls,
        config: Config,
        engine: AsyncEngine | None = None,
        *,
        check_db: bool = False,
    ) -> Self:
        """Create a component factory outside of a request.

        This class method should only be used in situations where an async
        context manager cannot be used. Otherwise, call `standalone` rather
        than this method.

        Parameters
        ----------
        config
            dirauth configuration.
        engine
            Database engine to use for connections. If not given, one is
            created from the configuration.
        check_db
            If set to `True`, check database connectivity before returning by
            doing a simple query.

        Returns
        -------
        Factory
            Newly-created factory. The caller must call `aclose` on the
            returned object during shutdown.
        """
        logger = structlog.get_logger("dirauth")
        context = await ProcessContext.from_config(config, engine)
        statement = select(SQLAccount.id).limit(1) if check_db else None
        session = await create_async_session(
            context.engine, statement=statement
        )
        return cls(context, session, logger)

    @classmethod
    @asynccontextmanager
    async def standalone(
        cls,
        config: Config,
        engine: AsyncEngine | None = None,
        *,
        check_db: bool = False,
    ) -> AsyncIterator[Self]:
        """Async context manager for dirauth components.

        Intended for command-line tools and the test suite.

        Parameters
        ----------
        config
            dirauth configuration.
        engine
            Database engine to use for connections. If not given, one is
            created from the configuration.
        check_db
            If set to `True`, check database connectivity before returning by
            doing a simple query.

        Yields
        ------
        Factory
            The factory. Must be used as an async context manager.

        Examples
        --------
        .. code-block:: python

           async with Factory.standalone(config) as factory:
               login_service = factory.create_login_service()
               account = await login_service.login(username, password)
        """
        factory = await cls.create(config, engine, check_db=check_db)
        async with aclosing(factory):
            yield factory

    def __init__(
        self,
        context: ProcessContext,
        session: async_scoped_session,
        logger: BoundLogger,
    ) -> None:
        self.session = session
        self._context = context
        self._logger = logger

    async def aclose(self) -> None:
        """Shut down the factory.

        After this method is called, the factory object is no longer valid and
        must not be used.
        """
        try:
            await self.session.remove()
        finally:
            await self._context.aclose()

    def create_account_service(self) -> AccountService:
        """Create a new service for reconciling local accounts.

        Returns
        -------
        AccountService
            Newly-created account service.
        """
        return AccountService(
            account_store=AccountStore(self.session),
            session=self.session,
            logger=self._logger,
        )

    def create_health_check_service(self) -> HealthCheckService:
        """Create a service for performing health checks.

        Returns
        -------
        HealthCheckService
            Newly-created health check service.
        """
        return HealthCheckService(AccountStore(self.session))

    def create_identity_service(self) -> IdentityService:
        """Create a service for converting LDAP entries to profiles.

        Returns
        -------
        IdentityService
            Newly-created identity service.
        """
        return IdentityService(self._context.config.ldap)

    def create_ldap_storage(self) -> LDAPStorage:
        """Create the LDAP storage layer.

        Returns
        -------
        LDAPStorage
            Newly-created LDAP storage.
        """
        return LDAPStorage(self._context.config.ldap, self._logger)

    def create_login_service(self) -> LoginService:
        """Create a service for logging users in.

        Returns
        -------
        LoginService
            Newly-created login service.
        """
        return LoginService(
            ldap_storage=self.create_ldap_storage(),
            identity_service=self.create_identity_service(),
            account_service=self.create_account_service(),
            logger=self._logger,
        )

    def create_slack_client(self) -> SlackWebhookClient | None:
        """Create a client for sending messages to Slack.

        Returns
        -------
        safir.slack.webhook.SlackWebhookClient or None
            Configured Slack client if Slack alerts are enabled, otherwise
            `None`.
        """
        config = self._context.config
        if not config.slack_alerts or not config.slack_webhook:
            return None
        return SlackWebhookClient(
            config.slack_webhook.get_secret_value(), "dirauth", self._logger
        )

    def set_logger(self, logger: BoundLogger) -> None:
        """Replace the internal logger.

        Used by the context dependency to update the logger for all
        newly-created components when it's rebound with additional context.

        Parameters
        ----------
        logger
            New logger.
        """
        self._logger = logger
