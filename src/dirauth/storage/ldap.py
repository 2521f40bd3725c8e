"""LDAP storage layer for dirauth."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import bonsai
from bonsai import LDAPClient, LDAPSearchScope
from bonsai.asyncio import AIOLDAPConnection
from bonsai.utils import escape_filter_exp
from structlog.stdlib import BoundLogger

from ..config import LDAPConfig
from ..constants import USERNAME_PLACEHOLDER
from ..exceptions import (
    InvalidCredentialsError,
    LDAPConfigurationError,
    LDAPConnectionError,
    LDAPSearchError,
)
from ..models.ldap import LDAPEntry

__all__ = ["LDAPStorage"]


class LDAPStorage:
    """Authenticate users against an LDAP server.

    Each call to `authenticate` opens its own connections and closes them
    before returning, whether or not authentication succeeds. Connections
    are never shared between calls.

    Parameters
    ----------
    config
        Configuration for LDAP authentication.
    logger
        Logger for debug messages and errors.
    """

    def __init__(self, config: LDAPConfig, logger: BoundLogger) -> None:
        self._config = config
        self._timeout = config.timeout.total_seconds()
        self._logger = logger.bind(ldap_url=str(self._config.url))

    async def authenticate(self, username: str, password: str) -> LDAPEntry:
        """Authenticate a user with their username and password.

        Binds with the service credentials (or anonymously), searches for the
        user's entry, and then binds as that entry with the provided password.

        Parameters
        ----------
        username
            Username submitted by the user.
        password
            Password submitted by the user.

        Returns
        -------
        LDAPEntry
            The user's entry from the search.

        Raises
        ------
        InvalidCredentialsError
            Raised if the LDAP server rejected the password.
        LDAPConfigurationError
            Raised if the service bind was rejected, the search base is not
            valid, or the bind as the user failed other than by rejecting
            the password.
        LDAPConnectionError
            Raised if the LDAP server could not be contacted or the
            authentication did not finish before the timeout.
        LDAPSearchError
            Raised if the search did not find exactly one entry.
        """
        logger = self._logger.bind(user=username)
        try:
            async with asyncio.timeout(self._timeout):
                entry = await self._find_user(username, logger)
                await self._check_password(
                    entry, username, password, logger
                )
        except TimeoutError as e:
            msg = f"LDAP authentication timed out after {self._timeout}s"
            raise LDAPConnectionError(msg, username) from e
        return entry

    async def _check_password(
        self,
        entry: LDAPEntry,
        username: str,
        password: str,
        logger: BoundLogger,
    ) -> None:
        """Bind as the user's entry to check their password.

        Raises
        ------
        InvalidCredentialsError
            Raised if the bind was rejected.
        LDAPConfigurationError
            Raised if the bind failed for any other reason.
        LDAPConnectionError
            Raised if the LDAP server could not be contacted.
        """
        logger = logger.bind(ldap_dn=entry.dn)

        # Most LDAP servers treat a simple bind with an empty password as an
        # anonymous bind that succeeds, so never attempt one.
        if not password:
            raise InvalidCredentialsError("Empty password", username)

        client = self._create_client(entry.dn, password)
        logger.debug("Binding to LDAP as user")
        try:
            async with self._connect(client):
                pass
        except (bonsai.ConnectionError, bonsai.TimeoutError) as e:
            msg = f"Cannot connect to LDAP: {type(e).__name__}: {e!s}"
            raise LDAPConnectionError(msg, username) from e
        except bonsai.AuthenticationError as e:
            msg = f"LDAP bind as user failed: {e!s}"
            raise InvalidCredentialsError(msg, username) from e
        except bonsai.LDAPError as e:
            msg = f"Error binding as user: {type(e).__name__}: {e!s}"
            raise LDAPConfigurationError(msg, username) from e
        logger.debug("LDAP bind as user succeeded")

    def _create_client(
        self, user: str | None = None, password: str | None = None
    ) -> LDAPClient:
        """Create an LDAP client with the configured TLS settings.

        Parameters
        ----------
        user
            DN to bind as, or `None` to bind anonymously.
        password
            Password for the bind.

        Returns
        -------
        bonsai.LDAPClient
            Client configured with the given credentials.
        """
        client = LDAPClient(str(self._config.url), tls=self._config.starttls)
        if user and password:
            client.set_credentials("SIMPLE", user=user, password=password)
        tls = self._config.tls_options
        if tls:
            if tls.ca_cert:
                client.set_ca_cert(str(tls.ca_cert))
            if tls.ca_cert_dir:
                client.set_ca_cert_dir(str(tls.ca_cert_dir))
            if tls.client_cert and tls.client_key:
                client.set_client_cert(str(tls.client_cert))
                client.set_client_key(str(tls.client_key))
            if tls.cert_policy:
                client.set_cert_policy(tls.cert_policy)
        return client

    @asynccontextmanager
    async def _connect(
        self, client: LDAPClient
    ) -> AsyncIterator[AIOLDAPConnection]:
        """Open a connection, closing it on exit however the block ends."""
        conn = await client.connect(is_async=True, timeout=self._timeout)
        try:
            yield conn
        finally:
            conn.close()

    async def _find_user(
        self, username: str, logger: BoundLogger
    ) -> LDAPEntry:
        """Find the entry for a user using the service bind.

        Raises
        ------
        LDAPConfigurationError
            Raised if the service bind was rejected or the search base is
            not valid.
        LDAPConnectionError
            Raised if the LDAP server could not be contacted.
        LDAPSearchError
            Raised if the search did not find exactly one entry.
        """
        search = self._config.search_filter.replace(
            USERNAME_PLACEHOLDER, escape_filter_exp(username)
        )
        logger = logger.bind(
            ldap_attrs=self._config.search_attributes,
            ldap_base=self._config.search_base,
            ldap_search=search,
        )
        password = None
        if self._config.bind_credentials:
            password = self._config.bind_credentials.get_secret_value()
        client = self._create_client(self._config.bind_dn, password)

        logger.debug("Searching LDAP for user")
        try:
            async with self._connect(client) as conn:
                results = await conn.search(
                    base=self._config.search_base,
                    scope=LDAPSearchScope.SUB,
                    filter_exp=search,
                    attrlist=self._config.search_attributes,
                    timeout=self._timeout,
                )
        except (bonsai.ConnectionError, bonsai.TimeoutError) as e:
            msg = f"Cannot connect to LDAP: {type(e).__name__}: {e!s}"
            raise LDAPConnectionError(msg, username) from e
        except bonsai.AuthenticationError as e:
            msg = f"LDAP service bind failed: {e!s}"
            raise LDAPConfigurationError(msg, username) from e
        except bonsai.LDAPError as e:
            msg = f"Error searching LDAP: {type(e).__name__}: {e!s}"
            raise LDAPConfigurationError(msg, username) from e
        logger.debug("LDAP entries found", count=len(results))

        if not results:
            raise LDAPSearchError("User not found in LDAP", username)
        if len(results) > 1:
            dns = [str(r["dn"]) for r in results]
            msg = f"Search matched {len(results)} LDAP entries: {dns}"
            raise LDAPSearchError(msg, username)
        result = results[0]
        return LDAPEntry.from_bonsai(str(result["dn"]), result)
