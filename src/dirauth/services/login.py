"""Authentication of users with a username and password."""

from __future__ import annotations

from structlog.stdlib import BoundLogger

from ..exceptions import MissingCredentialsError
from ..models.account import Account
from ..storage.ldap import LDAPStorage
from .account import AccountService
from .identity import IdentityService

__all__ = ["LoginService"]


class LoginService:
    """Log users in with credentials checked against LDAP.

    A login proceeds through three phases in order: authenticating the user
    against LDAP, converting their LDAP entry into an identity profile, and
    reconciling that profile with the local account store. Each phase only
    starts after the previous one has finished, and a failure in any phase
    ends the login with the exception from that phase.

    Parameters
    ----------
    ldap_storage
        Storage layer for LDAP authentication.
    identity_service
        Service to convert LDAP entries to identity profiles.
    account_service
        Service to reconcile identity profiles with local accounts.
    logger
        Logger to use for messages.
    """

    def __init__(
        self,
        *,
        ldap_storage: LDAPStorage,
        identity_service: IdentityService,
        account_service: AccountService,
        logger: BoundLogger,
    ) -> None:
        self._ldap = ldap_storage
        self._identity = identity_service
        self._accounts = account_service
        self._logger = logger

    async def login(
        self, username: str | None, password: str | None
    ) -> Account:
        """Authenticate a user and return their local account.

        Parameters
        ----------
        username
            Username submitted by the user.
        password
            Password submitted by the user.

        Returns
        -------
        Account
            Local account for the user, created if necessary.

        Raises
        ------
        DirectoryAuthError
            Raised if the user could not be authenticated against LDAP.
        MissingCredentialsError
            Raised if the username or password is missing or empty. No
            connection to LDAP is made in this case.
        NormalizationError
            Raised if the user's LDAP entry could not be converted into an
            identity profile.
        ReconciliationError
            Raised if the local account could not be found or updated.
        """
        if not username:
            raise MissingCredentialsError("No username provided", "username")
        if not password:
            raise MissingCredentialsError("No password provided", "password")
        logger = self._logger.bind(user=username)

        logger.debug("Authenticating user against LDAP")
        entry = await self._ldap.authenticate(username, password)

        logger.debug("Normalizing LDAP entry", ldap_dn=entry.dn)
        profile = self._identity.normalize(entry)

        logger = logger.bind(external_id=profile.external_id)
        logger.debug("Reconciling account")
        account = await self._accounts.reconcile(profile)

        logger.info("User login", account_id=account.id)
        return account
