"""Reconciliation of identity profiles with local accounts."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_scoped_session
from structlog.stdlib import BoundLogger

from ..exceptions import PersistenceError
from ..models.account import Account
from ..models.profile import IdentityProfile
from ..storage.account import AccountStore

__all__ = ["AccountService"]


class AccountService:
    """Find, create, and update local accounts for identities.

    Parameters
    ----------
    account_store
        The backing store for accounts.
    session
        Database session.
    logger
        Logger to use for messages.
    """

    def __init__(
        self,
        *,
        account_store: AccountStore,
        session: async_scoped_session,
        logger: BoundLogger,
    ) -> None:
        self._store = account_store
        self._session = session
        self._logger = logger

    async def reconcile(self, profile: IdentityProfile) -> Account:
        """Find or create the account for an identity and update its profile.

        If no account exists for the external ID of the profile, one is
        created. Otherwise, the stored profile snapshot is replaced if and
        only if it differs from ``profile``, so logging in repeatedly with an
        unchanged profile does not write to the database.

        Must not be called inside a transaction.

        Parameters
        ----------
        profile
            Profile of the authenticated identity.

        Returns
        -------
        Account
            The account, whose stored profile now matches ``profile``.

        Raises
        ------
        PersistenceError
            Raised if the database could not be read or updated, or if the
            account could not be found after a conflicting create.
        """
        logger = self._logger.bind(external_id=profile.external_id)
        try:
            try:
                return await self._find_or_create(profile, create=True)
            except IntegrityError as e:
                # Another login of the same user created the account between
                # our lookup and insert. Use the account it created.
                logger.info("Account created concurrently", error=str(e))
                return await self._find_or_create(profile, create=False)
        except SQLAlchemyError as e:
            msg = f"Cannot update account: {type(e).__name__}: {e!s}"
            raise PersistenceError(msg) from e

    async def _find_or_create(
        self, profile: IdentityProfile, *, create: bool
    ) -> Account:
        """Find or create the account for an identity in one transaction.

        Parameters
        ----------
        profile
            Profile of the authenticated identity.
        create
            Whether to create the account if it does not exist.

        Raises
        ------
        PersistenceError
            Raised if the account does not exist and ``create`` is false.
        sqlalchemy.exc.IntegrityError
            Raised if the account was created by someone else after it was
            looked up.
        """
        logger = self._logger.bind(external_id=profile.external_id)
        async with self._session.begin():
            record = await self._store.get(profile.external_id)
            if not record:
                if not create:
                    msg = f"Account {profile.external_id} not found"
                    raise PersistenceError(msg)
                record = await self._store.add(profile)
                logger.info("Created account", account_id=record.id)
                return record.to_account(profile)

            if record.snapshot == profile.to_snapshot():
                return record.to_account(profile)
            record.updated = await self._store.update_profile(
                record.id, profile
            )
            logger.info("Updated account profile", account_id=record.id)
            return record.to_account(profile)
