"""Storage for local accounts."""

from __future__ import annotations

import json
from datetime import datetime

from safir.database import datetime_from_db, datetime_to_db
from safir.datetime import current_datetime
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_scoped_session

from ..models.account import AccountRecord
from ..models.profile import IdentityProfile
from ..schema import Account as SQLAccount

__all__ = ["AccountStore"]


class AccountStore:
    """Stores and retrieves local accounts.

    All methods must be called inside a transaction.

    Parameters
    ----------
    session
        The database session proxy.
    """

    def __init__(self, session: async_scoped_session) -> None:
        self._session = session

    async def add(self, profile: IdentityProfile) -> AccountRecord:
        """Create a new account for an identity.

        The insert is flushed immediately so that a conflicting account with
        the same external ID is detected here rather than at commit.

        Parameters
        ----------
        profile
            Profile of the identity, stored as the initial snapshot.

        Returns
        -------
        AccountRecord
            The newly-created account.

        Raises
        ------
        sqlalchemy.exc.IntegrityError
            Raised if an account with the same external ID already exists.
        """
        now = datetime_to_db(current_datetime())
        new = SQLAccount(
            external_id=profile.external_id,
            profile=profile.to_snapshot_json(),
            created=now,
            updated=now,
        )
        self._session.add(new)
        await self._session.flush()
        return self._to_record(new)

    async def count(self) -> int:
        """Count the number of accounts.

        Returns
        -------
        int
            Number of accounts in the database.
        """
        stmt = select(func.count()).select_from(SQLAccount)
        return await self._session.scalar(stmt) or 0

    async def get(self, external_id: str) -> AccountRecord | None:
        """Retrieve an account by external ID.

        Parameters
        ----------
        external_id
            External ID of the account.

        Returns
        -------
        AccountRecord or None
            The account, or `None` if no account has that external ID.
        """
        stmt = select(SQLAccount).where(SQLAccount.external_id == external_id)
        account = await self._session.scalar(stmt)
        if not account:
            return None
        return self._to_record(account)

    async def update_profile(
        self, account_id: int, profile: IdentityProfile
    ) -> datetime:
        """Replace the stored profile snapshot of an account.

        Parameters
        ----------
        account_id
            Internal ID of the account.
        profile
            New profile to store.

        Returns
        -------
        datetime
            New last update time of the account.
        """
        now = current_datetime()
        stmt = (
            update(SQLAccount)
            .where(SQLAccount.id == account_id)
            .values(
                profile=profile.to_snapshot_json(),
                updated=datetime_to_db(now),
            )
        )
        await self._session.execute(stmt)
        return now

    def _to_record(self, account: SQLAccount) -> AccountRecord:
        # An unparseable snapshot never equals a real profile, so it will be
        # overwritten by the next login.
        try:
            snapshot = json.loads(account.profile)
        except json.JSONDecodeError:
            snapshot = {}
        if not isinstance(snapshot, dict):
            snapshot = {}
        return AccountRecord(
            id=account.id,
            external_id=account.external_id,
            snapshot=snapshot,
            created=datetime_from_db(account.created),
            updated=datetime_from_db(account.updated),
        )
