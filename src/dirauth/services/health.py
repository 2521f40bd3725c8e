"""Health check for the dirauth service."""

from __future__ import annotations

from ..storage.account import AccountStore

__all__ = ["HealthCheckService"]


class HealthCheckService:
    """Check the health of the dirauth service.

    Intended to be invoked via a Kubernetes liveness check. Only the database
    is tested. LDAP is not, since checking it would require credentials for
    some user and an LDAP outage should not cause dirauth to be restarted.

    Parameters
    ----------
    account_store
        Database backing store for accounts.
    """

    def __init__(self, account_store: AccountStore) -> None:
        self._store = account_store

    async def check(self) -> None:
        """Check the health of the underlying database.

        Raises an exception of some kind if the database is unavailable.
        """
        await self._store.count()
