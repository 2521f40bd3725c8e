"""Representation of dirauth state stored in a cookie.

The state is read and written by `~dirauth.middleware.state.StateMiddleware`.
It is how an authenticated account is handed to the session layer of the
application.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Self

from cryptography.fernet import Fernet
from fastapi import Request
from safir.dependencies.logger import logger_dependency

from ..dependencies.config import config_dependency

__all__ = ["State"]


@dataclass
class State:
    """State information stored in a cookie."""

    account_id: int | None = None
    """Internal ID of the account if the user is authenticated."""

    external_id: str | None = None
    """External ID of the account if the user is authenticated."""

    flash: str | None = None
    """Message for the user interface to display after a redirect."""

    @classmethod
    async def from_cookie(
        cls, cookie: str, request: Request | None = None
    ) -> Self:
        """Reconstruct state from an encrypted cookie.

        Parameters
        ----------
        cookie
            The encrypted cookie value.
        request
            The request, used for logging. If not provided (primarily for the
            test suite), invalid state cookies will not be logged.

        Returns
        -------
        State
            The state represented by the cookie.
        """
        config = await config_dependency()
        fernet = Fernet(config.session_secret.get_secret_value().encode())
        try:
            data = json.loads(fernet.decrypt(cookie.encode()).decode())
            account_id = data.get("account_id")
            if account_id is not None:
                account_id = int(account_id)
        except Exception as e:
            if request:
                logger = await logger_dependency(request)
                error = type(e).__name__
                if str(e):
                    error += f": {e!s}"
                logger.warning("Discarding invalid state cookie", error=error)
            return cls()

        return cls(
            account_id=account_id,
            external_id=data.get("external_id"),
            flash=data.get("flash"),
        )

    def to_cookie(self) -> str:
        """Build an encrypted cookie representation of the state.

        Returns
        -------
        str
            The encrypted cookie value.
        """
        data: dict[str, str | int] = {}
        if self.account_id is not None:
            data["account_id"] = self.account_id
        if self.external_id:
            data["external_id"] = self.external_id
        if self.flash:
            data["flash"] = self.flash

        config = config_dependency.config()
        fernet = Fernet(config.session_secret.get_secret_value().encode())
        return fernet.encrypt(json.dumps(data).encode()).decode()
