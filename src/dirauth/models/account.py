"""Representation of a local account."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .profile import IdentityProfile

__all__ = ["Account", "AccountRecord"]


class Account(BaseModel):
    """A local account linked to an LDAP identity."""

    id: int = Field(
        ..., title="Account ID", description="Internal ID of the account"
    )

    external_id: str = Field(
        ...,
        title="External ID",
        description="Stable identifier of the linked LDAP identity",
        examples=["LDAP-1001"],
    )

    profile: IdentityProfile = Field(
        ...,
        title="Profile",
        description="Identity profile seen at the most recent login",
    )

    created: datetime = Field(
        ..., title="Creation time", description="When the account was created"
    )

    updated: datetime = Field(
        ...,
        title="Last update",
        description="When the stored profile was last changed",
    )


class AccountRecord(BaseModel):
    """An account as stored, with its raw profile snapshot.

    The snapshot is kept as parsed JSON rather than converted to an
    `IdentityProfile` so that it can be compared exactly against a new
    profile, including any keys a newer profile no longer has.
    """

    id: int = Field(..., title="Account ID")

    external_id: str = Field(..., title="External ID")

    snapshot: dict[str, Any] = Field(
        ..., title="Profile snapshot", description="Parsed stored profile"
    )

    created: datetime = Field(..., title="Creation time")

    updated: datetime = Field(..., title="Last update")

    def to_account(self, profile: IdentityProfile) -> Account:
        """Convert to an account whose stored profile matches ``profile``.

        Parameters
        ----------
        profile
            Profile whose snapshot is now stored for this account.

        Returns
        -------
        Account
            Corresponding account.
        """
        return Account(
            id=self.id,
            external_id=self.external_id,
            profile=profile,
            created=self.created,
            updated=self.updated,
        )
