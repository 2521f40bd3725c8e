"""Canonical identity profile of an authenticated user."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..constants import PROVIDER_NAME

__all__ = ["IdentityProfile"]


class IdentityProfile(BaseModel):
    """Identity of a user derived from their LDAP entry.

    The serialized form uses the camel-case keys ``id``, ``username``,
    ``displayName``, ``emails``, ``avatarUrl``, ``profileUrl``, and
    ``provider`` in that order. This is the profile snapshot stored with each
    account.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, frozen=True, populate_by_name=True
    )

    external_id: str = Field(
        ...,
        title="External ID",
        description=(
            "Identifier for the user that is stable across logins, formed"
            " from a provider prefix and the stable LDAP identifier"
        ),
        alias="id",
        examples=["LDAP-1001"],
        min_length=1,
    )

    username: str = Field(
        ...,
        title="Username",
        description="Username of the user",
        examples=["jdoe"],
        min_length=1,
    )

    display_name: str | None = Field(
        None,
        title="Display name",
        description="Full name of the user, if known",
        examples=["Jane Doe"],
    )

    emails: list[str] = Field(
        [],
        title="Email addresses",
        description="Email addresses of the user in LDAP order",
        examples=[["jdoe@example.com"]],
    )

    avatar_url: None = Field(
        None,
        title="Avatar URL",
        description="Always null, since LDAP does not provide avatars",
    )

    profile_url: None = Field(
        None,
        title="Profile URL",
        description="Always null, since LDAP does not provide profile pages",
    )

    provider: Literal["ldap"] = Field(
        PROVIDER_NAME,
        title="Provider",
        description="Authentication provider that produced this profile",
    )

    def to_snapshot(self) -> dict[str, Any]:
        """Convert the profile to the dictionary form of its snapshot.

        Two profiles are the same, for the purposes of deciding whether to
        update a stored account, if and only if their snapshots are equal.
        """
        return self.model_dump(mode="json", by_alias=True)

    def to_snapshot_json(self) -> str:
        """Serialize the profile to the snapshot stored with the account."""
        return json.dumps(self.to_snapshot())
