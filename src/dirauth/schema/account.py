"""The account database table."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import SchemaBase

__all__ = ["Account"]


class Account(SchemaBase):
    """A local account linked to an LDAP identity.

    The unique constraint on ``external_id`` is what prevents concurrent
    first logins of the same user from creating duplicate accounts.
    """

    __tablename__ = "account"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(
        String(255), unique=True, index=True
    )
    profile: Mapped[str] = mapped_column(Text)
    created: Mapped[datetime] = mapped_column(DateTime)
    updated: Mapped[datetime] = mapped_column(DateTime)
