"""All database schema objects."""

from __future__ import annotations

from .account import Account
from .base import SchemaBase

__all__ = [
    "Account",
    "SchemaBase",
]
