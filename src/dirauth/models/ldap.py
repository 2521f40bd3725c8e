"""Data models for LDAP."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

__all__ = ["LDAPAttributeValue", "LDAPEntry"]

type LDAPAttributeValue = str | int | list[str]
"""Value of an attribute in an `LDAPEntry`."""


def _convert_value(value: Any) -> str:
    """Convert a single attribute value returned by bonsai to a string.

    Binary attributes, such as ``objectGUID`` in Active Directory, are
    returned as `bytes`. Those that are not valid UTF-8 are represented as
    lowercase hex so that they can still serve as stable identifiers.
    """
    if isinstance(value, bytes):
        try:
            return value.decode()
        except UnicodeDecodeError:
            return value.hex()
    return str(value)


@dataclass
class LDAPEntry:
    """An LDAP entry for an authenticated user.

    Single-valued attributes hold a scalar value and multi-valued attributes
    hold a list of values in the order returned by the LDAP server. Lookups
    by attribute name are case-insensitive, as they are in LDAP.
    """

    dn: str
    """Distinguished name of the entry."""

    attributes: dict[str, LDAPAttributeValue] = field(default_factory=dict)
    """Attributes of the entry."""

    @classmethod
    def from_bonsai(cls, dn: str, entry: dict[str, list[Any]]) -> LDAPEntry:
        """Convert the result of a bonsai search to an entry.

        Parameters
        ----------
        dn
            Distinguished name of the entry.
        entry
            Mapping of attribute names to lists of values, as returned by
            bonsai. The ``dn`` key, if present, is ignored.

        Returns
        -------
        LDAPEntry
            Corresponding entry.
        """
        attributes: dict[str, LDAPAttributeValue] = {}
        for name, values in entry.items():
            if name.lower() == "dn":
                continue
            converted = [_convert_value(v) for v in values]
            if len(converted) == 1:
                attributes[name] = converted[0]
            elif converted:
                attributes[name] = converted
        return cls(dn=dn, attributes=attributes)

    def get(self, name: str) -> LDAPAttributeValue | None:
        """Get the value of an attribute.

        Parameters
        ----------
        name
            Name of the attribute, matched case-insensitively.

        Returns
        -------
        str, int, list of str, or None
            Value of the attribute, or `None` if it is absent or empty.
        """
        value = self.attributes.get(name)
        if value is None:
            lowered = name.lower()
            for key, candidate in self.attributes.items():
                if key.lower() == lowered:
                    value = candidate
                    break
        if value is None or value in ("", []):
            return None
        return value

    def get_first(self, name: str) -> str | None:
        """Get the first value of an attribute as a string.

        Parameters
        ----------
        name
            Name of the attribute, matched case-insensitively.

        Returns
        -------
        str or None
            The value, or the first value of a multi-valued attribute, or
            `None` if the attribute is absent or empty.
        """
        value = self.get(name)
        if isinstance(value, list):
            value = next((v for v in value if v != ""), None)
        if value is None:
            return None
        return str(value)
