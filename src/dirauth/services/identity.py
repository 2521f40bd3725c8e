"""Conversion of LDAP entries into identity profiles."""

from __future__ import annotations

from ..config import LDAPConfig
from ..constants import EXTERNAL_ID_PREFIX, STABLE_ID_ATTRIBUTES
from ..exceptions import MissingStableIdentifierError
from ..models.ldap import LDAPEntry
from ..models.profile import IdentityProfile

__all__ = ["IdentityService"]


class IdentityService:
    """Derive canonical identity profiles from LDAP entries.

    LDAP schemas differ between servers, so the attribute holding a stable
    identifier for the user is chosen by a fixed priority order: the
    configured ``useridField``, then ``uidNumber``, ``uid``, and
    ``sAMAccountName``. The first one present in the entry wins.

    Parameters
    ----------
    config
        Configuration for LDAP authentication.
    """

    def __init__(self, config: LDAPConfig) -> None:
        self._config = config

    def normalize(self, entry: LDAPEntry) -> IdentityProfile:
        """Convert an LDAP entry into an identity profile.

        Parameters
        ----------
        entry
            Entry of an authenticated user.

        Returns
        -------
        IdentityProfile
            Corresponding identity profile.

        Raises
        ------
        MissingStableIdentifierError
            Raised if none of the stable identifier attributes are present in
            the entry.
        """
        stable_id = self._get_stable_id(entry)
        username = None
        if self._config.username_field:
            username = entry.get_first(self._config.username_field)
        return IdentityProfile(
            external_id=f"{EXTERNAL_ID_PREFIX}-{stable_id}",
            username=username or stable_id,
            display_name=entry.get_first("displayName"),
            emails=self._get_emails(entry),
        )

    def _get_emails(self, entry: LDAPEntry) -> list[str]:
        mail = entry.get("mail")
        if mail is None:
            return []
        elif isinstance(mail, list):
            return list(mail)
        else:
            return [str(mail)]

    def _get_stable_id(self, entry: LDAPEntry) -> str:
        attributes = list(STABLE_ID_ATTRIBUTES)
        if self._config.userid_field:
            attributes.insert(0, self._config.userid_field)
        for attribute in attributes:
            value = entry.get_first(attribute)
            if value:
                return value

        # Never fall back on the username. It may change, and the account
        # keyed by it would then be lost.
        msg = (
            "Could not determine a stable identifier for LDAP entry"
            f" {entry.dn}. Check that one of {', '.join(attributes)} is set"
            " in the LDAP directory or set useridField to another unique"
            " attribute."
        )
        raise MissingStableIdentifierError(msg)
