"""Constants for dirauth."""

__all__ = [
    "CONFIG_PATH",
    "COOKIE_NAME",
    "EXTERNAL_ID_PREFIX",
    "LDAP_TIMEOUT",
    "LOGIN_FAILED_MESSAGE",
    "PROVIDER_NAME",
    "STABLE_ID_ATTRIBUTES",
    "USERNAME_PLACEHOLDER",
]

CONFIG_PATH = "/etc/dirauth/dirauth.yaml"
"""Default configuration path."""

COOKIE_NAME = "dirauth"
"""Name of the state cookie."""

EXTERNAL_ID_PREFIX = "LDAP"
"""Prefix prepended to the stable directory identifier to form account IDs.

Changing this would orphan every existing account, since the account store
is keyed by the resulting external ID.
"""

LDAP_TIMEOUT = 10.0
"""Default timeout (in seconds) for a complete directory authentication."""

LOGIN_FAILED_MESSAGE = "Invalid username or password"
"""Generic message shown to the user after any failed authentication.

The same message is used for every failure so that the response does not
reveal which phase of authentication failed.
"""

PROVIDER_NAME = "ldap"
"""Provider tag recorded in every identity profile."""

STABLE_ID_ATTRIBUTES = ("uidNumber", "uid", "sAMAccountName")
"""Directory attributes tried, in order, for the stable user identifier.

A configured ``useridField`` takes precedence over all of these.
"""

USERNAME_PLACEHOLDER = "{{username}}"
"""Placeholder in the search filter replaced by the submitted username."""
