"""Exceptions for dirauth."""

from __future__ import annotations

from fastapi import status
from safir.fastapi import ClientRequestError
from safir.models import ErrorLocation
from safir.slack.blockkit import SlackException

__all__ = [
    "DirectoryAuthError",
    "InputValidationError",
    "InvalidCredentialsError",
    "LDAPConfigurationError",
    "LDAPConnectionError",
    "LDAPSearchError",
    "MissingCredentialsError",
    "MissingStableIdentifierError",
    "NormalizationError",
    "PersistenceError",
    "ReconciliationError",
]


class InputValidationError(ClientRequestError):
    """Represents an input validation error.

    This is a thin wrapper around `~safir.fastapi.ClientRequestError` so that
    all dirauth input errors share a common base class.
    """


class MissingCredentialsError(InputValidationError):
    """The username or password was missing or empty in a login request."""

    error = "missing_credentials"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: str) -> None:
        super().__init__(message, ErrorLocation.body, [field])


class DirectoryAuthError(SlackException):
    """Base class for failures while authenticating against LDAP.

    The username, if known, is recorded in the ``user`` attribute so that it
    shows up in Slack alerts.
    """


class LDAPConfigurationError(DirectoryAuthError):
    """The LDAP configuration does not work with the LDAP server.

    Raised when the service bind is rejected or the configured search base
    is invalid. This indicates a deployment problem rather than a user
    error.
    """


class LDAPConnectionError(DirectoryAuthError):
    """The LDAP server could not be reached or did not answer in time."""


class LDAPSearchError(DirectoryAuthError):
    """The search for the user did not find exactly one entry."""


class InvalidCredentialsError(DirectoryAuthError):
    """The LDAP server rejected the password for the user's entry."""


class NormalizationError(SlackException):
    """Base class for failures converting an LDAP entry to a profile."""


class MissingStableIdentifierError(NormalizationError):
    """No usable stable identifier attribute was found in the LDAP entry.

    This means the LDAP schema does not match the configuration. It is never
    retried and the username is never used in place of the identifier, since
    that would give the same person different accounts across logins.
    """


class ReconciliationError(SlackException):
    """Base class for failures updating the local account store."""


class PersistenceError(ReconciliationError):
    """The account could not be found, created, or updated."""
