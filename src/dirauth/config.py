"""Configuration for dirauth.

dirauth is configured by a YAML file, by default
:file:`/etc/dirauth/dirauth.yaml`. Secrets, and a few settings that commonly
differ between deployments, may instead be injected via environment
variables with the ``DIRAUTH_`` prefix. Only the settings with explicit
``validation_alias`` settings support configuration via environment variable.

Optional settings that are absent, or set to an empty string, are treated as
not configured and leave the directory library defaults in place.
"""

from __future__ import annotations

from datetime import timedelta
from ipaddress import IPv4Network, IPv6Network
from pathlib import Path
from typing import Annotated, Any, NotRequired, Self, TypedDict, override

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    SecretStr,
    UrlConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import Url
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, configure_logging
from safir.pydantic import EnvAsyncPostgresDsn, HumanTimedelta

from .constants import LDAP_TIMEOUT, USERNAME_PLACEHOLDER

LdapDsn = Annotated[
    Url, UrlConstraints(allowed_schemes=["ldap", "ldaps"], host_required=True)
]
"""DSN for connecting to an LDAP server."""

__all__ = [
    "CamelCaseSettings",
    "Config",
    "CookieParameters",
    "EnvFirstSettings",
    "LDAPConfig",
    "LDAPTLSOptions",
    "LdapDsn",
]


def _drop_empty_strings(data: Any) -> Any:
    """Remove keys whose values are empty strings.

    Helm-style configuration files often carry every known key with an empty
    value. Dropping those keys makes them fall back to their defaults, which
    is how "not configured" is represented.
    """
    if not isinstance(data, dict):
        return data
    return {k: v for k, v in data.items() if v != ""}


class CamelCaseSettings(BaseSettings):
    """Base class for Pydantic settings supporting camel-case.

    This base class also forbids all extra attributes. It should be used as
    the base class (possibly indirectly) for all dirauth configuration models
    that support environment variable overrides.
    """

    model_config = SettingsConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )


class EnvFirstSettings(CamelCaseSettings):
    """Base class for Pydantic settings with environment overrides.

    Classes that inherit from this base class will prioritize environment
    variables over arguments to the class constructor.
    """

    @override
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Override the sources of settings.

        Deactivate :file:`.env` and secret file support. Allow environment
        variables to override init parameters, since init parameters come
        from the YAML configuration file and we want environment variables to
        take precedent.
        """
        return (env_settings, init_settings)


class LDAPTLSOptions(BaseModel):
    """TLS options for the connection to the LDAP server.

    Any option that is not set leaves the default of the underlying LDAP
    library (and thus of the system OpenLDAP configuration) in place.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    ca_cert: Path | None = Field(
        None,
        title="CA certificate",
        description="Path to a PEM file of trusted certificate authorities",
    )

    ca_cert_dir: Path | None = Field(
        None,
        title="CA certificate directory",
        description="Path to a directory of trusted certificate authorities",
    )

    client_cert: Path | None = Field(
        None,
        title="Client certificate",
        description="Path to a PEM client certificate for TLS authentication",
    )

    client_key: Path | None = Field(
        None,
        title="Client key",
        description="Path to the private key for ``clientCert``",
    )

    reject_unauthorized: bool | None = Field(
        None,
        title="Verify server certificate",
        description=(
            "If false, do not verify the certificate of the LDAP server. If"
            " true, require a valid certificate. If not set, use the library"
            " default."
        ),
    )

    @model_validator(mode="before")
    @classmethod
    def _validate_empty(cls, data: Any) -> Any:
        return _drop_empty_strings(data)

    @model_validator(mode="after")
    def _validate_client_key(self) -> Self:
        if self.client_cert and not self.client_key:
            raise ValueError("clientKey required if clientCert is set")
        return self

    @property
    def cert_policy(self) -> str | None:
        """Certificate policy to pass to the LDAP library, if any."""
        if self.reject_unauthorized is None:
            return None
        return "demand" if self.reject_unauthorized else "never"


class LDAPConfig(EnvFirstSettings):
    """Configuration for authenticating users against LDAP.

    The option names match those of the configuration format this service
    replaces, so that existing deployments can reuse their settings.
    """

    url: LdapDsn = Field(
        ...,
        title="LDAP server URL",
        description="URL of the LDAP server used to authenticate users",
        validation_alias=AliasChoices("DIRAUTH_LDAP_URL", "url"),
    )

    bind_dn: str | None = Field(
        None,
        title="Simple bind DN for LDAP searches",
        description=(
            "DN of the service user to bind as with simple bind when"
            " searching for the user's entry. If not set, dirauth will do an"
            " anonymous bind for the search."
        ),
    )

    bind_credentials: SecretStr | None = Field(
        None,
        title="Simple bind password",
        description=(
            "Password for the service bind to the LDAP server. Only used if"
            " ``bindDn`` is set."
        ),
        validation_alias=AliasChoices(
            "DIRAUTH_LDAP_BIND_CREDENTIALS", "bindCredentials"
        ),
    )

    search_base: str = Field(
        ...,
        title="Base DN for user searches",
        description="Base DN of the subtree searched for the user's entry",
    )

    search_filter: str = Field(
        ...,
        title="Search filter for users",
        description=(
            "LDAP search filter used to find the user's entry. Every"
            f" occurrence of ``{USERNAME_PLACEHOLDER}`` is replaced with the"
            " escaped username submitted by the user."
        ),
        examples=["(uid={{username}})", "(sAMAccountName={{username}})"],
    )

    search_attributes: list[str] | None = Field(
        None,
        title="Attributes to retrieve",
        description=(
            "Attributes to request when searching for the user's entry, or"
            " not set to request all user attributes. If set, this must"
            " include the attributes used for the stable identifier and"
            " username."
        ),
    )

    tls_options: LDAPTLSOptions | None = Field(
        None,
        title="TLS options",
        description="Certificate settings for LDAPS or STARTTLS connections",
    )

    starttls: bool = Field(
        False,
        title="Use STARTTLS",
        description="Whether to upgrade ``ldap`` connections with STARTTLS",
    )

    userid_field: str | None = Field(
        None,
        title="Stable identifier attribute",
        description=(
            "Attribute holding an identifier for the user that never"
            " changes. If not set, or not present in the user's entry,"
            " ``uidNumber``, ``uid``, and ``sAMAccountName`` are tried in"
            " that order."
        ),
    )

    username_field: str | None = Field(
        None,
        title="Username attribute",
        description=(
            "Attribute holding the username shown for the user. If not set,"
            " or not present in the user's entry, the stable identifier is"
            " used."
        ),
    )

    timeout: HumanTimedelta = Field(
        timedelta(seconds=LDAP_TIMEOUT),
        title="LDAP timeout",
        description=(
            "Upper bound on the time a complete authentication against the"
            " LDAP server may take"
        ),
    )

    @model_validator(mode="before")
    @classmethod
    def _validate_empty(cls, data: Any) -> Any:
        return _drop_empty_strings(data)

    @field_validator("search_filter")
    @classmethod
    def _validate_search_filter(cls, v: str) -> str:
        if USERNAME_PLACEHOLDER not in v:
            msg = f"searchFilter must contain {USERNAME_PLACEHOLDER}"
            raise ValueError(msg)
        return v

    @field_validator("search_attributes")
    @classmethod
    def _validate_search_attributes(
        cls, v: list[str] | None
    ) -> list[str] | None:
        return v or None

    @model_validator(mode="after")
    def _validate_bind_credentials(self) -> Self:
        """Ensure a password is set if a bind DN is set."""
        if self.bind_dn and not self.bind_credentials:
            raise ValueError("bindCredentials required if bindDn is set")
        return self


class CookieParameters(TypedDict):
    """Parameters for the state cookie."""

    secure: bool
    httponly: bool
    domain: NotRequired[str]


class Config(EnvFirstSettings):
    """Configuration for dirauth."""

    server_url: HttpUrl = Field(
        ...,
        title="Server URL",
        description=(
            "Base URL of the application using dirauth. Users are sent to"
            " this URL after both successful and failed logins."
        ),
        validation_alias=AliasChoices(
            "DIRAUTH_SERVER_URL", "serverURL", "serverUrl"
        ),
    )

    database_url: EnvAsyncPostgresDsn = Field(
        ...,
        title="Database DSN",
        description="DSN for the PostgreSQL database holding accounts",
        validation_alias=AliasChoices("DIRAUTH_DATABASE_URL", "databaseUrl"),
    )

    database_password: SecretStr | None = Field(
        None,
        title="Database password",
        description="Password for the PostgreSQL database",
        validation_alias=AliasChoices(
            "DIRAUTH_DATABASE_PASSWORD", "databasePassword"
        ),
    )

    session_secret: SecretStr = Field(
        ...,
        title="Session encryption key",
        description="Fernet encryption key used for the state cookie",
        validation_alias=AliasChoices(
            "DIRAUTH_SESSION_SECRET", "sessionSecret"
        ),
    )

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Logging level",
        description="Python logging level",
    )

    proxies: list[IPv4Network | IPv6Network] | None = Field(
        None,
        title="Trusted incoming proxy netblocks",
        description=(
            "If this is set to a non-empty list, it will be used as the"
            " trusted list of proxies when parsing the ``X-Forwarded-For``"
            " HTTP header in incoming requests, which allows logging of"
            " accurate client IP addresses."
        ),
    )

    slack_alerts: bool = Field(
        False,
        title="Enable Slack alerts",
        description=(
            "Whether to enable Slack alerts. If true, ``slackWebhook`` must"
            " also be set."
        ),
    )

    slack_webhook: SecretStr | None = Field(
        None,
        title="Slack webhook for alerts",
        description="If set, alerts will be posted to this Slack webhook",
        validation_alias=AliasChoices(
            "DIRAUTH_SLACK_WEBHOOK", "slackWebhook"
        ),
    )

    ldap: LDAPConfig = Field(
        ...,
        title="LDAP configuration",
        description="Configuration for authenticating users against LDAP",
    )

    @model_validator(mode="before")
    @classmethod
    def _validate_empty(cls, data: Any) -> Any:
        return _drop_empty_strings(data)

    @model_validator(mode="after")
    def _validate_slack(self) -> Self:
        if self.slack_alerts and not self.slack_webhook:
            raise ValueError("slackWebhook required if slackAlerts is set")
        return self

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a Config object from a configuration file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding `Config` object.
        """
        with path.open("r") as f:
            return cls.model_validate(yaml.safe_load(f))

    @property
    def cookie_parameters(self) -> CookieParameters:
        """Parameters to pass to `fastapi.Response.set_cookie`."""
        return CookieParameters(secure=True, httponly=True)

    @property
    def login_redirect_url(self) -> str:
        """URL to which to send the user after a login attempt."""
        return str(self.server_url).rstrip("/") + "/"

    def configure_logging(self) -> None:
        """Configure logging based on the dirauth configuration."""
        configure_logging(name="dirauth", log_level=self.log_level)
