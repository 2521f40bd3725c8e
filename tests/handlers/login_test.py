"""Tests for the ``/auth/ldap`` route."""

from __future__ import annotations

import bonsai
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient, Response
from safir.testing.slack import MockSlackWebhook
from sqlalchemy.ext.asyncio import AsyncEngine

from dirauth.constants import COOKIE_NAME, LOGIN_FAILED_MESSAGE
from dirauth.factory import Factory
from dirauth.models.state import State
from dirauth.storage.account import AccountStore

from ..support.config import reconfigure
from ..support.constants import TEST_HOSTNAME
from ..support.ldap import MockLDAP
from ..support.logging import parse_log

USER_DN = "uid=jdoe,ou=people,dc=example,dc=com"
"""DN of the test user."""


async def get_state(r: Response) -> State:
    assert COOKIE_NAME in r.cookies
    return await State.from_cookie(r.cookies[COOKIE_NAME])


@pytest.mark.asyncio
async def test_login(
    client: AsyncClient,
    factory: Factory,
    mock_ldap: MockLDAP,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mock_ldap.add_entry(
        USER_DN,
        {
            "uid": ["jdoe"],
            "uidNumber": ["1001"],
            "displayName": ["Jane Doe"],
            "mail": ["jdoe@example.com"],
        },
        password="s3cret",
    )

    caplog.clear()
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
    )
    assert r.status_code == 303
    assert r.headers["Location"] == "https://example.com/app/"
    state = await get_state(r)
    assert state.external_id == "LDAP-1001"
    assert state.account_id
    assert not state.flash
    assert mock_ldap.open_connections == 0

    async with factory.session.begin():
        record = await AccountStore(factory.session).get("LDAP-1001")
    assert record
    assert record.id == state.account_id
    assert record.snapshot["displayName"] == "Jane Doe"

    messages = [m for m in parse_log(caplog) if m["severity"] != "debug"]
    assert messages == [
        {
            "account_id": state.account_id,
            "event": "Created account",
            "external_id": "LDAP-1001",
            "severity": "info",
            "user": "jdoe",
        },
        {
            "account_id": state.account_id,
            "event": "User login",
            "external_id": "LDAP-1001",
            "severity": "info",
            "user": "jdoe",
        },
    ]
    assert "s3cret" not in caplog.text


@pytest.mark.asyncio
async def test_missing_credentials(
    client: AsyncClient, mock_ldap: MockLDAP
) -> None:
    r = await client.post(
        "/auth/ldap", data={"username": "", "password": "s3cret"}
    )
    assert r.status_code == 400
    assert r.json() == {
        "detail": [
            {
                "loc": ["body", "username"],
                "msg": "No username provided",
                "type": "missing_credentials",
            }
        ]
    }

    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": ""}
    )
    assert r.status_code == 400
    assert r.json()["detail"][0]["loc"] == ["body", "password"]

    r = await client.post("/auth/ldap", data={"username": "jdoe"})
    assert r.status_code == 400
    assert r.json()["detail"][0]["type"] == "missing_credentials"

    assert mock_ldap.clients == []


@pytest.mark.asyncio
async def test_invalid_password(
    client: AsyncClient,
    factory: Factory,
    mock_ldap: MockLDAP,
    mock_slack: MockSlackWebhook,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mock_ldap.add_entry(USER_DN, {"uid": ["jdoe"]}, password="s3cret")

    caplog.clear()
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "wrong"}
    )
    assert r.status_code == 303
    assert r.headers["Location"] == "https://example.com/app/"
    state = await get_state(r)
    assert state.flash == LOGIN_FAILED_MESSAGE
    assert state.account_id is None
    assert state.external_id is None
    assert mock_ldap.open_connections == 0

    messages = [m for m in parse_log(caplog) if m["severity"] != "debug"]
    assert len(messages) == 1
    assert messages[0]["event"] == "Authentication failed"
    assert messages[0]["severity"] == "info"
    assert messages[0]["user"] == "jdoe"
    assert "wrong" not in caplog.text
    assert mock_slack.messages == []

    async with factory.session.begin():
        assert await AccountStore(factory.session).count() == 0


@pytest.mark.asyncio
async def test_unknown_user(
    client: AsyncClient,
    mock_ldap: MockLDAP,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mock_ldap.add_entry(USER_DN, {"uid": ["jdoe"]}, password="s3cret")

    caplog.clear()
    r = await client.post(
        "/auth/ldap", data={"username": "other", "password": "s3cret"}
    )
    assert r.status_code == 303
    state = await get_state(r)
    assert state.flash == LOGIN_FAILED_MESSAGE
    messages = [m for m in parse_log(caplog) if m["severity"] != "debug"]
    assert [m["severity"] for m in messages] == ["info"]


@pytest.mark.asyncio
async def test_failure_after_login(
    client: AsyncClient, mock_ldap: MockLDAP
) -> None:
    mock_ldap.add_entry(USER_DN, {"uid": ["jdoe"]}, password="s3cret")
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
    )
    assert r.status_code == 303
    assert (await get_state(r)).external_id == "LDAP-jdoe"

    # The client sends back the cookie from the successful login. A failed
    # login replaces it.
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "wrong"}
    )
    assert r.status_code == 303
    state = await get_state(r)
    assert state.external_id is None
    assert state.flash == LOGIN_FAILED_MESSAGE

    # A later successful login clears the failure message.
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
    )
    state = await get_state(r)
    assert state.external_id == "LDAP-jdoe"
    assert not state.flash


@pytest.mark.asyncio
async def test_connection_error(
    client: AsyncClient,
    mock_ldap: MockLDAP,
    mock_slack: MockSlackWebhook,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mock_ldap.connect_error = bonsai.ConnectionError("Can't contact server")

    caplog.clear()
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
    )
    assert r.status_code == 303
    state = await get_state(r)
    assert state.flash == LOGIN_FAILED_MESSAGE
    messages = [m for m in parse_log(caplog) if m["severity"] != "debug"]
    assert len(messages) == 1
    assert messages[0]["event"] == "Cannot contact LDAP"
    assert messages[0]["severity"] == "warning"
    assert mock_slack.messages == []


@pytest.mark.asyncio
async def test_service_bind_failure(
    client: AsyncClient,
    mock_ldap: MockLDAP,
    mock_slack: MockSlackWebhook,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mock_ldap.add_entry(USER_DN, {"uid": ["jdoe"]}, password="s3cret")
    mock_ldap.passwords["cn=service,ou=accounts,dc=example,dc=com"] = "other"

    caplog.clear()
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
    )
    assert r.status_code == 303
    state = await get_state(r)
    assert state.flash == LOGIN_FAILED_MESSAGE
    messages = [m for m in parse_log(caplog) if m["severity"] != "debug"]
    assert [m["severity"] for m in messages] == ["error"]
    assert messages[0]["error_type"] == "LDAPConfigurationError"
    assert len(mock_slack.messages) == 1


@pytest.mark.asyncio
async def test_user_bind_error(
    client: AsyncClient,
    mock_ldap: MockLDAP,
    mock_slack: MockSlackWebhook,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mock_ldap.add_entry(USER_DN, {"uid": ["jdoe"]}, password="s3cret")
    mock_ldap.bind_errors[USER_DN] = bonsai.ProtocolError("Protocol error")

    caplog.clear()
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
    )
    assert r.status_code == 303
    state = await get_state(r)
    assert state.flash == LOGIN_FAILED_MESSAGE
    messages = [m for m in parse_log(caplog) if m["severity"] != "debug"]
    assert [m["severity"] for m in messages] == ["error"]
    assert messages[0]["error_type"] == "LDAPConfigurationError"
    assert len(mock_slack.messages) == 1


@pytest.mark.asyncio
async def test_missing_stable_id(
    client: AsyncClient,
    engine: AsyncEngine,
    factory: Factory,
    mock_ldap: MockLDAP,
    mock_slack: MockSlackWebhook,
    caplog: pytest.LogCaptureFixture,
) -> None:
    await reconfigure("cn", engine)
    mock_ldap.add_entry(
        "cn=jdoe,ou=people,dc=example,dc=com",
        {"cn": ["jdoe"], "mail": ["jdoe@example.com"]},
        password="s3cret",
    )

    caplog.clear()
    r = await client.post(
        "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
    )
    assert r.status_code == 303
    state = await get_state(r)
    assert state.flash == LOGIN_FAILED_MESSAGE
    assert state.account_id is None
    messages = [m for m in parse_log(caplog) if m["severity"] != "debug"]
    assert [m["severity"] for m in messages] == ["error"]
    assert messages[0]["error_type"] == "MissingStableIdentifierError"
    assert len(mock_slack.messages) == 1

    async with factory.session.begin():
        assert await AccountStore(factory.session).count() == 0


@pytest.mark.asyncio
async def test_no_client_address(app: FastAPI, mock_ldap: MockLDAP) -> None:
    mock_ldap.add_entry(
        USER_DN, {"uid": ["jdoe"], "uidNumber": ["1001"]}, password="s3cret"
    )

    # Requests arriving over a Unix socket have no client address.
    transport = ASGITransport(app=app, client=None)
    async with AsyncClient(
        base_url=f"https://{TEST_HOSTNAME}", transport=transport
    ) as client:
        r = await client.post(
            "/auth/ldap", data={"username": "jdoe", "password": "s3cret"}
        )
    assert r.status_code == 303
    state = await get_state(r)
    assert state.external_id == "LDAP-1001"
    assert not state.flash
