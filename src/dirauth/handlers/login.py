"""Username and password login handler (``/auth/ldap``)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import RedirectResponse
from safir.models import ErrorModel
from safir.slack.blockkit import SlackException
from safir.slack.webhook import SlackRouteErrorHandler

from ..constants import LOGIN_FAILED_MESSAGE
from ..dependencies.context import RequestContext, context_dependency
from ..exceptions import (
    DirectoryAuthError,
    InvalidCredentialsError,
    LDAPConnectionError,
    LDAPSearchError,
    NormalizationError,
    ReconciliationError,
)

router = APIRouter(route_class=SlackRouteErrorHandler)

__all__ = ["router"]


@router.post(
    "/auth/ldap",
    description=(
        "Authenticate the user with a username and password checked against"
        " LDAP. The user's local account is created or updated, and its"
        " identifiers are stored in the session cookie. The user is then"
        " redirected to the application whether or not the login succeeded."
        " On failure, a generic error message is stored in the session"
        " cookie for the application to display."
    ),
    responses={
        303: {
            "description": "Redirect to the application",
            "headers": {
                "Location": {
                    "description": "URL of the application",
                    "schema": {"type": "string"},
                }
            },
        },
        400: {"description": "Missing credentials", "model": ErrorModel},
    },
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Log in with LDAP",
    tags=["browser"],
)
async def post_login(
    *,
    username: Annotated[
        str | None,
        Form(
            title="Username",
            description="Username of the user in LDAP",
            examples=["jdoe"],
        ),
    ] = None,
    password: Annotated[
        str | None,
        Form(title="Password", description="Password of the user in LDAP"),
    ] = None,
    context: Annotated[RequestContext, Depends(context_dependency)],
) -> RedirectResponse:
    if username:
        context.rebind_logger(user=username)
    login_service = context.factory.create_login_service()
    try:
        account = await login_service.login(username, password)
    except (InvalidCredentialsError, LDAPSearchError) as e:
        context.logger.info("Authentication failed", error=str(e))
        return _login_failed(context)
    except LDAPConnectionError as e:
        context.logger.warning("Cannot contact LDAP", error=str(e))
        return _login_failed(context)
    except (DirectoryAuthError, NormalizationError, ReconciliationError) as e:
        return await _error_system(context, e)

    context.state.account_id = account.id
    context.state.external_id = account.external_id
    context.state.flash = None
    return RedirectResponse(
        context.config.login_redirect_url,
        status_code=status.HTTP_303_SEE_OTHER,
    )


async def _error_system(
    context: RequestContext, exc: SlackException
) -> RedirectResponse:
    """Handle a login failure caused by a problem on the dirauth side.

    These failures indicate a problem with the deployment, such as an LDAP
    configuration that does not match the LDAP server or an unavailable
    database, so they are logged as errors and reported to Slack. The user
    only sees the same generic message as for any other failure.

    Parameters
    ----------
    context
        Context of the incoming request.
    exc
        Exception representing the error.

    Returns
    -------
    fastapi.responses.RedirectResponse
        Response to send back to the user.
    """
    context.logger.error(
        "Authentication failed", error=str(exc), error_type=type(exc).__name__
    )
    slack_client = context.factory.create_slack_client()
    if slack_client:
        await slack_client.post_exception(exc)
    return _login_failed(context)


def _login_failed(context: RequestContext) -> RedirectResponse:
    """Clear any existing login and redirect with a failure message."""
    context.state.account_id = None
    context.state.external_id = None
    context.state.flash = LOGIN_FAILED_MESSAGE
    return RedirectResponse(
        context.config.login_redirect_url,
        status_code=status.HTTP_303_SEE_OTHER,
    )
