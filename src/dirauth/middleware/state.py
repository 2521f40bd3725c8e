"""Middleware for the encrypted state cookie."""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Callable
from typing import override

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import CookieParameters
from ..models.state import State

__all__ = ["StateMiddleware"]


class StateMiddleware(BaseHTTPMiddleware):
    """Read and update the encrypted state cookie.

    The state from the cookie, or empty state if there is no cookie, is
    stored as ``request.state.cookie`` for the handlers. If a handler changes
    it, the cookie is rewritten in the response. If the new state is empty,
    the cookie is deleted instead.

    This middleware should run after
    `~safir.middleware.x_forwarded.XForwardedMiddleware` so that invalid
    cookies are logged with the correct client IP address.

    Parameters
    ----------
    app
        The ASGI application.
    cookie_name
        Name of the state cookie.
    parameters
        Parameters for the cookie.
    """

    def __init__(
        self,
        app: FastAPI,
        *,
        cookie_name: str,
        parameters: CookieParameters,
    ) -> None:
        super().__init__(app)
        self._cookie_name = cookie_name
        self._parameters = parameters

    @override
    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        cookie = request.cookies.get(self._cookie_name)
        state = await State.from_cookie(cookie, request) if cookie else State()
        request.state.cookie = copy.copy(state)

        response = await call_next(request)

        new_state: State = request.state.cookie
        if new_state == state:
            return response
        if new_state == State():
            response.delete_cookie(self._cookie_name, **self._parameters)
        else:
            value = new_state.to_cookie()
            response.set_cookie(self._cookie_name, value, **self._parameters)
        return response
