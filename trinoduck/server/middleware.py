"""Middleware classes for the trinoduck server.

This module contains HTTP middleware for:
- Error handling: Converts ServerError exceptions to JSON responses
- User validation: Requires the user header on statement routes
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..protocol.headers import USER_HEADER
from .shared import ServerError

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware to handle ServerError exceptions globally.

    Catches ServerError exceptions and converts them to JSON responses
    with the appropriate HTTP status code.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except ServerError as e:
            return JSONResponse(
                {"errorName": e.code, "message": e.message},
                status_code=e.status_code,
            )


class UserValidationMiddleware(BaseHTTPMiddleware):
    """Middleware to reject statement submissions without a user.

    Only ``POST /v1/statement`` is checked: continuation URIs identify the
    query on their own, so polling and cancellation need no user.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.method == "POST" and request.url.path == "/v1/statement":
            if not request.headers.get(USER_HEADER):
                raise ServerError(
                    status_code=401,
                    code="MISSING_USER",
                    message=f"{USER_HEADER} must be set",
                )

        return await call_next(request)
