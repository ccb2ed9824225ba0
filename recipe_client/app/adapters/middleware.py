"""
Request middleware applied by the gateway before dispatch.

A middleware is an async ``Request -> Request`` transform. The gateway runs
them in order on every outbound request.
"""

from typing import Awaitable, Callable, Iterable, List

import httpx

from shared.logging import get_logger, request_id_var
from ..auth.credentials import CredentialProvider


RequestMiddleware = Callable[[httpx.Request], Awaitable[httpx.Request]]


class BearerAuthMiddleware:
    """Attaches ``Authorization: Bearer <token>`` when a credential resolves."""

    def __init__(self, credentials: CredentialProvider):
        self.credentials = credentials
        self.logger = get_logger("gateway.auth_middleware")

    async def __call__(self, request: httpx.Request) -> httpx.Request:
        token = await self.credentials.resolve()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        else:
            # The server decides whether an anonymous call is acceptable
            self.logger.debug(
                "Dispatching without credential",
                method=request.method,
                url=str(request.url),
            )
        return request


async def request_id_middleware(request: httpx.Request) -> httpx.Request:
    """Propagate the current request ID, if any, as ``X-Request-ID``."""
    request_id = request_id_var.get()
    if request_id and "X-Request-ID" not in request.headers:
        request.headers["X-Request-ID"] = request_id
    return request


def default_middlewares(credentials: CredentialProvider) -> List[RequestMiddleware]:
    return [request_id_middleware, BearerAuthMiddleware(credentials)]


async def apply_middlewares(request: httpx.Request, middlewares: Iterable[RequestMiddleware]) -> httpx.Request:
    for middleware in middlewares:
        request = await middleware(request)
    return request
