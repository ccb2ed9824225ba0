"""
Request gateway: the single egress point for API calls.
"""

import time
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import quote

import httpx

from shared.errors import DecodeError, HttpError, NetworkError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..auth.credentials import CredentialProvider
from .middleware import RequestMiddleware, apply_middlewares, default_middlewares


ResourceId = Union[str, int]


def join_path(path: str, *segments: Any) -> str:
    """Append URL-quoted segments to a resource path."""
    parts = [path.rstrip("/")]
    parts.extend(quote(str(segment), safe="") for segment in segments)
    return "/".join(parts)


class RequestGateway:
    """Dispatches JSON requests through the middleware pipeline.

    Every request passes through ``middlewares`` (bearer credential injection
    by default) before it reaches the network. The gateway does not retry;
    failures are raised as ``NetworkError``, ``HttpError`` or ``DecodeError``.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        *,
        middlewares: Optional[Sequence[RequestMiddleware]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.credentials = credentials
        self.logger = get_logger("gateway.request_gateway")
        self.metrics = metrics
        self.middlewares: List[RequestMiddleware] = (
            list(middlewares) if middlewares is not None else default_middlewares(credentials)
        )
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "RequestGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list(self, path: str) -> Any:
        """GET a collection."""
        return await self._request("GET", path)

    async def get(self, path: str, resource_id: ResourceId) -> Any:
        """GET one member of a collection."""
        return await self._request("GET", join_path(path, resource_id))

    async def create(self, path: str, body: Any, subpath: Optional[str] = None) -> Any:
        """POST to a collection, or to ``path/subpath`` for custom actions."""
        url = f"{path.rstrip('/')}/{subpath.strip('/')}" if subpath else path
        return await self._request("POST", url, body)

    async def update(self, path: str, resource_id: ResourceId, body: Any) -> Any:
        """PATCH one member of a collection."""
        return await self._request("PATCH", join_path(path, resource_id), body)

    async def remove(self, path: str, resource_id: ResourceId) -> Any:
        """DELETE one member of a collection."""
        return await self._request("DELETE", join_path(path, resource_id))

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        kwargs: Dict[str, Any] = {}
        if body is not None:
            kwargs["json"] = body

        request = self._client.build_request(method, path, **kwargs)
        request = await apply_middlewares(request, self.middlewares)

        start = time.perf_counter()
        try:
            response = await self._client.send(request)
        except httpx.TimeoutException as exc:
            self._record(method, "timeout", start)
            self.logger.warning("API request timed out", method=method, path=path, error=str(exc))
            raise NetworkError(
                "Request timed out",
                details={"method": method, "path": path}
            ) from exc
        except httpx.TransportError as exc:
            self._record(method, "transport_error", start)
            self.logger.warning("API request failed in transport", method=method, path=path, error=str(exc))
            raise NetworkError(
                f"Could not reach API: {exc}",
                details={"method": method, "path": path}
            ) from exc

        self._record(method, response.status_code, start)

        if response.status_code >= 400:
            raise self._http_error(method, path, response)

        self.logger.debug(
            "API request completed",
            method=method,
            path=path,
            status_code=response.status_code,
        )
        return self._decode(method, path, response)

    def _http_error(self, method: str, path: str, response: httpx.Response) -> HttpError:
        body: Any = response.text
        message: Optional[str] = None
        try:
            body = response.json()
        except ValueError:
            pass
        if isinstance(body, dict) and isinstance(body.get("error"), str):
            message = body["error"]

        self.logger.error(
            "API request failed",
            method=method,
            path=path,
            status_code=response.status_code,
            response=response.text,
        )
        return HttpError(
            response.status_code,
            message or f"Unexpected status {response.status_code}",
            body=body,
            details={"method": method, "path": path},
        )

    def _decode(self, method: str, path: str, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            self.logger.error(
                "Malformed API response",
                method=method,
                path=path,
                status_code=response.status_code,
                error=str(exc),
            )
            raise DecodeError(
                "Response body is not valid JSON",
                details={"method": method, "path": path, "status_code": response.status_code}
            ) from exc

    def _record(self, method: str, status: Any, start: float) -> None:
        if self.metrics:
            self.metrics.record_http_request(method, status, time.perf_counter() - start)
