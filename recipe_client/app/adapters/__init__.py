"""
Adapters package for the recipe client.

Contains the request gateway (the only network egress point), the request
middleware pipeline and typed resource clients. Errors are mapped to the
shared error types here.

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .middleware import BearerAuthMiddleware, RequestMiddleware, request_id_middleware
from .request_gateway import RequestGateway
from .resource_client import ResourceClient

__all__ = [
    "BearerAuthMiddleware",
    "RequestGateway",
    "RequestMiddleware",
    "ResourceClient",
    "request_id_middleware",
]
