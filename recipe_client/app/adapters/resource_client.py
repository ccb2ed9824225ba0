"""
Typed resource client bound to one collection path.
"""

from typing import Any, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from shared.errors import DecodeError
from .request_gateway import RequestGateway, ResourceId


T = TypeVar("T", bound=BaseModel)


class ResourceClient(Generic[T]):
    """Binds ``path`` to the gateway and decodes responses into ``model``.

    Stateless: no caching or invalidation happens here.
    """

    def __init__(self, gateway: RequestGateway, path: str, model: Type[T]):
        self.gateway = gateway
        self.path = path.rstrip("/")
        self.model = model
        self._list_adapter = TypeAdapter(List[model])  # type: ignore[valid-type]

    async def get_all(self) -> List[T]:
        payload = await self.gateway.list(self.path)
        return self._decode_list(payload)

    async def get(self, resource_id: ResourceId) -> T:
        payload = await self.gateway.get(self.path, resource_id)
        return self._decode(payload, self.model)

    async def post(
        self,
        body: Any,
        subpath: Optional[str] = None,
        *,
        response_model: Optional[Type[BaseModel]] = None,
    ) -> Any:
        """POST ``body``; empty responses (e.g. 201 without content) decode to None."""
        payload = await self.gateway.create(self.path, _encode(body), subpath)
        if payload is None:
            return None
        return self._decode(payload, response_model or self.model)

    async def patch(self, resource_id: ResourceId, body: Any) -> Optional[T]:
        payload = await self.gateway.update(self.path, resource_id, _encode(body))
        if payload is None:
            return None
        return self._decode(payload, self.model)

    async def delete(self, resource_id: ResourceId) -> None:
        await self.gateway.remove(self.path, resource_id)

    def _decode(self, payload: Any, model: Type[BaseModel]) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise DecodeError(
                f"Unexpected {model.__name__} payload",
                details={"path": self.path, "errors": exc.errors(include_url=False)}
            ) from exc

    def _decode_list(self, payload: Any) -> List[T]:
        try:
            return self._list_adapter.validate_python(payload)
        except ValidationError as exc:
            raise DecodeError(
                f"Unexpected {self.model.__name__} list payload",
                details={"path": self.path, "errors": exc.errors(include_url=False)}
            ) from exc


def _encode(body: Any) -> Any:
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", by_alias=True, exclude_none=True)
    return body
