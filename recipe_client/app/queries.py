"""
Query and mutation handles for UI collaborators.

A ``Query`` reads one cache key through the store and reports its status.
A ``Mutation`` runs a write through the coordinator and reports its status;
cache invalidation happens as a side effect of a successful write.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from .caching.cache_store import CacheStore
from .caching.keys import CacheKey
from .domain.mutations import MutationCoordinator, MutationKind


T = TypeVar("T")


class Status(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class Query(Generic[T]):
    """Read handle bound to one cache key.

    Holds a reference on the key until ``close`` is called, so the entry is
    not evicted while a view still uses it. A disabled query (e.g. no
    recipe id yet) never fetches.
    """

    def __init__(
        self,
        cache: CacheStore,
        key: Optional[CacheKey],
        fetcher: Callable[[], Awaitable[T]],
        *,
        enabled: bool = True,
    ):
        self.cache = cache
        self.key = key
        self.fetcher = fetcher
        self.enabled = enabled and key is not None
        self.status = Status.IDLE
        self.error: Optional[Exception] = None
        self._closed = False
        if self.enabled:
            cache.retain(key)

    @property
    def data(self) -> Optional[T]:
        if not self.enabled:
            return None
        return self.cache.read(self.key)

    @property
    def is_stale(self) -> bool:
        """True when ``data`` must not be trusted, including while a write on the key is pending."""
        return not self.enabled or not self.cache.is_fresh(self.key)

    @property
    def is_pending_write(self) -> bool:
        return self.enabled and self.cache.has_pending_write(self.key)

    @property
    def is_loading(self) -> bool:
        return self.status is Status.PENDING

    async def fetch(self) -> Optional[T]:
        if not self.enabled:
            return None
        self.status = Status.PENDING
        try:
            value = await self.cache.populate(self.key, self.fetcher)
        except Exception as exc:
            self.status = Status.ERROR
            self.error = exc
            raise
        self.status = Status.SUCCESS
        self.error = None
        return value

    async def refetch(self) -> Optional[T]:
        """Discard the cached value for this key and fetch again."""
        if self.enabled:
            self.cache.invalidate(self.key, exact=True)
        return await self.fetch()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.enabled:
            self.cache.release(self.key)

    def __enter__(self) -> "Query[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Mutation(Generic[T]):
    """Write handle for one mutation kind."""

    def __init__(
        self,
        coordinator: MutationCoordinator,
        kind: MutationKind,
        call: Callable[..., Awaitable[T]],
    ):
        self.coordinator = coordinator
        self.kind = kind
        self.call = call
        self.status = Status.IDLE
        self.data: Optional[T] = None
        self.error: Optional[Exception] = None

    @property
    def is_pending(self) -> bool:
        return self.status is Status.PENDING

    async def mutate(self, **params: Any) -> T:
        """Run the write with ``params``; they also select the keys to invalidate."""
        self.status = Status.PENDING
        self.error = None
        try:
            result = await self.coordinator.execute(self.kind, lambda: self.call(**params), **params)
        except Exception as exc:
            self.status = Status.ERROR
            self.error = exc
            raise
        self.status = Status.SUCCESS
        self.data = result
        return result

    def reset(self) -> None:
        self.status = Status.IDLE
        self.data = None
        self.error = None
