"""
Mutation coordinator and the static invalidation graph.

Each mutation kind declares which cache keys its success makes stale.
The coordinator runs the write, and only after it succeeds invalidates
those keys. A failed write invalidates nothing.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set, Tuple, TypeVar

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..caching import keys
from ..caching.cache_store import CacheStore, consume_exception
from ..caching.keys import CacheKey


T = TypeVar("T")

InvalidationRule = Callable[[Mapping[str, Any]], Tuple[CacheKey, ...]]


class MutationKind(Enum):
    GENERATE_RECIPE = "generate_recipe"
    SAVE_RECIPE = "save_recipe"
    SHARE_RECIPE = "share_recipe"
    UNSHARE_RECIPE = "unshare_recipe"


def _nothing(params: Mapping[str, Any]) -> Tuple[CacheKey, ...]:
    return ()


def _my_recipes(params: Mapping[str, Any]) -> Tuple[CacheKey, ...]:
    return (keys.recipes_mine(),)


def _recipe_and_shares(params: Mapping[str, Any]) -> Tuple[CacheKey, ...]:
    recipe_id = params["recipe_id"]
    return (keys.recipe(recipe_id), keys.recipe_shares(recipe_id))


INVALIDATION_GRAPH: Dict[MutationKind, InvalidationRule] = {
    MutationKind.GENERATE_RECIPE: _nothing,
    MutationKind.SAVE_RECIPE: _my_recipes,
    MutationKind.SHARE_RECIPE: _recipe_and_shares,
    MutationKind.UNSHARE_RECIPE: _recipe_and_shares,
}


def check_graph(graph: Mapping[MutationKind, InvalidationRule]) -> None:
    """Every mutation kind must declare its invalidations, even if empty."""
    missing = [kind.value for kind in MutationKind if kind not in graph]
    if missing:
        raise RuntimeError(f"Invalidation graph is missing mutation kinds: {', '.join(missing)}")


check_graph(INVALIDATION_GRAPH)


class MutationCoordinator:
    """Runs writes and applies their declared invalidations on success.

    The write runs in its own task. A caller that is cancelled stops
    waiting, but the write still completes and, if it succeeds, still
    invalidates. While the write is pending, ``CacheStore.populate`` on the
    affected keys waits for it.
    """

    def __init__(
        self,
        cache: CacheStore,
        *,
        graph: Optional[Mapping[MutationKind, InvalidationRule]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.cache = cache
        self.graph = graph if graph is not None else INVALIDATION_GRAPH
        check_graph(self.graph)
        self.metrics = metrics
        self.logger = get_logger("mutations.coordinator")
        self._tasks: Set["asyncio.Task[Any]"] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def affected_keys(self, kind: MutationKind, params: Mapping[str, Any]) -> Tuple[CacheKey, ...]:
        try:
            return self.graph[kind](params)
        except KeyError as exc:
            raise ValueError(f"Mutation {kind.value} requires parameter {exc.args[0]!r}") from exc

    async def execute(self, kind: MutationKind, call: Callable[[], Awaitable[T]], **params: Any) -> T:
        """Run ``call`` and invalidate the keys ``kind`` declares, after success only.

        Errors from ``call`` propagate unchanged.
        """
        affected = self.affected_keys(kind, params)
        task = asyncio.ensure_future(self._run(kind, call, affected))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(consume_exception)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for every mutation still running, including abandoned ones."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, kind: MutationKind, call: Callable[[], Awaitable[T]], affected: Tuple[CacheKey, ...]) -> T:
        async with self.cache.hold(affected):
            try:
                result = await call()
            except Exception as exc:
                self.logger.warning(
                    "Mutation failed; cache left untouched",
                    kind=kind.value,
                    error=str(exc),
                )
                self._record(kind, "error")
                raise

            for key in affected:
                self.cache.invalidate(key)

        self.logger.info(
            "Mutation succeeded",
            kind=kind.value,
            invalidated=[str(key) for key in affected],
        )
        self._record(kind, "success")
        return result

    def _record(self, kind: MutationKind, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("mutations_total", kind=kind.value, result=result)
