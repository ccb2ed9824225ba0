"""
Recipe API: cached reads and coordinated writes for the recipe features.
"""

from typing import Any, List, Optional, Type

import pydantic

from shared.errors import ValidationError
from shared.logging import get_logger
from ..adapters.request_gateway import RequestGateway, join_path
from ..adapters.resource_client import ResourceClient
from ..caching import keys
from ..caching.cache_store import CacheStore
from ..queries import Mutation, Query
from .models import GenerateRecipeRequest, Recipe, Share, ShareRequest
from .mutations import MutationCoordinator, MutationKind


RECIPES_PATH = "/api/recipes"
SHARED_RECIPES_PATH = "/api/recipes/shared"
GENERATE_SUBPATH = "generate"
SHARES_SEGMENT = "shares"


def _build(model: Type[pydantic.BaseModel], **fields: Any) -> Any:
    try:
        return model(**fields)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            f"Invalid {model.__name__}",
            details={"errors": exc.errors(include_url=False)}
        ) from exc


class RecipeApi:
    """Feature-level operations over the recipe resources.

    Reads go through the cache under these keys: ``recipes:mine``,
    ``recipes:shared``, ``recipe:{id}`` and ``recipe:{id}:shares``.
    Writes go through the mutation coordinator, which invalidates the keys
    each write affects once the server confirms it.
    """

    def __init__(self, gateway: RequestGateway, cache: CacheStore, coordinator: MutationCoordinator):
        self.gateway = gateway
        self.cache = cache
        self.coordinator = coordinator
        self.logger = get_logger("recipes.api")
        self.recipes = ResourceClient(gateway, RECIPES_PATH, Recipe)
        self.shared = ResourceClient(gateway, SHARED_RECIPES_PATH, Recipe)

    def shares_client(self, recipe_id: str) -> ResourceClient[Share]:
        return ResourceClient(self.gateway, join_path(RECIPES_PATH, recipe_id, SHARES_SEGMENT), Share)

    # Reads

    async def my_recipes(self) -> List[Recipe]:
        return await self.cache.populate(keys.recipes_mine(), self.recipes.get_all)

    async def shared_recipes(self) -> List[Recipe]:
        return await self.cache.populate(keys.recipes_shared(), self.shared.get_all)

    async def recipe(self, recipe_id: str) -> Recipe:
        return await self.cache.populate(keys.recipe(recipe_id), lambda: self.recipes.get(recipe_id))

    async def recipe_shares(self, recipe_id: str) -> List[Share]:
        return await self.cache.populate(
            keys.recipe_shares(recipe_id),
            self.shares_client(recipe_id).get_all,
        )

    # Writes

    async def generate_recipe(self, ingredients: List[str], dietary_restrictions: Optional[List[str]] = None) -> Recipe:
        return await self.coordinator.execute(
            MutationKind.GENERATE_RECIPE,
            lambda: self._generate(ingredients, dietary_restrictions),
        )

    async def save_recipe(self, recipe: Recipe) -> Recipe:
        return await self.coordinator.execute(
            MutationKind.SAVE_RECIPE,
            lambda: self._save(recipe),
        )

    async def share_recipe(self, recipe_id: str, email: str) -> None:
        await self.coordinator.execute(
            MutationKind.SHARE_RECIPE,
            lambda: self._share(recipe_id, email),
            recipe_id=recipe_id,
        )

    async def unshare_recipe(self, recipe_id: str, user_id: str) -> None:
        await self.coordinator.execute(
            MutationKind.UNSHARE_RECIPE,
            lambda: self._unshare(recipe_id, user_id),
            recipe_id=recipe_id,
        )

    # Handles

    def query_my_recipes(self) -> Query[List[Recipe]]:
        return Query(self.cache, keys.recipes_mine(), self.recipes.get_all)

    def query_shared_recipes(self) -> Query[List[Recipe]]:
        return Query(self.cache, keys.recipes_shared(), self.shared.get_all)

    def query_recipe(self, recipe_id: Optional[str]) -> Query[Recipe]:
        if not recipe_id:
            return Query(self.cache, None, self._no_fetch, enabled=False)
        return Query(self.cache, keys.recipe(recipe_id), lambda: self.recipes.get(recipe_id))

    def query_recipe_shares(self, recipe_id: Optional[str]) -> Query[List[Share]]:
        if not recipe_id:
            return Query(self.cache, None, self._no_fetch, enabled=False)
        return Query(self.cache, keys.recipe_shares(recipe_id), self.shares_client(recipe_id).get_all)

    def generate_mutation(self) -> Mutation[Recipe]:
        return Mutation(self.coordinator, MutationKind.GENERATE_RECIPE, self._generate)

    def save_mutation(self) -> Mutation[Recipe]:
        return Mutation(self.coordinator, MutationKind.SAVE_RECIPE, self._save)

    def share_mutation(self) -> Mutation[None]:
        return Mutation(self.coordinator, MutationKind.SHARE_RECIPE, self._share)

    def unshare_mutation(self) -> Mutation[None]:
        return Mutation(self.coordinator, MutationKind.UNSHARE_RECIPE, self._unshare)

    # Server calls

    async def _generate(self, ingredients: List[str], dietary_restrictions: Optional[List[str]] = None) -> Recipe:
        request = _build(GenerateRecipeRequest, ingredients=ingredients, dietary_restrictions=dietary_restrictions)
        recipe = await self.recipes.post(request, GENERATE_SUBPATH)
        self.logger.debug("Recipe generated", title=recipe.title if recipe else None)
        return recipe

    async def _save(self, recipe: Recipe) -> Recipe:
        try:
            request = recipe.to_save_request()
        except pydantic.ValidationError as exc:
            raise ValidationError(
                "Recipe cannot be saved",
                details={"errors": exc.errors(include_url=False)}
            ) from exc
        return await self.recipes.post(request)

    async def _share(self, recipe_id: str, email: str) -> None:
        request = _build(ShareRequest, email=email)
        await self.shares_client(recipe_id).post(request)

    async def _unshare(self, recipe_id: str, user_id: str) -> None:
        await self.shares_client(recipe_id).delete(user_id)

    @staticmethod
    async def _no_fetch() -> None:
        return None
