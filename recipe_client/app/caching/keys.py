"""Cache key builders. Single place for key structure.

A key is a resource kind plus a scope tuple. A key also works as a prefix:
``recipe("r1")`` matches ``recipe("r1")`` and ``recipe_shares("r1")``, but
not ``recipe("r10")``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from shared.errors import ValidationError

CACHE_KEY_SEP = ":"

SCOPE_MINE = "mine"
SCOPE_SHARED = "shared"
SCOPE_SHARES = "shares"


class ResourceKind(Enum):
    RECIPES = "recipes"
    RECIPE = "recipe"


@dataclass(frozen=True)
class CacheKey:
    kind: ResourceKind
    scope: Tuple[str, ...] = ()

    def matches(self, prefix: "CacheKey") -> bool:
        """True if ``prefix`` is this key or one of its ancestors."""
        if self.kind is not prefix.kind:
            return False
        return self.scope[:len(prefix.scope)] == prefix.scope

    def __str__(self) -> str:
        return CACHE_KEY_SEP.join((self.kind.value,) + self.scope)


def _validate_key_component(value: str, name: str) -> str:
    """Raise ValidationError if value is empty or contains the cache key separator."""
    value = str(value)
    if not value or CACHE_KEY_SEP in value:
        raise ValidationError(
            f"Cache key component {name!r} must be non-empty and not contain {CACHE_KEY_SEP!r}",
            details={"component": name, "value": value}
        )
    return value


def all_recipe_lists() -> CacheKey:
    """Prefix covering every recipe list."""
    return CacheKey(ResourceKind.RECIPES)


def recipes_mine() -> CacheKey:
    """Recipes owned by the signed-in user."""
    return CacheKey(ResourceKind.RECIPES, (SCOPE_MINE,))


def recipes_shared() -> CacheKey:
    """Recipes other users shared with the signed-in user."""
    return CacheKey(ResourceKind.RECIPES, (SCOPE_SHARED,))


def recipe(recipe_id: str) -> CacheKey:
    """Recipe detail. As a prefix it also covers the recipe's share list."""
    return CacheKey(ResourceKind.RECIPE, (_validate_key_component(recipe_id, "recipe_id"),))


def recipe_shares(recipe_id: str) -> CacheKey:
    """Share list of one recipe."""
    return CacheKey(
        ResourceKind.RECIPE,
        (_validate_key_component(recipe_id, "recipe_id"), SCOPE_SHARES),
    )
