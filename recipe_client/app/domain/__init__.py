"""
Domain package for the recipe client.

Holds the wire models and the mutation coordinator with its invalidation
graph. Feature operations live in ``domain.recipes``.
"""

from .models import Recipe, Share
from .mutations import INVALIDATION_GRAPH, MutationCoordinator, MutationKind

__all__ = [
    "INVALIDATION_GRAPH",
    "MutationCoordinator",
    "MutationKind",
    "Recipe",
    "Share",
]
