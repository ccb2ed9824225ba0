"""
Shared utilities for the Recipe Access Layer.

This package aggregates the ambient building blocks used by the client:

- config: Client configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from recipe_client into shared/.
"""
