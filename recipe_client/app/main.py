"""
Recipe client access layer: wires config, credentials, gateway, cache and mutations.
"""

from typing import Awaitable, Callable, Optional

import httpx

from shared.config import ClientConfig, get_config, validate_config
from shared.logging import clear_context, configure_logging, get_logger, set_user_context
from shared.metrics import MetricsCollector, get_metrics_collector
from .adapters.request_gateway import RequestGateway
from .auth.credentials import CredentialProvider
from .caching.cache_store import CacheStore
from .domain.mutations import MutationCoordinator
from .domain.recipes import RecipeApi


class RecipeAccessLayer:
    """Owns one client's data-access stack.

    The credential provider is created here and handed to the gateway, so
    every request made through this instance sees the provider installed
    by ``sign_in`` and nothing else.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.logger = get_logger("recipe_client.access_layer")
        self.metrics = metrics or get_metrics_collector("recipe_client")
        self.credentials = CredentialProvider(metrics=self.metrics)
        self.gateway = RequestGateway(
            config.base_url,
            self.credentials,
            timeout=config.request_timeout_seconds,
            transport=transport,
            metrics=self.metrics,
        )
        self.cache = CacheStore(
            stale_after=config.cache_stale_after_seconds,
            gc_after=config.cache_gc_after_seconds,
            metrics=self.metrics,
        )
        self.coordinator = MutationCoordinator(self.cache, metrics=self.metrics)
        self.recipes = RecipeApi(self.gateway, self.cache, self.coordinator)

    def sign_in(
        self,
        token_getter: Callable[[], Awaitable[Optional[str]]],
        session_id: str,
        user_id: Optional[str] = None,
    ) -> None:
        """Install the identity session's token getter for all later requests."""
        self.credentials.set_provider(token_getter, session_id=session_id)
        set_user_context(user_id)
        self.logger.info("Identity session started", session_id=session_id)

    def sign_out(self, session_id: str) -> bool:
        """End ``session_id``: stop sending its credential and forget its cached data.

        Does nothing if another session has signed in since.
        """
        if not self.credentials.end_session(session_id):
            return False
        self.cache.clear()
        clear_context()
        self.logger.info("Identity session ended", session_id=session_id)
        return True

    async def aclose(self) -> None:
        await self.coordinator.drain()
        await self.gateway.aclose()

    async def __aenter__(self) -> "RecipeAccessLayer":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def create_access_layer(
    config: Optional[ClientConfig] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    metrics: Optional[MetricsCollector] = None,
    configure_logs: bool = True,
) -> RecipeAccessLayer:
    """Build an access layer. Raises ConfigurationError on an unusable config."""
    config = validate_config(config) if config is not None else get_config()
    if configure_logs:
        configure_logging("recipe_client", config.log_level)
    return RecipeAccessLayer(config, transport=transport, metrics=metrics)
