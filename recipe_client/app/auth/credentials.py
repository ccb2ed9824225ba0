"""
Credential provider for outbound API requests.
"""

from typing import Awaitable, Callable, Optional

from shared.errors import CredentialResolutionError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


CredentialFn = Callable[[], Awaitable[Optional[str]]]


class CredentialProvider:
    """Owns the function that produces the current bearer credential.

    One instance is created per client and handed to the request gateway.
    The identity session installs its token getter with ``set_provider`` once
    it initializes and removes it with ``end_session`` when it ends. Until a
    provider is set, and after it is cleared, ``resolve`` returns ``None`` and
    requests go out unauthenticated.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger("auth.credentials")
        self.metrics = metrics
        self._provider: Optional[CredentialFn] = None
        self._session_id: Optional[str] = None

    @property
    def has_provider(self) -> bool:
        return self._provider is not None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def set_provider(self, fn: CredentialFn, session_id: Optional[str] = None) -> None:
        """Replace the active provider. Requests already resolving keep the old one."""
        self._provider = fn
        self._session_id = session_id
        self.logger.debug("Credential provider installed", session_id=session_id)

    def clear_provider(self) -> None:
        """Drop the active provider unconditionally."""
        self._provider = None
        self._session_id = None
        self.logger.debug("Credential provider cleared")

    def end_session(self, session_id: str) -> bool:
        """Clear the provider if it still belongs to ``session_id``.

        Returns False when a newer session has already replaced it.
        """
        if self._provider is None or self._session_id != session_id:
            self.logger.debug(
                "Ignoring end of session that no longer owns the provider",
                session_id=session_id,
                active_session_id=self._session_id,
            )
            return False
        self.clear_provider()
        return True

    async def resolve(self) -> Optional[str]:
        """Return the current credential, or None if there is none or the provider failed."""
        provider = self._provider
        if provider is None:
            self._record("absent")
            return None

        try:
            token = await provider()
        except Exception as exc:
            error = CredentialResolutionError(
                f"Failed to get auth token: {exc}",
                details={"error_type": type(exc).__name__}
            )
            self.logger.warning(
                "Credential provider failed; continuing unauthenticated",
                code=error.code,
                error=error.message,
            )
            self._record("error")
            return None

        if not token:
            self._record("absent")
            return None

        self._record("resolved")
        return token

    def _record(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("credential_resolutions_total", result=result)
