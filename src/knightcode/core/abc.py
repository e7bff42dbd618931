"""core.abc

Abstract base class that *all* provider adapters must implement.

Design goals
============
1. **Provider-agnostic public API** - callers interact exclusively via
    `complete()` / `complete_stream()` passing domain models
    (`CompletionOptions`). They never touch provider-specific payloads.
2. **Built-in resilience** - `complete()` runs the adapter's single-attempt
    `_invoke()` under `with_timeout()` (innermost) and `with_retry()`
    (outermost), so every attempt gets its own deadline.
3. **Owned configuration** - each adapter owns one `ProviderConfig`;
    `get_config()` hands out copies only.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar, ParamSpec, TypeVar

from pydantic import ValidationError

from knightcode.core.exceptions import ConfigurationError
from knightcode.core.retry import with_retry
from knightcode.core.timeout import with_timeout
from knightcode.core.types import (
    CompletionOptions,
    CompletionResponse,
    ProviderConfig,
    StreamEvent,
    StreamEventType,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    import httpx

P = ParamSpec('P')
T = TypeVar('T')

logger = logging.getLogger(__name__)


class AbstractProvider(ABC):
    """Provider-independent interface over a local AI backend."""

    #: Slug reported by `get_provider_name()` and used in the registry.
    name: ClassVar[str]
    #: Defaults merged under any caller-supplied configuration.
    default_config: ClassVar[ProviderConfig]

    # ---------------------------------------------------------------------
    # Construction
    # ---------------------------------------------------------------------

    def __init__(
        self,
        config: ProviderConfig | Mapping[str, Any] | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Build the live config from the class defaults plus *config* overrides.

        *transport* is handed to every HTTP client the adapter opens; tests use
        it to plug in `httpx.MockTransport`.
        """
        self._config: ProviderConfig = self.default_config.model_copy(deep=True)
        self._transport = transport
        if config is not None:
            overrides = config.model_dump() if isinstance(config, ProviderConfig) else config
            self.update_config(overrides)
        logger.debug(
            f'{self.name} provider created (base_url={self._config.api_base_url}, model={self._config.default_model})'
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> ProviderConfig:
        """Return a copy of the live configuration."""
        return self._config.model_copy(deep=True)

    def update_config(self, changes: Mapping[str, Any]) -> None:
        """Shallow-merge *changes* into the live configuration.

        Raises
        ------
        ConfigurationError
            If the merged configuration does not validate.

        """
        merged = {**self._config.model_dump(), **changes}
        try:
            self._config = ProviderConfig.model_validate(merged)
        except ValidationError as exc:
            raise ConfigurationError(f'Invalid {self.name} configuration: {exc}') from exc
        logger.debug(f'{self.name} configuration updated: {sorted(changes)}')

    def set_model(self, model: str) -> None:
        self.update_config({'default_model': model})

    def get_model(self) -> str:
        return self._config.default_model

    def get_provider_name(self) -> str:
        return self.name

    # ------------------------------------------------------------------
    # Public async API
    # ------------------------------------------------------------------

    async def complete(self, options: CompletionOptions) -> CompletionResponse:
        """Run a single completion round trip.

        Subclasses **must not** override this - override `_invoke()` instead.
        """
        return await self._resilient(self._invoke)(options)

    async def complete_stream(self, options: CompletionOptions) -> AsyncIterator[StreamEvent]:
        """Stream a completion as events.

        The default implementation performs one `complete()` call and frames the
        full result with a `message_start` / `message_stop` pair.  Adapters that
        can read the backend incrementally override this.
        """
        response = await self.complete(options.model_copy(update={'stream': False}))
        yield StreamEvent(type=StreamEventType.message_start, message=response)
        yield StreamEvent(type=StreamEventType.message_stop, message=response)

    # ------------------------------------------------------------------
    # Methods to implement in concrete adapters
    # ------------------------------------------------------------------

    @abstractmethod
    async def test_connection(self) -> bool:
        """Probe the backend. Never raises; any failure is reported as ``False``."""

    @abstractmethod
    async def get_models(self) -> list[str]:
        """List model identifiers; raises `ConnectionFailedError` when unreachable."""

    @abstractmethod
    async def _invoke(self, options: CompletionOptions) -> CompletionResponse:
        """Provider-specific **single attempt** (to be overridden)."""

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _resilient(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Wrap *func* in a per-attempt timeout and the configured retry policy."""
        config = self._config
        return with_retry(config.retry)(with_timeout(config.timeout_ms)(func))

    def _resolve_model(self, options: CompletionOptions) -> str:
        return options.model or self._config.default_model

    def __repr__(self) -> str:  # pragma: no cover - cosmetic
        return f'<{self.__class__.__name__} model={self.get_model()!r} url={self._config.api_base_url!r}>'
