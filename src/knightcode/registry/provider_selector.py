"""registry.provider_selector

Resolves the one provider a CLI invocation talks to.

`ProviderSelector` probes the preferred backend and, if its connectivity test
fails, each alternate in `fallback_order`.  The first backend that answers
becomes the active provider.  Callers own the selector and pass it to whatever
needs the provider; there is no hidden module-level client.

State machine::

    uninitialized -> probing(preferred) -> ready(preferred)
                                        -> probing(alternate) -> ready(alternate)
                                                              -> failed

Failover happens only on a failed probe.  A completion that fails after a
provider became ready is surfaced to the caller, never retried elsewhere.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from knightcode.core.exceptions import (
    ConnectionFailedError,
    InitializationError,
    OperationTimeoutError,
)
from knightcode.core.timeout import with_timeout
from knightcode.registry.provider_factory import ProviderFactory

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from knightcode.core.abc import AbstractProvider

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_ORDER: tuple[str, ...] = ('ollama', 'lmstudio')
DEFAULT_PROBE_TIMEOUT_MS = 5_000

# Model names only make sense for the backend they were chosen for
_PREFERRED_ONLY_KEYS = frozenset({'default_model', 'api_base_url'})


class SelectorState(StrEnum):
    uninitialized = 'uninitialized'
    probing = 'probing'
    ready = 'ready'
    failed = 'failed'


class ProviderSelector:
    """Owns the active provider for one CLI invocation."""

    def __init__(
        self,
        factory: ProviderFactory | None = None,
        *,
        fallback_order: Sequence[str] = DEFAULT_FALLBACK_ORDER,
        probe_timeout_ms: float = DEFAULT_PROBE_TIMEOUT_MS,
    ) -> None:
        self._factory = factory or ProviderFactory()
        self._fallback_order = tuple(name.lower() for name in fallback_order)
        self._probe_timeout_ms = probe_timeout_ms
        self._state = SelectorState.uninitialized
        self._probing: str | None = None
        self._active: AbstractProvider | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SelectorState:
        return self._state

    @property
    def probing_provider(self) -> str | None:
        """Name of the provider under test while `state` is ``probing``."""
        return self._probing

    @property
    def is_initialized(self) -> bool:
        return self._active is not None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _candidates(self, preferred: str) -> list[str]:
        registered = set(self._factory.available_providers())
        return [preferred] + [name for name in self._fallback_order if name != preferred and name in registered]

    async def _probe(self, provider: AbstractProvider) -> bool:
        try:
            return await with_timeout(self._probe_timeout_ms)(provider.test_connection)()
        except OperationTimeoutError:
            logger.warning(f'Connection test for {provider.get_provider_name()} timed out')
            return False
        except Exception as exc:  # noqa: BLE001 - a broken probe is a failed probe
            logger.warning(f'Connection test for {provider.get_provider_name()} raised: {exc!r}')
            return False

    async def initialize(
        self,
        preferred: str,
        config: Mapping[str, Any] | None = None,
        *,
        provider_configs: Mapping[str, Mapping[str, Any]] | None = None,
        **adapter_kwargs: Any,
    ) -> AbstractProvider:
        """Resolve and activate a provider, preferring *preferred*.

        Parameters
        ----------
        preferred
            Slug of the provider to try first.
        config
            `ProviderConfig` overrides.  ``default_model`` and ``api_base_url``
            apply to the preferred provider only; everything else to every
            candidate.
        provider_configs
            Per-provider overrides keyed by slug, applied on top of *config*
            (e.g. each backend's own base URL).
        **adapter_kwargs
            Forwarded to each adapter's constructor.

        Raises
        ------
        ProviderNotFoundError
            If *preferred* is not a registered provider.
        ConnectionFailedError
            If no candidate answers its connectivity probe.

        """
        preferred = preferred.lower()
        overrides = dict(config or {})
        shared = {key: value for key, value in overrides.items() if key not in _PREFERRED_ONLY_KEYS}

        logger.info(f'Initializing AI provider (preferred: {preferred})')
        attempted: list[str] = []
        for name in self._candidates(preferred):
            candidate_config = {**(overrides if name == preferred else shared), **(provider_configs or {}).get(name, {})}
            provider = self._factory.create(name, candidate_config, **adapter_kwargs)
            self._state, self._probing = SelectorState.probing, name
            attempted.append(name)
            logger.debug(f'Testing connection to {name}')

            if await self._probe(provider):
                self._active = provider
                self._state, self._probing = SelectorState.ready, None
                if name != preferred:
                    logger.warning(f'{preferred} is unavailable; falling back to {name}')
                logger.info(f'AI provider ready: {name} (model: {provider.get_model()})')
                return provider

            logger.warning(f'Connection test failed for {name}')

        self._active = None
        self._state, self._probing = SelectorState.failed, None
        raise ConnectionFailedError(
            f'Failed to connect to any local AI provider (tried: {", ".join(attempted)})',
            resolution='Make sure Ollama (ollama serve) or the LM Studio local server is running.',
            details={'attempted': attempted},
            retryable=False,
        )

    def get_client(self) -> AbstractProvider:
        """Return the active provider.

        Raises
        ------
        InitializationError
            If no provider has been successfully initialized.

        """
        if self._active is None:
            raise InitializationError(
                'AI provider not initialized',
                resolution='Call ProviderSelector.initialize() before using AI capabilities.',
            )
        return self._active
