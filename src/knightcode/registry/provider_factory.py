"""registry.provider_factory

Factory responsible for converting a provider slug into a freshly
initialized adapter instance (subclass of AbstractProvider).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

# Importing the adapter modules registers them
from knightcode.adapters import lmstudio_adapter, ollama_adapter  # noqa: F401
from knightcode.registry.provider_registry import ProviderRegistry, provider_registry

if TYPE_CHECKING:
    from collections.abc import Mapping

    from knightcode.core.abc import AbstractProvider
    from knightcode.core.types import ProviderConfig


class ProviderFactory:
    """Factory for creating provider adapters.

    Every call returns a new adapter; nothing is cached, so each
    initialization gets its own `ProviderConfig`.
    """

    def __init__(self, registry: ProviderRegistry | None = None) -> None:
        self._registry = provider_registry if registry is None else registry

    def create(
        self,
        provider: str,
        config: ProviderConfig | Mapping[str, Any] | None = None,
        **adapter_kwargs: Any,
    ) -> AbstractProvider:
        """Return a concrete adapter for *provider*.

        Parameters
        ----------
        provider
            Registered slug, e.g. ``"ollama"``.
        config
            Overrides merged over the adapter's default configuration.
        **adapter_kwargs
            Arbitrary keyword arguments forwarded to the adapter's
            constructor (e.g. a test ``transport``) without changing the
            factory signature.

        Raises
        ------
        ProviderNotFoundError
            If *provider* is not registered.

        """
        adapter_class = self._registry.get_adapter_cls(provider)
        return adapter_class(config, **adapter_kwargs)

    def available_providers(self) -> list[str]:
        return self._registry.available_providers()
