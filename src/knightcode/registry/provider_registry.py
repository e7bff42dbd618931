"""registry.provider_registry

Maps provider slugs ("ollama", "lmstudio") to the adapter classes that
speak to them.

The built-in adapters register themselves into the module-level
`provider_registry` when imported.  Tests and embedders can build their own
`ProviderRegistry` and hand it to `ProviderFactory` to get an isolated set
of providers.  The registry imports no HTTP client, so adapters can import it
at module level without import cycles.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from knightcode.core.exceptions import ProviderNotFoundError

if TYPE_CHECKING:
    from knightcode.core.abc import AbstractProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Slug to adapter-class lookup.

    Usage (at the bottom of an adapter module):

    ```python
    from knightcode.registry.provider_registry import provider_registry

    class OllamaProvider(AbstractProvider):
        ...

    provider_registry.register(OllamaProvider.name, OllamaProvider)
    ```
    """

    def __init__(self) -> None:
        self._adapters: dict[str, type[AbstractProvider]] = {}

    def register(self, provider_key: str, adapter_cls: type[AbstractProvider]) -> None:
        """Register *adapter_cls* under *provider_key*.

        Parameters
        ----------
        provider_key
            Slug such as "ollama" or "lmstudio". Normalised to lower-case.
        adapter_cls
            Concrete subclass of AbstractProvider.

        Raises
        ------
        TypeError
            If *adapter_cls* is not an AbstractProvider subclass.

        """
        from knightcode.core.abc import AbstractProvider  # local import avoids cycles

        if not isinstance(adapter_cls, type) or not issubclass(adapter_cls, AbstractProvider):
            raise TypeError('adapter_cls must subclass AbstractProvider')
        key = provider_key.lower()
        if key in self._adapters and self._adapters[key] is not adapter_cls:
            logger.debug(f'Replacing adapter for {key}: {self._adapters[key].__name__} -> {adapter_cls.__name__}')
        self._adapters[key] = adapter_cls

    def get_adapter_cls(self, provider_key: str) -> type[AbstractProvider]:
        """Return the adapter class registered for *provider_key*.

        Raises
        ------
        ProviderNotFoundError
            If *provider_key* hasn't been registered.

        """
        try:
            return self._adapters[provider_key.lower()]
        except KeyError as exc:
            raise ProviderNotFoundError(f'Unsupported provider: {provider_key}') from exc

    def available_providers(self) -> list[str]:
        return sorted(self._adapters)


provider_registry = ProviderRegistry()
