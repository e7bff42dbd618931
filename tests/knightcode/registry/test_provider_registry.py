import pytest

from knightcode.core.abc import AbstractProvider
from knightcode.core.exceptions import ProviderNotFoundError
from knightcode.core.types import CompletionOptions, CompletionResponse, ProviderConfig
from knightcode.registry.provider_registry import ProviderRegistry, provider_registry


class DummyProvider(AbstractProvider):
    name = 'dummy'
    default_config = ProviderConfig(api_base_url='http://dummy.invalid', default_model='dummy-1')

    async def test_connection(self) -> bool:
        return True

    async def get_models(self) -> list[str]:
        return ['dummy-1']

    async def _invoke(self, options: CompletionOptions) -> CompletionResponse:  # noqa: ARG002
        return CompletionResponse(id='dummy', model='dummy-1')


def test_register_and_fetch() -> None:
    reg = ProviderRegistry()
    reg.register('Dummy', DummyProvider)
    assert reg.available_providers() == ['dummy']
    assert reg.get_adapter_cls('DUMMY') is DummyProvider


def test_registries_are_independent() -> None:
    reg = ProviderRegistry()
    reg.register('dummy', DummyProvider)
    assert reg is not provider_registry
    assert 'dummy' not in provider_registry.available_providers()
    assert ProviderRegistry().available_providers() == []


def test_register_type_validation() -> None:
    reg = ProviderRegistry()
    with pytest.raises(TypeError):
        reg.register('bad', object)  # type: ignore[arg-type]


def test_unknown_provider() -> None:
    reg = ProviderRegistry()
    with pytest.raises(ProviderNotFoundError, match='no-such'):
        reg.get_adapter_cls('no-such')


def test_builtin_adapters_register_on_import() -> None:
    from knightcode.adapters.lmstudio_adapter import LMStudioProvider
    from knightcode.adapters.ollama_adapter import OllamaProvider

    assert provider_registry.get_adapter_cls('ollama') is OllamaProvider
    assert provider_registry.get_adapter_cls('lmstudio') is LMStudioProvider
