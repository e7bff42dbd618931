from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

Responder = Callable[[httpx.Request], Any]


class FakeBackends:
    """Routes requests to per-(host, method, path) responders and records them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str, str], Responder] = {}

    def route(self, host: str, method: str, path: str, responder: Responder) -> None:
        self._routes[(host, method, path)] = responder

    def json_route(self, host: str, method: str, path: str, payload: Any, status_code: int = 200) -> None:
        self.route(host, method, path, lambda _request: httpx.Response(status_code, json=payload))

    def requests_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if f'{r.url.host}:{r.url.port}' == host]

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (f'{request.url.host}:{request.url.port}', request.method, request.url.path)
        if key not in self._routes:
            raise httpx.ConnectError('connection refused', request=request)
        response = self._routes[key](request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


@pytest.fixture
def backends() -> FakeBackends:
    return FakeBackends()


@pytest.fixture
def fast_retry() -> dict[str, Any]:
    """Config overrides: two retries, no waiting."""
    return {'retry': {'max_retries': 2, 'initial_delay_ms': 0, 'max_delay_ms': 0, 'jitter': False}}


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Keep the developer's own config files and env vars out of the tests."""
    for var in ('KNIGHTCODE_AI_PROVIDER', 'KNIGHTCODE_AI_MODEL', 'KNIGHTCODE_LOG_LEVEL',
                'KNIGHTCODE_OLLAMA_URL', 'KNIGHTCODE_LMSTUDIO_URL', 'XDG_CONFIG_HOME'):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv('HOME', str(tmp_path / 'home'))
    monkeypatch.chdir(tmp_path)
