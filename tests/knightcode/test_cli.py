from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx
import pytest
from click.testing import CliRunner

from knightcode import cli as cli_module
from knightcode.cli import cli
from knightcode.registry.provider_selector import ProviderSelector

OLLAMA = 'localhost:11434'
LMSTUDIO = 'localhost:1234'


def _ndjson(*objects: dict[str, Any]) -> bytes:
    return b''.join(json.dumps(obj).encode() + b'\n' for obj in objects)


@pytest.fixture
def offline(backends, monkeypatch: pytest.MonkeyPatch):  # noqa: ANN001, ANN201
    """Point every provider the CLI creates at the fake backends."""

    class OfflineSelector(ProviderSelector):
        async def initialize(self, preferred: str, config: Any = None, **kwargs: Any) -> Any:
            return await super().initialize(preferred, config, transport=backends.transport, **kwargs)

    monkeypatch.setattr(cli_module, 'ProviderSelector', OfflineSelector)
    yield backends
    # handlers bound to CliRunner's captured stderr must not outlive the test
    logging.getLogger('knightcode').handlers.clear()


def _ollama_answers(backends, *chunks: str) -> None:  # noqa: ANN001
    backends.json_route(OLLAMA, 'GET', '/api/tags', {'models': [{'name': 'devstral:24b'}, {'name': 'llama3:8b'}]})
    lines = [{'model': 'devstral:24b', 'response': chunk, 'done': False} for chunk in chunks]
    lines.append({'model': 'devstral:24b', 'response': '', 'done': True, 'done_reason': 'stop'})
    backends.route(OLLAMA, 'POST', '/api/generate', lambda _r: httpx.Response(200, content=_ndjson(*lines)))


def test_ask_streams_the_answer(offline) -> None:  # noqa: ANN001
    _ollama_answers(offline, 'Use ', 'two pointers.')

    result = CliRunner().invoke(cli, ['ask', 'reverse', 'a', 'linked', 'list'])

    assert result.exit_code == 0, result.output
    assert 'Use two pointers.' in result.output
    body = json.loads(offline.requests_to(OLLAMA)[-1].content)
    assert body['stream'] is True
    assert body['prompt'].endswith('reverse a linked list')


def test_model_option_reaches_the_request(offline) -> None:  # noqa: ANN001
    _ollama_answers(offline, 'ok')

    result = CliRunner().invoke(cli, ['ask', 'hi', '--model', 'llama3:8b'])

    assert result.exit_code == 0, result.output
    assert json.loads(offline.requests_to(OLLAMA)[-1].content)['model'] == 'llama3:8b'


def test_explain_sends_the_file(offline, tmp_path: Path) -> None:  # noqa: ANN001
    _ollama_answers(offline, 'It adds numbers.')
    source = tmp_path / 'add.py'
    source.write_text('def add(a, b):\n    return a + b\n', encoding='utf-8')

    result = CliRunner().invoke(cli, ['explain', str(source)])

    assert result.exit_code == 0, result.output
    assert 'It adds numbers.' in result.output
    prompt = json.loads(offline.requests_to(OLLAMA)[-1].content)['prompt']
    assert 'File: add.py' in prompt
    assert 'return a + b' in prompt


def test_fix_includes_the_issue(offline, tmp_path: Path) -> None:  # noqa: ANN001
    _ollama_answers(offline, 'fixed')
    source = tmp_path / 'loop.py'
    source.write_text('for i in range(len(xs) + 1):\n    print(xs[i])\n', encoding='utf-8')

    result = CliRunner().invoke(cli, ['fix', str(source), '--issue', 'index error'])

    assert result.exit_code == 0, result.output
    assert 'index error' in json.loads(offline.requests_to(OLLAMA)[-1].content)['prompt']


def test_falls_back_to_lmstudio(offline) -> None:  # noqa: ANN001
    offline.json_route(LMSTUDIO, 'GET', '/v1/models', {
        'object': 'list',
        'data': [{'id': 'qwen', 'object': 'model', 'created': 0, 'owned_by': 'me'}],
    })

    result = CliRunner().invoke(cli, ['models'])

    assert result.exit_code == 0, result.output
    assert 'Models available from lmstudio:' in result.output
    assert 'qwen' in result.output


def test_models_marks_the_current_model(offline) -> None:  # noqa: ANN001
    _ollama_answers(offline)

    result = CliRunner().invoke(cli, ['models', '--provider', 'ollama'])

    assert result.exit_code == 0, result.output
    assert ' * devstral:24b' in result.output
    assert '   llama3:8b' in result.output


def test_no_provider_reachable_exits_with_user_error(offline) -> None:  # noqa: ANN001
    result = CliRunner().invoke(cli, ['ask', 'hello'])

    assert result.exit_code == 1
    assert '[connection] Failed to connect to any local AI provider' in result.output
    assert 'Resolution:' in result.output


def test_unexpected_error_exits_with_2(offline, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    _ollama_answers(offline)

    async def _explode(*_args: Any) -> None:
        raise RuntimeError('kaboom')

    monkeypatch.setattr(cli_module, 'stream_completion', _explode)

    result = CliRunner().invoke(cli, ['ask', 'hello'])

    assert result.exit_code == 2  # noqa: PLR2004
    assert '[unknown] kaboom' in result.output


def test_missing_config_file_is_a_configuration_error(offline, tmp_path: Path) -> None:  # noqa: ANN001
    result = CliRunner().invoke(cli, ['ask', 'hello', '--config', str(tmp_path / 'nope.json')])

    assert result.exit_code == 1
    assert '[configuration]' in result.output
    assert offline.requests == []


def test_unknown_provider_choice_is_a_usage_error() -> None:
    result = CliRunner().invoke(cli, ['ask', 'hello', '--provider', 'openai'])
    assert result.exit_code == 2  # noqa: PLR2004
