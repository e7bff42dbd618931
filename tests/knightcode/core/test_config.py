from __future__ import annotations

import json
from pathlib import Path

import pytest

from knightcode.core.config import load_config
from knightcode.core.exceptions import ConfigurationError


def _write(path: Path, payload: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding='utf-8')
    return path


def test_defaults() -> None:
    config = load_config()
    assert config.provider == 'ollama'
    assert config.model is None
    assert config.provider_overrides() == {
        'timeout_ms': 60_000,
        'default_temperature': 0.7,
        'default_max_tokens': 4096,
    }
    assert config.provider_configs() == {}


def test_project_file_is_read() -> None:
    _write(Path.cwd() / '.knightcode.json', {
        'ai': {'provider': 'lmstudio', 'model': 'qwen2.5-coder', 'maxTokens': 1024, 'timeout': 5000},
        'logging': {'level': 'debug'},
    })
    config = load_config()
    assert config.provider == 'lmstudio'
    assert config.model == 'qwen2.5-coder'
    assert config.max_tokens == 1024  # noqa: PLR2004
    assert config.timeout_ms == 5000  # noqa: PLR2004
    assert config.log_level == 'debug'
    assert config.provider_overrides()['default_model'] == 'qwen2.5-coder'


def test_first_file_found_wins() -> None:
    _write(Path.cwd() / '.knightcode.json', {'ai': {'model': 'project-model'}})
    _write(Path.home() / '.knightcode' / 'config.json', {'ai': {'model': 'home-model', 'provider': 'lmstudio'}})
    config = load_config()
    assert config.model == 'project-model'
    assert config.provider == 'ollama'


def test_environment_beats_file_and_overrides_beat_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    _write(Path.cwd() / '.knightcode.json', {'ai': {'provider': 'lmstudio', 'model': 'file-model'}})
    monkeypatch.setenv('KNIGHTCODE_AI_MODEL', 'env-model')
    monkeypatch.setenv('KNIGHTCODE_OLLAMA_URL', 'http://gpu-box:11434')

    config = load_config({'provider': 'ollama', 'model': None})
    assert config.provider == 'ollama'
    assert config.model == 'env-model'
    assert config.provider_configs() == {'ollama': {'api_base_url': 'http://gpu-box:11434'}}


def test_explicit_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(config_path=tmp_path / 'missing.json')


def test_explicit_path_is_used(tmp_path: Path) -> None:
    path = _write(tmp_path / 'custom.json', {'ai': {'temperature': 0.1}})
    assert load_config(config_path=path).temperature == 0.1  # noqa: PLR2004


def test_invalid_values_raise_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        load_config({'temperature': 3})


def test_broken_file_is_skipped() -> None:
    (Path.cwd() / '.knightcode.json').write_text('{not json', encoding='utf-8')
    assert load_config().provider == 'ollama'
