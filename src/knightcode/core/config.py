"""core.config

Configuration loader for the CLI.

Sources, lowest precedence first:

1. built-in defaults (`AppConfig`)
2. the first JSON config file found (see `CONFIG_PATHS`)
3. environment variables (after ``.env`` is loaded via *python-dotenv*)
4. explicit overrides, i.e. command-line flags
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from knightcode.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

ENV_VARS: Mapping[str, str] = {
    'KNIGHTCODE_AI_PROVIDER': 'provider',
    'KNIGHTCODE_AI_MODEL': 'model',
    'KNIGHTCODE_LOG_LEVEL': 'log_level',
    'KNIGHTCODE_OLLAMA_URL': 'ollama_url',
    'KNIGHTCODE_LMSTUDIO_URL': 'lmstudio_url',
}

# Keys of the file's "ai" section, mapped to AppConfig fields
_FILE_AI_KEYS: Mapping[str, str] = {
    'provider': 'provider',
    'model': 'model',
    'temperature': 'temperature',
    'maxTokens': 'max_tokens',
    'timeout': 'timeout_ms',
    'ollamaUrl': 'ollama_url',
    'lmstudioUrl': 'lmstudio_url',
}


def config_paths() -> list[Path]:
    """Candidate config files, in lookup order."""
    home = Path.home()
    xdg = os.environ.get('XDG_CONFIG_HOME')
    return [
        Path.cwd() / '.knightcode.json',
        home / '.knightcode' / 'config.json',
        home / '.knightcode.json',
        (Path(xdg) if xdg else home / '.config') / 'knightcode' / 'config.json',
    ]


class AppConfig(BaseModel):
    """Settings the provider pipeline needs."""

    provider: str = Field('ollama', min_length=1)
    model: str | None = None
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(4096, gt=0)
    timeout_ms: int = Field(60_000, gt=0)
    log_level: str = 'info'
    ollama_url: str | None = None
    lmstudio_url: str | None = None

    def provider_overrides(self) -> dict[str, Any]:
        """`ProviderConfig` changes shared by whichever provider gets selected."""
        overrides: dict[str, Any] = {
            'timeout_ms': self.timeout_ms,
            'default_temperature': self.temperature,
            'default_max_tokens': self.max_tokens,
        }
        if self.model:
            overrides['default_model'] = self.model
        return overrides

    def provider_configs(self) -> dict[str, dict[str, Any]]:
        """Per-provider `ProviderConfig` changes (base URLs)."""
        urls = {'ollama': self.ollama_url, 'lmstudio': self.lmstudio_url}
        return {name: {'api_base_url': url} for name, url in urls.items() if url}


def _read_config_file(path: Path) -> dict[str, Any] | None:
    try:
        with path.open(encoding='utf-8') as f:
            raw = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning(f'Error loading configuration from {path}: {exc}')
        return None
    if not isinstance(raw, dict):
        logger.warning(f'Ignoring configuration in {path}: top level is not an object')
        return None

    ai = raw.get('ai') if isinstance(raw.get('ai'), dict) else {}
    values = {field: ai[key] for key, field in _FILE_AI_KEYS.items() if key in ai}
    logging_section = raw.get('logging') if isinstance(raw.get('logging'), dict) else {}
    level = logging_section.get('level')
    if level:
        values['log_level'] = level
    return values


def load_config(
    overrides: Mapping[str, Any] | None = None,
    *,
    config_path: str | os.PathLike[str] | None = None,
) -> AppConfig:
    """Assemble an `AppConfig` from defaults, file, environment and *overrides*.

    ``None`` values in *overrides* are ignored, so unset CLI flags can be
    passed straight through.

    Raises
    ------
    ConfigurationError
        If *config_path* cannot be read, or the merged values are invalid.

    """
    load_dotenv()
    values: dict[str, Any] = {}

    if config_path is not None:
        file_values = _read_config_file(Path(config_path))
        if file_values is None:
            raise ConfigurationError(
                f'Could not load configuration from {config_path}',
                resolution='Check that the file exists and is valid JSON.',
            )
        values.update(file_values)
    else:
        for path in config_paths():
            file_values = _read_config_file(path)
            if file_values is not None:
                logger.debug(f'Loaded configuration from {path}')
                values.update(file_values)
                break

    values.update({field: os.environ[var] for var, field in ENV_VARS.items() if os.environ.get(var)})
    values.update({key: value for key, value in (overrides or {}).items() if value is not None})

    try:
        return AppConfig.model_validate(values)
    except ValidationError as exc:
        raise ConfigurationError(f'Invalid configuration: {exc}') from exc
