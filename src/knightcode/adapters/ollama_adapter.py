"""adapters.ollama_adapter

Concrete adapter that bridges :class:`knightcode.core.abc.AbstractProvider`
with the **Ollama** HTTP API (``/api/tags`` and ``/api/generate``).

Ollama's generate endpoint takes a single prompt string, so the conversation
is flattened: message contents joined by newlines, role information dropped.
Streaming responses are newline-delimited JSON objects, each carrying a
``response`` fragment; the last one has ``done: true`` plus token counts.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from knightcode.adapters.http_errors import error_message, is_retryable_status
from knightcode.core.abc import AbstractProvider
from knightcode.core.exceptions import (
    AIServiceError,
    ConnectionFailedError,
    KnightcodeError,
    OperationTimeoutError,
)
from knightcode.core.streaming import StreamAssembler
from knightcode.core.timeout import with_timeout
from knightcode.core.types import (
    CompletionOptions,
    CompletionResponse,
    ContentBlock,
    ProviderConfig,
    StreamEvent,
    Usage,
)
from knightcode.registry.provider_registry import provider_registry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_RESOLUTION = 'Make sure Ollama is running (ollama serve) and the model is pulled.'


class OllamaProvider(AbstractProvider):
    """Adapter for a local Ollama server."""

    name = 'ollama'
    default_config = ProviderConfig(
        api_base_url='http://localhost:11434',
        timeout_ms=60_000,
        default_model='devstral:24b',
        default_max_tokens=4096,
        default_temperature=0.7,
    )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.api_base_url.rstrip('/'),
            timeout=self._config.timeout_ms / 1000,
            headers={'Content-Type': 'application/json'},
            transport=self._transport,
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body: Any = response.json()
        except ValueError:
            body = None
        message = error_message(body, response.status_code)
        logger.error(f'Ollama API error: {response.status_code} - {message}')
        raise AIServiceError(
            f'Ollama API error: {message}',
            resolution=_RESOLUTION,
            details={'status': response.status_code, 'body': body},
            retryable=is_retryable_status(response.status_code),
        )

    def _transport_error(self, exc: httpx.TransportError) -> KnightcodeError:
        if isinstance(exc, httpx.TimeoutException):
            return OperationTimeoutError(f'Ollama did not answer in time: {exc}', resolution=_RESOLUTION)
        return ConnectionFailedError(
            f'Cannot connect to Ollama at {self._config.api_base_url}: {exc}',
            resolution=_RESOLUTION,
        )

    # ------------------------------------------------------------------
    # Probe / models
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        logger.debug('Testing connection to Ollama service')
        try:
            async with self._client() as client:
                response = await with_timeout(self._config.timeout_ms)(client.get)('/api/tags')
        except Exception as exc:  # noqa: BLE001 - a probe reports, it never raises
            logger.debug(f'Failed to connect to Ollama service: {exc}')
            return False
        if not response.is_success:
            logger.debug(f'Ollama service responded with non-OK status: {response.status_code}')
            return False
        return True

    async def get_models(self) -> list[str]:
        try:
            async with self._client() as client:
                response = await with_timeout(self._config.timeout_ms)(client.get)('/api/tags')
            self._raise_for_status(response)
            return [model['name'] for model in response.json().get('models', [])]
        except (KnightcodeError, httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error(f'Failed to get Ollama models: {exc}')
            raise ConnectionFailedError('Failed to get available models', resolution=_RESOLUTION) from exc

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _build_payload(self, options: CompletionOptions, *, stream: bool) -> dict[str, Any]:
        config = self._config
        sampling = {
            'temperature': config.default_temperature if options.temperature is None else options.temperature,
            'num_predict': options.max_tokens or config.default_max_tokens,
            'top_p': options.top_p,
            'top_k': options.top_k,
            'stop': options.stop_sequences,
        }
        return {
            'model': self._resolve_model(options),
            'prompt': '\n'.join(message.content for message in options.conversation()),
            'stream': stream,
            'options': {key: value for key, value in sampling.items() if value is not None},
        }

    async def _invoke(self, options: CompletionOptions) -> CompletionResponse:
        payload = self._build_payload(options, stream=False)
        logger.debug(f'Sending completion request to Ollama (model={payload["model"]})')
        try:
            async with self._client() as client:
                response = await client.post('/api/generate', json=payload)
        except httpx.TransportError as exc:
            raise self._transport_error(exc) from exc

        self._raise_for_status(response)
        try:
            return self._parse_completion(response.json(), payload['model'])
        except (ValueError, TypeError, AttributeError, ValidationError) as exc:
            raise AIServiceError('Ollama returned a malformed response', resolution=_RESOLUTION) from exc

    @staticmethod
    def _parse_completion(data: dict[str, Any], requested_model: str) -> CompletionResponse:
        text = data.get('response') or ''
        return CompletionResponse(
            id=f'ollama-{uuid.uuid4().hex}',
            model=data.get('model') or requested_model,
            usage=Usage(
                input_tokens=data.get('prompt_eval_count') or 0,
                output_tokens=data.get('eval_count') or 0,
            ),
            content=[ContentBlock(text=text)] if text else [],
            stop_reason=data.get('done_reason'),
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _open_stream(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> httpx.Response:
        request = client.build_request('POST', '/api/generate', json=payload)
        try:
            response = await client.send(request, stream=True)
        except httpx.TransportError as exc:
            raise self._transport_error(exc) from exc
        if not response.is_success:
            await response.aread()
            await response.aclose()
            self._raise_for_status(response)
        return response

    async def complete_stream(self, options: CompletionOptions) -> AsyncIterator[StreamEvent]:
        payload = self._build_payload(options, stream=True)
        assembler = StreamAssembler(f'ollama-{uuid.uuid4().hex}', payload['model'])
        logger.debug(f'Sending streaming completion request to Ollama (model={payload["model"]})')

        async with self._client() as client:
            response = await self._resilient(self._open_stream)(client, payload)
            try:
                for event in assembler.open():
                    yield event
                async for line in response.aiter_lines():
                    for event in self._handle_line(assembler, line):
                        yield event
            except httpx.TransportError as exc:
                raise self._transport_error(exc) from exc
            finally:
                await response.aclose()

        for event in assembler.close():
            yield event

    @staticmethod
    def _handle_line(assembler: StreamAssembler, line: str) -> list[StreamEvent]:
        if not line.strip():
            return []
        try:
            chunk = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f'Failed to parse Ollama stream line: {line[:200]!r}')
            return []
        if not isinstance(chunk, dict):
            logger.warning(f'Ignoring unexpected Ollama stream line: {line[:200]!r}')
            return []
        if chunk.get('error'):
            raise AIServiceError(f'Ollama API error: {error_message(chunk, 200)}', resolution=_RESOLUTION)

        fragment = chunk.get('response') or ''
        if not isinstance(fragment, str):
            logger.warning(f'Ignoring non-text Ollama response fragment: {line[:200]!r}')
            fragment = ''
        events = assembler.add_text(fragment)
        if chunk.get('done'):
            model, reason = chunk.get('model'), chunk.get('done_reason')
            assembler.model = model if isinstance(model, str) and model else assembler.model
            assembler.stop_reason = reason if isinstance(reason, str) and reason else 'stop'
            try:
                assembler.usage = Usage(
                    input_tokens=chunk.get('prompt_eval_count') or 0,
                    output_tokens=chunk.get('eval_count') or 0,
                )
            except ValidationError:
                logger.warning(f'Ignoring malformed Ollama token counts: {line[:200]!r}')
        return events


# ---------------------------------------------------------------------------
# Automatic registration
# ---------------------------------------------------------------------------

provider_registry.register(OllamaProvider.name, OllamaProvider)
