"""adapters.lmstudio_adapter

Concrete adapter that bridges :class:`knightcode.core.abc.AbstractProvider`
with **LM Studio**'s local server.

LM Studio speaks the OpenAI Chat Completions dialect under ``/v1``, so the
adapter drives it through the *openai==1.x* async client.  SDK-side retries are
disabled; retry and timeout policy come from the adapter's `ProviderConfig`.
The non-standard ``top_k`` / ``stop_sequences`` fields travel via
``extra_body`` so the request body keeps LM Studio's expected shape.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import httpx
import openai
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
    from collections.abc import AsyncIterator, Iterator

    from openai import AsyncStream
    from openai.types.chat import ChatCompletion, ChatCompletionChunk

logger = logging.getLogger(__name__)

_RESOLUTION = 'Check that the LM Studio local server is running and a model is loaded.'
# LM Studio ignores the key, but the client refuses to start without one
_PLACEHOLDER_API_KEY = 'lm-studio'


class LMStudioProvider(AbstractProvider):
    """Adapter for the LM Studio local server."""

    name = 'lmstudio'
    default_config = ProviderConfig(
        api_base_url='http://localhost:1234',
        timeout_ms=60_000,
        default_model='default',  # LM Studio serves whichever model is loaded
        default_max_tokens=4096,
        default_temperature=0.7,
    )

    # ------------------------------------------------------------------
    # Client plumbing
    # ------------------------------------------------------------------

    def _client(self) -> openai.AsyncOpenAI:
        http_client = httpx.AsyncClient(transport=self._transport) if self._transport is not None else None
        return openai.AsyncOpenAI(
            api_key=_PLACEHOLDER_API_KEY,
            base_url=f'{self._config.api_base_url.rstrip("/")}/v1',
            timeout=self._config.timeout_ms / 1000,
            max_retries=0,
            http_client=http_client,
        )

    @contextmanager
    def _translated_errors(self) -> Iterator[None]:
        """Re-raise SDK exceptions as *knightcode* errors."""
        try:
            yield
        except openai.APITimeoutError as exc:
            raise OperationTimeoutError(f'LM Studio did not answer in time: {exc}', resolution=_RESOLUTION) from exc
        except openai.APIConnectionError as exc:
            raise ConnectionFailedError(
                f'Cannot connect to LM Studio at {self._config.api_base_url}: {exc}',
                resolution=_RESOLUTION,
            ) from exc
        except openai.APIStatusError as exc:
            message = error_message(exc.body, exc.status_code)
            logger.error(f'LM Studio API error: {exc.status_code} - {message}')
            raise AIServiceError(
                f'LM Studio API error: {message}',
                resolution=_RESOLUTION,
                details={'status': exc.status_code, 'body': exc.body},
                retryable=is_retryable_status(exc.status_code),
            ) from exc
        except (openai.OpenAIError, ValidationError) as exc:  # generic fallback
            raise AIServiceError('LM Studio returned an unexpected response', resolution=_RESOLUTION) from exc

    # ------------------------------------------------------------------
    # Probe / models
    # ------------------------------------------------------------------

    async def test_connection(self) -> bool:
        logger.debug('Testing connection to LM Studio service')
        try:
            async with self._client() as client:
                page = await with_timeout(self._config.timeout_ms)(client.models.list)()
            names = self._model_names(page)
        except Exception as exc:  # noqa: BLE001 - a probe reports, it never raises
            logger.debug(f'Failed to connect to LM Studio service: {exc}')
            return False
        logger.debug(f'Available LM Studio models: {names}')
        return True

    async def get_models(self) -> list[str]:
        try:
            async with self._client() as client:
                with self._translated_errors():
                    page = await with_timeout(self._config.timeout_ms)(client.models.list)()
            return self._model_names(page)
        except (KnightcodeError, AttributeError, TypeError) as exc:
            logger.error(f'Failed to get LM Studio models: {exc}')
            raise ConnectionFailedError('Failed to get available models', resolution=_RESOLUTION) from exc

    @staticmethod
    def _model_names(page: Any) -> list[str]:
        if not isinstance(page.data, list):
            raise TypeError(f'expected a list of models, got {type(page.data).__name__}')
        return [model.id for model in page.data]

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _build_request(self, options: CompletionOptions, *, stream: bool) -> dict[str, Any]:
        config = self._config
        request: dict[str, Any] = {
            'model': self._resolve_model(options),
            'messages': [{'role': str(m.role), 'content': m.content} for m in options.conversation()],
            'temperature': config.default_temperature if options.temperature is None else options.temperature,
            'max_tokens': options.max_tokens or config.default_max_tokens,
            'top_p': 1.0 if options.top_p is None else options.top_p,
            'stream': stream,
            'extra_body': {
                'top_k': 40 if options.top_k is None else options.top_k,
                'stop_sequences': options.stop_sequences or [],
            },
        }
        if stream:
            # usage only arrives in a final chunk when asked for
            request['stream_options'] = {'include_usage': True}
        return request

    async def _invoke(self, options: CompletionOptions) -> CompletionResponse:
        request = self._build_request(options, stream=False)
        logger.debug(
            f'Sending completion request to LM Studio '
            f'(model={request["model"]}, messages={len(request["messages"])})'
        )
        async with self._client() as client:
            with self._translated_errors():
                completion = await client.chat.completions.create(**request)
        try:
            response = self._parse_completion(completion, request['model'])
        except (AttributeError, TypeError, ValidationError) as exc:
            raise AIServiceError('LM Studio returned a malformed response', resolution=_RESOLUTION) from exc
        logger.debug(
            f'LM Studio completion successful (id={response.id}, in={response.usage.input_tokens}, '
            f'out={response.usage.output_tokens})'
        )
        return response

    @staticmethod
    def _parse_completion(completion: ChatCompletion, requested_model: str) -> CompletionResponse:
        choice = completion.choices[0] if completion.choices else None
        text = (choice.message.content if choice else None) or ''
        usage = completion.usage
        return CompletionResponse(
            id=getattr(completion, 'id', None) or f'lmstudio_{time.time_ns()}',
            model=getattr(completion, 'model', None) or requested_model,
            usage=Usage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
            ),
            content=[ContentBlock(text=text)] if text else [],
            stop_reason=(choice.finish_reason if choice else None) or 'stop',
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _open_stream(
        self,
        client: openai.AsyncOpenAI,
        request: dict[str, Any],
    ) -> AsyncStream[ChatCompletionChunk]:
        with self._translated_errors():
            return await client.chat.completions.create(**request)

    async def complete_stream(self, options: CompletionOptions) -> AsyncIterator[StreamEvent]:
        request = self._build_request(options, stream=True)
        assembler = StreamAssembler(f'lmstudio_{time.time_ns()}', request['model'])
        logger.debug(f'Sending streaming completion request to LM Studio (model={request["model"]})')

        async with self._client() as client:
            stream = await self._resilient(self._open_stream)(client, request)
            try:
                with self._translated_errors():
                    async for chunk in stream:
                        for event in self._handle_chunk(assembler, chunk):
                            yield event
            finally:
                await stream.close()

        for event in assembler.close():
            yield event

    @staticmethod
    def _handle_chunk(assembler: StreamAssembler, chunk: ChatCompletionChunk) -> list[StreamEvent]:
        try:
            if not assembler.opened:
                assembler.message_id = chunk.id or assembler.message_id
                assembler.model = chunk.model or assembler.model
            if chunk.usage is not None:
                assembler.usage = Usage(
                    input_tokens=chunk.usage.prompt_tokens,
                    output_tokens=chunk.usage.completion_tokens,
                )
            events = assembler.open()
            for choice in chunk.choices:
                events += assembler.add_text(choice.delta.content or '')
                if choice.finish_reason:
                    assembler.stop_reason = choice.finish_reason
        except (AttributeError, TypeError, ValidationError) as exc:
            raise AIServiceError('LM Studio sent a malformed stream chunk', resolution=_RESOLUTION) from exc
        return events


# ---------------------------------------------------------------------------
# Automatic registration
# ---------------------------------------------------------------------------

provider_registry.register(LMStudioProvider.name, LMStudioProvider)
