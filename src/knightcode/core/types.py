"""core.types

Shared DTOs and enums used throughout *knightcode*.

These models live in the **core** layer so that *adapters*, *registry*, and
the CLI can depend on them without causing circular imports.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from knightcode.core.retry import RetryStrategy

# ---------------------------------------------------------------------------
# Chat roles
# ---------------------------------------------------------------------------


class Role(StrEnum):
    system = 'system'
    user = 'user'
    assistant = 'assistant'


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """Single chat message."""

    role: Role
    content: str

    # Immutable value-object
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Completion request (provider-agnostic)
# ---------------------------------------------------------------------------


class CompletionOptions(BaseModel):
    """Everything a caller can ask of a completion.

    Unset sampling fields fall back to the adapter's ``ProviderConfig``
    defaults; ``system`` is prepended to ``messages`` as a system-role message.
    """

    messages: list[Message]
    model: str | None = None
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0, description='Maximum tokens in completion')
    top_p: float | None = Field(None, ge=0.0, le=1.0)
    top_k: int | None = Field(None, ge=0)
    stop_sequences: list[str] | None = None
    stream: bool = False
    system: str | None = None

    def conversation(self) -> list[Message]:
        """Return the messages with the system preamble (if any) in front."""
        if self.system:
            return [Message(role=Role.system, content=self.system), *self.messages]
        return list(self.messages)


# ---------------------------------------------------------------------------
# Normalised response
# ---------------------------------------------------------------------------


class Usage(BaseModel):
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)


class ContentBlock(BaseModel):
    type: str = 'text'
    text: str


class CompletionResponse(BaseModel):
    """Backend-independent result of a completion."""

    id: str
    model: str
    usage: Usage = Field(default_factory=Usage)
    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str | None = None

    @property
    def text(self) -> str:
        """Concatenated text of every content block."""
        return ''.join(block.text for block in self.content)


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class StreamEventType(StrEnum):
    message_start = 'message_start'
    content_block_start = 'content_block_start'
    content_block_delta = 'content_block_delta'
    content_block_stop = 'content_block_stop'
    message_delta = 'message_delta'
    message_stop = 'message_stop'


class StreamEvent(BaseModel):
    """One event of a completion stream.

    A stream always opens with exactly one ``message_start`` and closes with
    exactly one ``message_stop``; everything in between is optional.
    """

    type: StreamEventType
    message: CompletionResponse | None = None
    index: int | None = None
    delta: ContentBlock | None = None
    usage: Usage | None = None
    stop_reason: str | None = None


# ---------------------------------------------------------------------------
# Adapter configuration
# ---------------------------------------------------------------------------


class ProviderConfig(BaseModel):
    """Per-adapter settings. Owned by exactly one adapter instance."""

    api_base_url: str
    timeout_ms: int = Field(60_000, gt=0)
    retry: RetryStrategy = Field(default_factory=RetryStrategy)
    default_model: str
    default_max_tokens: int = Field(4096, gt=0)
    default_temperature: float = Field(0.7, ge=0.0, le=2.0)

    model_config = ConfigDict(validate_assignment=True)
