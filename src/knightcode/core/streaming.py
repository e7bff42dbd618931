"""core.streaming

Turns incremental text fragments into the normalised `StreamEvent` sequence.

Every stream produced through `StreamAssembler` has the shape

    message_start, content_block_start, content_block_delta*,
    content_block_stop, message_delta, message_stop

regardless of how many fragments the backend delivered (zero included).
"""

from __future__ import annotations

from knightcode.core.types import (
    CompletionResponse,
    ContentBlock,
    StreamEvent,
    StreamEventType,
    Usage,
)


class StreamAssembler:
    """Accumulates fragments of one streamed message and emits framed events."""

    def __init__(self, message_id: str, model: str) -> None:
        self.message_id = message_id
        self.model = model
        self._parts: list[str] = []
        self._opened = False
        self._closed = False
        self.usage = Usage()
        self.stop_reason: str | None = None

    @property
    def opened(self) -> bool:
        return self._opened

    def snapshot(self) -> CompletionResponse:
        text = ''.join(self._parts)
        return CompletionResponse(
            id=self.message_id,
            model=self.model,
            usage=self.usage,
            content=[ContentBlock(text=text)] if text else [],
            stop_reason=self.stop_reason,
        )

    def open(self) -> list[StreamEvent]:
        """Start the message; a no-op once started."""
        if self._opened:
            return []
        self._opened = True
        return [
            StreamEvent(type=StreamEventType.message_start, message=self.snapshot()),
            StreamEvent(type=StreamEventType.content_block_start, index=0),
        ]

    def add_text(self, text: str) -> list[StreamEvent]:
        if self._closed:
            raise RuntimeError('stream already closed')
        events = self.open()
        if text:
            self._parts.append(text)
            events.append(
                StreamEvent(type=StreamEventType.content_block_delta, index=0, delta=ContentBlock(text=text)),
            )
        return events

    def close(self) -> list[StreamEvent]:
        """Finish the message with the current `stop_reason` and `usage`; a no-op once finished."""
        if self._closed:
            return []
        events = self.open()
        self._closed = True
        events += [
            StreamEvent(type=StreamEventType.content_block_stop, index=0),
            StreamEvent(type=StreamEventType.message_delta, stop_reason=self.stop_reason, usage=self.usage),
            StreamEvent(type=StreamEventType.message_stop, message=self.snapshot()),
        ]
        return events
