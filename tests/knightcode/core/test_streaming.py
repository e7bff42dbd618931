import pytest

from knightcode.core.streaming import StreamAssembler
from knightcode.core.types import StreamEventType, Usage


def test_full_event_sequence() -> None:
    assembler = StreamAssembler('msg-1', 'model-a')
    events = assembler.open()
    events += assembler.add_text('Hel')
    events += assembler.add_text('')
    events += assembler.add_text('lo')
    assembler.stop_reason = 'stop'
    assembler.usage = Usage(input_tokens=3, output_tokens=2)
    events += assembler.close()

    assert [e.type for e in events] == [
        StreamEventType.message_start,
        StreamEventType.content_block_start,
        StreamEventType.content_block_delta,
        StreamEventType.content_block_delta,
        StreamEventType.content_block_stop,
        StreamEventType.message_delta,
        StreamEventType.message_stop,
    ]
    final = events[-1].message
    assert final is not None
    assert final.text == 'Hello'
    assert final.stop_reason == 'stop'
    assert final.usage.output_tokens == 2  # noqa: PLR2004
    assert events[-2].stop_reason == 'stop'


def test_close_without_text_still_frames_the_stream() -> None:
    events = StreamAssembler('msg-2', 'model-a').close()
    assert events[0].type is StreamEventType.message_start
    assert events[-1].type is StreamEventType.message_stop
    assert events[-1].message is not None
    assert events[-1].message.content == []


def test_open_and_close_are_idempotent() -> None:
    assembler = StreamAssembler('msg-3', 'model-a')
    assert len(assembler.open()) == 2  # noqa: PLR2004
    assert assembler.open() == []
    assert assembler.close()
    assert assembler.close() == []


def test_text_after_close_is_rejected() -> None:
    assembler = StreamAssembler('msg-4', 'model-a')
    assembler.close()
    with pytest.raises(RuntimeError):
        assembler.add_text('late')
