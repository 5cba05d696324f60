import pytest

from linksort.decoder import StreamDecoder
from linksort.errors import StreamDecodeError
from linksort.models import Role, ToolUseType
from linksort.provider import (
    BlockKind,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageStart,
    MessageStop,
)
from linksort.stream import ConverseStream

from helpers import text_round, tool_round


async def _decode(events, stream=None):
    decoder = StreamDecoder(stream)
    for event in events:
        await decoder.feed(event)
    return decoder


@pytest.mark.asyncio
async def test_text_fragments_are_joined_and_published():
    stream = ConverseStream(maxsize=10)
    decoder = await _decode(text_round("Hel", "lo", "!"), stream)

    message = decoder.finish()
    assert message.role == Role.ASSISTANT
    assert message.text == "Hello!"
    assert not message.is_tool_use
    assert decoder.stop_reason == "end_turn"

    await stream.close()
    published = [event.text_delta async for event in stream]
    assert published == ["Hel", "lo", "!"]


@pytest.mark.asyncio
async def test_empty_reply_is_an_empty_text_message():
    decoder = await _decode(text_round())
    message = decoder.finish()
    assert message.text == ""
    assert not message.is_tool_use


@pytest.mark.asyncio
async def test_tool_use_blocks_keep_order_and_input():
    decoder = await _decode(tool_round(("t1", "get_links", "{}"), ("t2", "get_link", '{"id": "x"}')))

    message = decoder.finish()
    assert message.is_tool_use
    assert message.text is None
    assert [tu.id for tu in message.tool_use] == ["t1", "t2"]
    assert all(tu.type == ToolUseType.REQUEST for tu in message.tool_use)
    assert message.tool_use[1].request.text == '{"id": "x"}'
    assert decoder.stop_reason == "tool_use"


@pytest.mark.asyncio
async def test_repeated_tool_use_start_is_deduplicated():
    events = [
        MessageStart(role=Role.ASSISTANT),
        ContentBlockStart(kind=BlockKind.TOOL_USE, tool_use_id="t1", name="get_links"),
        ContentBlockStart(kind=BlockKind.TOOL_USE, tool_use_id="t1", name="get_links"),
        ContentBlockDelta(kind=BlockKind.TOOL_USE, value="{}"),
        ContentBlockStop(),
        MessageStop(stop_reason="tool_use"),
    ]
    message = (await _decode(events)).finish()
    assert len(message.tool_use) == 1


@pytest.mark.asyncio
async def test_tool_input_fragments_are_concatenated():
    events = [
        MessageStart(role=Role.ASSISTANT),
        ContentBlockStart(kind=BlockKind.TOOL_USE, tool_use_id="t1", name="create_folder"),
        ContentBlockDelta(kind=BlockKind.TOOL_USE, value='{"na'),
        ContentBlockDelta(kind=BlockKind.TOOL_USE, value='me": "Rea'),
        ContentBlockDelta(kind=BlockKind.TOOL_USE, value='ding"}'),
        ContentBlockStop(),
        MessageStop(stop_reason="tool_use"),
    ]
    message = (await _decode(events)).finish()
    assert message.tool_use[0].request.text == '{"name": "Reading"}'


@pytest.mark.asyncio
async def test_text_before_tool_use_is_not_kept_in_message():
    events = [
        MessageStart(role=Role.ASSISTANT),
        ContentBlockStart(kind=BlockKind.TEXT),
        ContentBlockDelta(kind=BlockKind.TEXT, value="Let me look."),
        ContentBlockStop(),
        ContentBlockStart(kind=BlockKind.TOOL_USE, tool_use_id="t1", name="get_links"),
        ContentBlockDelta(kind=BlockKind.TOOL_USE, value="{}"),
        ContentBlockStop(),
        MessageStop(stop_reason="tool_use"),
    ]
    message = (await _decode(events)).finish()
    assert message.is_tool_use
    assert message.text is None


@pytest.mark.asyncio
async def test_tool_input_without_tool_use_start_is_a_decode_error():
    decoder = StreamDecoder()
    await decoder.feed(MessageStart(role=Role.ASSISTANT))
    with pytest.raises(StreamDecodeError):
        await decoder.feed(ContentBlockDelta(kind=BlockKind.TOOL_USE, value="{}"))


@pytest.mark.asyncio
async def test_finish_before_message_stop_is_a_decode_error():
    decoder = await _decode([MessageStart(role=Role.ASSISTANT), ContentBlockStart(kind=BlockKind.TEXT)])
    with pytest.raises(StreamDecodeError):
        decoder.finish()


@pytest.mark.asyncio
async def test_feed_returns_stop_reason_on_message_stop():
    decoder = StreamDecoder()
    assert await decoder.feed(MessageStart(role=Role.ASSISTANT)) is None
    assert await decoder.feed(MessageStop(stop_reason="content_filtered")) == "content_filtered"
    assert decoder.done
