import asyncio
import json
from contextlib import asynccontextmanager

import pytest

from linksort.agent import Agent, trim
from linksort.errors import DomainError, ProviderError, StreamDecodeError
from linksort.link_tools import GetLinksTool, GetLinkTool
from linksort.models import (
    Message,
    Role,
    ToolUse,
    ToolUseResponse,
    ToolUseStatus,
    ToolUseType,
)
from linksort.provider import BlockKind, ContentBlockDelta, ContentBlockStart, MessageStart
from linksort.stream import ConverseStream
from linksort.tools import ToolRegistry, ToolSpec, success

from helpers import FakeProvider, text_round, tool_round


class RecordingTool:
    """Succeeds with a fixed text and records the ids it was called with."""

    def __init__(self, name: str, text: str = "ok"):
        self.name = name
        self.text = text
        self.calls = []

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=f"{self.name} tool")

    async def use(self, tool_use_id: str, input: str):
        self.calls.append((tool_use_id, input))
        return success(self.text)


class DownLinkController:
    async def get_links(self, user, req):
        raise DomainError("db unavailable", status_code=500)


def _user_message(text: str = "hi") -> Message:
    return Message(role=Role.USER, text=text)


def _agent(provider, tools=None, messages=None, stream=None, max_iterations=None) -> Agent:
    return Agent(
        system="You are helpful.",
        messages=messages if messages is not None else [_user_message()],
        tools=tools or ToolRegistry(),
        provider=provider,
        stream=stream or ConverseStream(maxsize=100),
        max_iterations=max_iterations,
    )


# ============================================================================
# Basic rounds
# ============================================================================

@pytest.mark.asyncio
async def test_text_reply_ends_run_after_one_round():
    provider = FakeProvider([text_round("Hello", " there")])
    agent = _agent(provider)

    new = await agent.act()

    assert len(provider.calls) == 1
    assert provider.calls[0]["system"] == "You are helpful."
    assert len(new) == 1
    assert new[0].role == Role.ASSISTANT
    assert new[0].text == "Hello there"
    assert agent.final_text == "Hello there"
    assert len(agent.messages) == 2
    assert agent.stream.closed


@pytest.mark.asyncio
async def test_prior_history_grows_by_one_on_text_reply():
    history = [
        _user_message("first"),
        Message(role=Role.ASSISTANT, text="answer"),
        _user_message("second"),
    ]
    provider = FakeProvider([text_round("done")])
    agent = _agent(provider, messages=history)

    await agent.act()

    assert len(agent.messages) == len(history) + 1
    assert agent.messages[: len(history)] == history
    assert len(provider.calls[0]["messages"]) == len(history)


@pytest.mark.asyncio
async def test_tools_run_in_order_and_results_follow_requests():
    first, second = RecordingTool("first", "one"), RecordingTool("second", "two")
    provider = FakeProvider([
        tool_round(("a", "first", '{"n": 1}'), ("b", "second", '{"n": 2}')),
        text_round("All done"),
    ])
    agent = _agent(provider, tools=ToolRegistry([first, second]))

    new = await agent.act()

    assert len(new) == 3
    request, response, reply = new
    assert request.role == Role.ASSISTANT and request.is_tool_use
    assert response.role == Role.USER and response.is_tool_response
    assert [tu.id for tu in response.tool_use] == ["a", "b"]
    assert [tu.response.text for tu in response.tool_use] == ["one", "two"]
    assert all(tu.type == ToolUseType.RESPONSE for tu in response.tool_use)
    assert reply.text == "All done"

    assert first.calls == [("a", '{"n": 1}')]
    assert second.calls == [("b", '{"n": 2}')]

    # Second round sees the request and its results
    assert len(provider.calls[1]["messages"]) == 3


@pytest.mark.asyncio
async def test_tool_specs_are_sent_every_round():
    tool = RecordingTool("lookup")
    provider = FakeProvider([tool_round(("a", "lookup", "{}")), text_round("ok")])
    await _agent(provider, tools=ToolRegistry([tool])).act()

    assert [[s.name for s in call["tools"]] for call in provider.calls] == [["lookup"], ["lookup"]]


@pytest.mark.asyncio
async def test_non_tool_use_stop_reason_ends_run():
    provider = FakeProvider([text_round("I can't help with that", stop_reason="content_filtered")])
    agent = _agent(provider)

    new = await agent.act()

    assert len(provider.calls) == 1
    assert new[0].text == "I can't help with that"


@pytest.mark.asyncio
async def test_terminal_stop_reason_wins_over_tool_requests():
    tool = RecordingTool("lookup")
    provider = FakeProvider([tool_round(("a", "lookup", "{}"), stop_reason="max_tokens")])
    agent = _agent(provider, tools=ToolRegistry([tool]))

    new = await agent.act()

    assert len(new) == 1
    assert new[0].is_tool_use
    assert tool.calls == []


@pytest.mark.asyncio
async def test_unknown_tool_result_goes_back_to_model():
    provider = FakeProvider([tool_round(("a", "nonexistent", "{}")), text_round("Sorry")])
    agent = _agent(provider)

    new = await agent.act()

    result = new[1].tool_use[0].response
    assert result.status == ToolUseStatus.ERROR
    assert result.text == "The selected tool does not exist."
    assert new[2].text == "Sorry"


@pytest.mark.asyncio
async def test_get_links_round_trip(user, links, link_controller):
    provider = FakeProvider([
        tool_round(("t1", "get_links", '{"search": "asyncio"}')),
        text_round("You saved one link about asyncio."),
    ])
    agent = _agent(provider, tools=ToolRegistry([GetLinksTool(user, link_controller)]))

    new = await agent.act()

    result = new[1].tool_use[0].response
    assert result.status == ToolUseStatus.SUCCESS
    assert [l["title"] for l in json.loads(result.text)["links"]] == ["Python asyncio"]
    assert agent.final_text == "You saved one link about asyncio."


@pytest.mark.asyncio
async def test_bad_tool_input_is_answered_and_run_continues(user, link_controller):
    try:
        json.loads("{not json")
    except ValueError as e:
        parse_error = str(e)

    provider = FakeProvider([
        tool_round(("t1", "get_link", "{not json")),
        text_round("Let me try that again."),
    ])
    agent = _agent(provider, tools=ToolRegistry([GetLinkTool(user, link_controller)]))

    new = await agent.act()

    assert len(new) == 3
    response = new[1]
    assert response.is_tool_response
    assert response.tool_use[0].id == "t1"
    assert response.tool_use[0].response.status == ToolUseStatus.ERROR
    assert response.tool_use[0].response.text == parse_error
    assert len(provider.calls) == 2
    assert provider.calls[1]["messages"][-1] == response


@pytest.mark.asyncio
async def test_controller_error_does_not_abort_run(user):
    provider = FakeProvider([
        tool_round(("t1", "get_links", "{}")),
        text_round("I couldn't reach your links right now."),
    ])
    agent = _agent(provider, tools=ToolRegistry([GetLinksTool(user, DownLinkController())]))

    new = await agent.act()

    result = new[1].tool_use[0].response
    assert result.status == ToolUseStatus.ERROR
    assert result.text == "db unavailable"
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_stream_carries_text_and_tool_activity():
    stream = ConverseStream(maxsize=100)
    provider = FakeProvider([tool_round(("a", "lookup", "{}")), text_round("Found ", "it")])
    await _agent(provider, tools=ToolRegistry([RecordingTool("lookup")]), stream=stream).act()

    events = [event async for event in stream]
    tool_events = [e.tool_use_delta for e in events if e.tool_use_delta]
    assert [(d.id, d.type) for d in tool_events] == [
        ("a", ToolUseType.REQUEST),
        ("a", ToolUseType.RESPONSE),
    ]
    assert tool_events[1].status == ToolUseStatus.SUCCESS
    assert "".join(e.text_delta for e in events if e.text_delta) == "Found it"


# ============================================================================
# Failures
# ============================================================================

@pytest.mark.asyncio
async def test_provider_error_propagates_and_keeps_completed_rounds():
    provider = FakeProvider([
        tool_round(("a", "lookup", "{}")),
        ProviderError("throttled", status_code=429),
    ])
    agent = _agent(provider, tools=ToolRegistry([RecordingTool("lookup")]))

    with pytest.raises(ProviderError):
        await agent.act()

    assert len(agent.new_messages) == 2
    assert agent.stream.closed


@pytest.mark.asyncio
async def test_error_mid_stream_discards_partial_message():
    provider = FakeProvider([[
        MessageStart(role=Role.ASSISTANT),
        ContentBlockStart(kind=BlockKind.TEXT),
        ContentBlockDelta(kind=BlockKind.TEXT, value="partial"),
        ProviderError("connection reset"),
    ]])
    agent = _agent(provider)

    with pytest.raises(ProviderError):
        await agent.act()

    assert agent.new_messages == []
    assert provider.opened == provider.released == 1


@pytest.mark.asyncio
async def test_stream_without_message_stop_is_a_decode_error():
    provider = FakeProvider([[MessageStart(role=Role.ASSISTANT)]])
    agent = _agent(provider)

    with pytest.raises(StreamDecodeError):
        await agent.act()
    assert agent.new_messages == []


@pytest.mark.asyncio
async def test_cancellation_releases_provider_stream():
    entered = asyncio.Event()

    class HangingProvider(FakeProvider):
        """Opens a stream, sends message-start, then never finishes."""

        @asynccontextmanager
        async def converse_stream(self, system, messages, tools):
            async def events():
                yield MessageStart(role=Role.ASSISTANT)
                entered.set()
                await asyncio.Event().wait()

            self.opened += 1
            try:
                yield events()
            finally:
                self.released += 1

    provider = HangingProvider([])
    agent = _agent(provider)
    task = asyncio.create_task(agent.act())
    await entered.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert agent.new_messages == []
    assert provider.opened == provider.released == 1
    assert agent.stream.closed


@pytest.mark.asyncio
async def test_iteration_cap_stops_endless_tool_use():
    provider = FakeProvider([tool_round((f"t{i}", "lookup", "{}")) for i in range(3)])
    agent = _agent(provider, tools=ToolRegistry([RecordingTool("lookup")]), max_iterations=3)

    new = await agent.act()

    assert agent.iterations == 3
    assert len(provider.calls) == 3
    assert len(new) == 6
    assert agent.final_text == ""


# ============================================================================
# History trimming
# ============================================================================

def _tool_response_message() -> Message:
    return Message(
        role=Role.USER,
        is_tool_use=True,
        tool_use=[ToolUse(
            id="old",
            name="get_links",
            type=ToolUseType.RESPONSE,
            response=ToolUseResponse(status=ToolUseStatus.SUCCESS, text="[]"),
        )],
    )


def test_trim_drops_leading_tool_response():
    messages = [_tool_response_message(), Message(role=Role.ASSISTANT, text="hi"), _user_message()]
    assert trim(messages) == messages[1:]


def test_trim_keeps_history_starting_with_user_text():
    messages = [_user_message(), Message(role=Role.ASSISTANT, text="hi")]
    assert trim(messages) == messages
    assert trim([]) == []


@pytest.mark.asyncio
async def test_agent_sends_trimmed_history():
    provider = FakeProvider([text_round("ok")])
    agent = _agent(provider, messages=[_tool_response_message(), _user_message()])

    await agent.act()

    assert provider.calls[0]["messages"] == [_user_message()]
