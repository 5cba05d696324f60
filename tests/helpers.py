"""Scripted provider and event builders shared by the tests."""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Tuple, Union

from linksort.models import Role
from linksort.provider import (
    BlockKind,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageStart,
    MessageStop,
    StreamEvent,
)

Round = Union[List[Any], Exception]


def text_round(*fragments: str, stop_reason: str = "end_turn") -> List[StreamEvent]:
    """Events for a plain text reply."""
    events: List[StreamEvent] = [MessageStart(role=Role.ASSISTANT)]
    if fragments:
        events.append(ContentBlockStart(kind=BlockKind.TEXT))
        events.extend(ContentBlockDelta(kind=BlockKind.TEXT, value=f) for f in fragments)
        events.append(ContentBlockStop())
    events.append(MessageStop(stop_reason=stop_reason))
    return events


def tool_round(*calls: Tuple[str, str, str], stop_reason: str = "tool_use") -> List[StreamEvent]:
    """Events for a reply requesting tools, given (id, name, input) triples."""
    events: List[StreamEvent] = [MessageStart(role=Role.ASSISTANT)]
    for tool_use_id, name, input in calls:
        events.append(ContentBlockStart(kind=BlockKind.TOOL_USE, tool_use_id=tool_use_id, name=name))
        events.append(ContentBlockDelta(kind=BlockKind.TOOL_USE, value=input))
        events.append(ContentBlockStop())
    events.append(MessageStop(stop_reason=stop_reason))
    return events


class FakeProvider:
    """Plays back one scripted event list (or exception) per model call."""

    def __init__(self, rounds: List[Round]):
        self.rounds = list(rounds)
        self.calls: List[Dict[str, Any]] = []
        self.opened = 0
        self.released = 0

    @asynccontextmanager
    async def converse_stream(self, system, messages, tools):
        self.calls.append({"system": system, "messages": list(messages), "tools": list(tools)})
        if not self.rounds:
            raise AssertionError("unexpected model call")

        script = self.rounds.pop(0)
        if isinstance(script, Exception):
            raise script

        async def events():
            for event in script:
                if isinstance(event, Exception):
                    raise event
                yield event

        self.opened += 1
        try:
            yield events()
        finally:
            self.released += 1

    async def close(self):
        pass
