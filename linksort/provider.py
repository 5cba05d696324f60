"""
Model provider boundary.

A provider turns (system prompt, history, tool specs) into a stream of the
small event vocabulary below, which the StreamDecoder folds into a Message.
Concrete adapters live in anthropic_client and ollama_client.
"""

from dataclasses import dataclass
from enum import Enum
from typing import AsyncContextManager, AsyncIterator, List, Optional, Protocol, Union

from .models import Message, Role
from .tools import ToolSpec


class BlockKind(str, Enum):
    TEXT = "text"
    TOOL_USE = "tool_use"


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    GUARDRAIL_INTERVENED = "guardrail_intervened"
    CONTENT_FILTERED = "content_filtered"


def is_terminal(stop_reason: str) -> bool:
    """Only tool_use continues the loop; unknown reasons end it."""
    return stop_reason != StopReason.TOOL_USE.value


@dataclass
class MessageStart:
    role: Role


@dataclass
class ContentBlockStart:
    kind: BlockKind
    tool_use_id: Optional[str] = None
    name: Optional[str] = None


@dataclass
class ContentBlockDelta:
    """A text fragment, or a fragment of a tool call's JSON input."""
    kind: BlockKind
    value: str


@dataclass
class ContentBlockStop:
    pass


@dataclass
class MessageStop:
    stop_reason: str


StreamEvent = Union[MessageStart, ContentBlockStart, ContentBlockDelta, ContentBlockStop, MessageStop]


class ConverseStreamProvider(Protocol):
    """
    Streaming model backend.

    `converse_stream` is an async context manager; leaving it releases the
    underlying connection whether the events were drained or not.
    """

    def converse_stream(
        self,
        system: str,
        messages: List[Message],
        tools: List[ToolSpec],
    ) -> AsyncContextManager[AsyncIterator[StreamEvent]]:
        ...

    async def close(self) -> None:
        ...
