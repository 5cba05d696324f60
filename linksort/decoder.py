"""Folds a provider event stream into one Message."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import StreamDecodeError
from .models import Message, Role, ToolUse, ToolUseRequest, ToolUseType
from .provider import (
    BlockKind,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageStart,
    MessageStop,
    StreamEvent,
)
from .stream import ConverseStream

logger = logging.getLogger(__name__)


@dataclass
class _PendingToolUse:
    id: str
    name: str
    input: List[str] = field(default_factory=list)


class StreamDecoder:
    """
    Builder for the message produced by one model round.

    Owned by a single round and discarded if the round aborts. Text
    fragments are forwarded to the live stream as they arrive.
    """

    def __init__(self, stream: Optional[ConverseStream] = None):
        self._stream = stream
        self._role: Optional[Role] = None
        self._text: Optional[List[str]] = None
        self._tool_uses: Optional[List[_PendingToolUse]] = None
        self._open_block: Optional[BlockKind] = None
        self.stop_reason: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.stop_reason is not None

    @property
    def is_tool_use(self) -> bool:
        return self._tool_uses is not None

    async def feed(self, event: StreamEvent) -> Optional[str]:
        """Apply one event; returns the stop reason once message-stop arrives."""
        if self.done:
            logger.debug(f"Ignoring event after message stop: {type(event).__name__}")
            return self.stop_reason

        if isinstance(event, MessageStart):
            self._role = event.role

        elif isinstance(event, ContentBlockStart):
            self._open_block = event.kind
            if event.kind == BlockKind.TOOL_USE:
                self._start_tool_use(event)

        elif isinstance(event, ContentBlockDelta):
            if event.kind == BlockKind.TEXT:
                await self._append_text(event.value)
            else:
                self._append_tool_input(event.value)

        elif isinstance(event, ContentBlockStop):
            self._open_block = None

        elif isinstance(event, MessageStop):
            self.stop_reason = event.stop_reason or ""
            return self.stop_reason

        else:
            raise StreamDecodeError(f"unexpected stream event {event!r}")

        return None

    def _start_tool_use(self, event: ContentBlockStart):
        if not event.tool_use_id or not event.name:
            raise StreamDecodeError("tool use block started without an id and name")

        if self._tool_uses is None:
            self._tool_uses = []

        # Providers may re-announce the same block
        if any(tu.id == event.tool_use_id for tu in self._tool_uses):
            return

        self._tool_uses.append(_PendingToolUse(id=event.tool_use_id, name=event.name))

    async def _append_text(self, fragment: str):
        if self._text is None:
            self._text = []
        self._text.append(fragment)
        if self._stream is not None:
            await self._stream.text(fragment)

    def _append_tool_input(self, fragment: str):
        if not self._tool_uses:
            raise StreamDecodeError("tool input delta received before any tool use block started")
        self._tool_uses[-1].input.append(fragment)

    def finish(self) -> Message:
        """Build the completed message. Requires message-stop to have been seen."""
        if not self.done:
            raise StreamDecodeError("stream ended before message stop")

        role = self._role or Role.ASSISTANT

        # A message holds one kind of content; text streamed before a tool
        # call was already shown live and is not kept.
        if self._tool_uses:
            return Message(
                role=role,
                is_tool_use=True,
                tool_use=[
                    ToolUse(
                        id=tu.id,
                        name=tu.name,
                        type=ToolUseType.REQUEST,
                        request=ToolUseRequest(text="".join(tu.input)),
                    )
                    for tu in self._tool_uses
                ],
            )

        return Message(role=role, text="".join(self._text or []))
