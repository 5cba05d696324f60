"""Live output channel between an agent run and the client connection."""

import asyncio
import logging
from typing import AsyncIterator, Optional

from .config import config
from .models import ConverseEvent, Message, ToolUseDelta

logger = logging.getLogger(__name__)

_CLOSED = object()


class ConverseStream:
    """
    Bounded, closable channel of ConverseEvents for one agent run.

    The run publishes; one consumer iterates. A consumer that goes away calls
    `detach()`, after which publishing is a no-op. A publish that cannot be
    delivered within `publish_timeout` detaches the stream as well, so a
    stalled consumer never hangs the run.
    """

    def __init__(self, maxsize: Optional[int] = None, publish_timeout: Optional[float] = None):
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=config.stream_buffer if maxsize is None else maxsize
        )
        self._publish_timeout = config.stream_publish_timeout if publish_timeout is None else publish_timeout
        self._closed = False
        self._detached = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    def detach(self):
        """Called by the consumer when it stops reading."""
        if not self._detached and not self._closed:
            logger.info("Converse stream consumer detached")
        self._detached = True

    async def _put(self, item) -> bool:
        if self._detached:
            return False
        try:
            await asyncio.wait_for(self._queue.put(item), timeout=self._publish_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Converse stream consumer stalled for {self._publish_timeout}s, detaching")
            self._detached = True
            return False

    async def publish(self, event: ConverseEvent):
        if self._closed:
            raise RuntimeError("publish on closed converse stream")
        await self._put(event)

    async def text(self, fragment: str):
        await self.publish(ConverseEvent(text_delta=fragment))

    async def tool_activity(self, message: Message):
        """Announce each tool request or response in a completed message."""
        for tool_use in message.tool_use or []:
            await self.publish(ConverseEvent(tool_use_delta=ToolUseDelta(
                id=tool_use.id,
                name=tool_use.name,
                type=tool_use.type,
                status=tool_use.response.status if tool_use.response else None,
            )))

    async def close(self):
        if self._closed:
            return
        self._closed = True
        if await self._put(_CLOSED):
            return

        # Detached: pending events are dropped so the end marker always lands
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[ConverseEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
