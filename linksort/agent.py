"""
Core agent loop.

Each round calls the model provider with the system prompt, the full
history and the tool specs, decodes the streamed reply into a Message and
appends it. When the reply asks for tools, they are run in order and their
results appended as one user message, and the next round starts. The run
ends on any stop reason other than tool_use.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from .config import config
from .decoder import StreamDecoder
from .models import Message, Role, ToolUse, ToolUseType
from .provider import ConverseStreamProvider, is_terminal
from .stream import ConverseStream
from .tools import ToolRegistry

logger = logging.getLogger(__name__)


def trim(messages: List[Message]) -> List[Message]:
    """Drop a leading tool-response message whose request is no longer in the history."""
    if messages and messages[0].is_tool_response:
        return messages[1:]
    return messages


class Agent:
    """
    One agent run over a conversation.

    Tracks:
    - The conversation history (append-only during the run)
    - The messages added by this run, in order
    - The live output stream, closed when the run ends
    """

    def __init__(
        self,
        system: str,
        messages: List[Message],
        tools: ToolRegistry,
        provider: ConverseStreamProvider,
        stream: Optional[ConverseStream] = None,
        max_iterations: Optional[int] = None,
    ):
        self.system = system
        self.messages: List[Message] = trim(list(messages))
        self.tools = tools
        self.provider = provider
        self.stream = stream if stream is not None else ConverseStream()
        self.max_iterations = max_iterations or config.max_iterations
        self.new_messages: List[Message] = []
        self.iterations = 0

    def _append(self, message: Message):
        self.messages.append(message)
        self.new_messages.append(message)

    @property
    def final_text(self) -> str:
        """Text of the trailing assistant message, if the run ended on one."""
        if self.messages and self.messages[-1].role == Role.ASSISTANT and not self.messages[-1].is_tool_use:
            return self.messages[-1].text or ""
        return ""

    async def act(self) -> List[Message]:
        """
        Run rounds until a terminal stop reason.

        Returns the messages this run appended. Provider and decoding errors
        propagate; so does cancellation, with the in-flight round discarded.
        """
        try:
            while True:
                if self.iterations >= self.max_iterations:
                    logger.warning(f"Stopping agent after {self.iterations} iterations")
                    break
                self.iterations += 1

                message, stop_reason = await self._round()
                self._append(message)

                if is_terminal(stop_reason):
                    logger.info(f"Agent finished after {self.iterations} iterations (stop_reason={stop_reason})")
                    break

                if not message.tool_requests:
                    logger.warning("Model stopped for tool use without requesting a tool")
                    break

                await self.stream.tool_activity(message)
                response = await self._use_tools(message)
                self._append(response)
                await self.stream.tool_activity(response)

        except asyncio.CancelledError:
            logger.info(f"Agent cancelled during iteration {self.iterations}")
            raise
        finally:
            await self.stream.close()

        return self.new_messages

    async def _round(self) -> Tuple[Message, str]:
        """Call the model once and decode its reply."""
        logger.info(f"Calling model [iteration={self.iterations}, messages={len(self.messages)}, tools={len(self.tools)}]")

        decoder = StreamDecoder(self.stream)
        async with self.provider.converse_stream(self.system, self.messages, self.tools.specs()) as events:
            async for event in events:
                await decoder.feed(event)

        message = decoder.finish()
        return message, decoder.stop_reason

    async def _use_tools(self, message: Message) -> Message:
        """Run every requested tool in order and collect the responses."""
        responses: List[ToolUse] = []

        for request in message.tool_requests:
            logger.info(f"Calling tool {request.name!r} (id={request.id})")
            result = await self.tools.dispatch(
                request.name,
                request.id,
                request.request.text if request.request else "",
            )
            logger.info(f"Tool {request.name!r} response: status={result.status.value}")

            responses.append(ToolUse(
                id=request.id,
                name=request.name,
                type=ToolUseType.RESPONSE,
                response=result,
            ))

        return Message(role=Role.USER, is_tool_use=True, tool_use=responses)
