"""Ollama API streaming client."""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .config import config
from .errors import ProviderError
from .models import Message, Role, ToolUseType
from .provider import (
    BlockKind,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageStart,
    MessageStop,
    StopReason,
    StreamEvent,
)
from .tools import ToolSpec

logger = logging.getLogger(__name__)

_DONE_REASONS = {
    "stop": StopReason.END_TURN.value,
    "length": StopReason.MAX_TOKENS.value,
}


def map_messages(system: str, messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert history into Ollama chat messages (tool results become `tool` messages)."""
    result: List[Dict[str, Any]] = [{"role": "system", "content": system}]

    for msg in messages:
        if not msg.is_tool_use:
            result.append({"role": msg.role.value, "content": msg.text or ""})
            continue

        requests = [tu for tu in msg.tool_use or [] if tu.type == ToolUseType.REQUEST]
        if requests:
            result.append({
                "role": "assistant",
                "content": "",
                "tool_calls": [
                    {
                        "id": tu.id,
                        "function": {
                            "name": tu.name,
                            "arguments": _arguments(tu.request.text if tu.request else ""),
                        },
                    }
                    for tu in requests
                ],
            })

        for tu in msg.tool_use or []:
            if tu.type == ToolUseType.RESPONSE and tu.response is not None:
                result.append({
                    "role": "tool",
                    "tool_name": tu.name,
                    "content": tu.response.text,
                })

    return result


def _arguments(text: str) -> Dict[str, Any]:
    try:
        value = json.loads(text) if text else {}
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def map_tools(tools: List[ToolSpec]) -> Optional[List[Dict[str, Any]]]:
    if not tools:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": spec.name,
                "description": spec.description,
                "parameters": spec.input_schema,
            },
        }
        for spec in tools
    ]


class OllamaClient:
    """
    Async client for Ollama API with streaming support.

    Handles:
    - Streaming chat completions, translated into decoder events
    - Tool call detection (Ollama returns whole tool_calls, emitted as complete blocks)
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(config.request_timeout, connect=10.0))
        self.base_url = config.ollama_url.rstrip("/")

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    @asynccontextmanager
    async def converse_stream(
        self,
        system: str,
        messages: List[Message],
        tools: List[ToolSpec],
    ) -> AsyncIterator[AsyncIterator[StreamEvent]]:
        """Open a streaming chat call; the response is closed on exit."""
        payload: Dict[str, Any] = {
            "model": config.ollama_model,
            "messages": map_messages(system, messages),
            "stream": True,
        }

        tool_config = map_tools(tools)
        if tool_config:
            payload["tools"] = tool_config

        logger.info(f"Starting chat stream: model={config.ollama_model}, messages={len(messages)}, tools={len(tools)}")

        try:
            async with self.client.stream(
                "POST",
                f"{self.base_url}/api/chat",
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    logger.error(f"Ollama HTTP error: {response.status_code}")
                    raise ProviderError(
                        f"Ollama returned {response.status_code}: {body.decode(errors='replace')[:500]}",
                        status_code=response.status_code,
                    )

                events = self._events(response)
                try:
                    yield events
                finally:
                    await events.aclose()
        except httpx.HTTPError as e:
            logger.error(f"Ollama stream error: {e}")
            raise ProviderError(f"Ollama request failed: {e}") from e

    async def _events(self, response: httpx.Response) -> AsyncIterator[StreamEvent]:
        started = False
        text_open = False
        used_tools = False

        async for line in response.aiter_lines():
            if not line:
                continue

            try:
                chunk = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse chunk: {line[:100]}")
                continue

            if chunk.get("error"):
                raise ProviderError(f"Ollama stream error: {chunk['error']}")

            message = chunk.get("message", {})

            if not started:
                started = True
                yield MessageStart(role=Role(message.get("role", Role.ASSISTANT.value)))

            content = message.get("content", "")
            if content:
                if not text_open:
                    text_open = True
                    yield ContentBlockStart(kind=BlockKind.TEXT)
                yield ContentBlockDelta(kind=BlockKind.TEXT, value=content)

            for tc in message.get("tool_calls", []):
                if text_open:
                    text_open = False
                    yield ContentBlockStop()

                func = tc.get("function", {})
                arguments = func.get("arguments", {})
                if not isinstance(arguments, str):
                    arguments = json.dumps(arguments)

                used_tools = True
                yield ContentBlockStart(
                    kind=BlockKind.TOOL_USE,
                    tool_use_id=tc.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                    name=func.get("name", ""),
                )
                yield ContentBlockDelta(kind=BlockKind.TOOL_USE, value=arguments)
                yield ContentBlockStop()

            if chunk.get("done"):
                if text_open:
                    yield ContentBlockStop()
                if used_tools:
                    stop_reason = StopReason.TOOL_USE.value
                else:
                    stop_reason = _DONE_REASONS.get(chunk.get("done_reason", "stop"), chunk.get("done_reason", ""))
                logger.debug(f"Ollama done: total_duration={chunk.get('total_duration')}, eval_count={chunk.get('eval_count')}")
                yield MessageStop(stop_reason=stop_reason)
                return
