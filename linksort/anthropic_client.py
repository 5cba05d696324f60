"""Anthropic Messages API streaming client."""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from .config import config
from .errors import ProviderError
from .models import Message, Role, ToolUseStatus, ToolUseType
from .provider import (
    BlockKind,
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageStart,
    MessageStop,
    StreamEvent,
)
from .tools import ToolSpec

logger = logging.getLogger(__name__)


def map_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert history into Messages API content blocks."""
    result = []

    for msg in messages:
        content: List[Dict[str, Any]] = []

        if msg.is_tool_use and msg.tool_use:
            for tu in msg.tool_use:
                if tu.type == ToolUseType.REQUEST:
                    content.append({
                        "type": "tool_use",
                        "id": tu.id,
                        "name": tu.name,
                        "input": _tool_input(tu.request.text if tu.request else ""),
                    })
                elif tu.response is not None:
                    content.append({
                        "type": "tool_result",
                        "tool_use_id": tu.id,
                        "content": [{"type": "text", "text": tu.response.text}],
                        "is_error": tu.response.status == ToolUseStatus.ERROR,
                    })
        elif msg.text:
            content.append({"type": "text", "text": msg.text})

        result.append({"role": msg.role.value, "content": content})

    return result


def _tool_input(text: str) -> Dict[str, Any]:
    """Parsed tool input; the API requires an object even for bad JSON."""
    if not text:
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def map_tools(tools: List[ToolSpec]) -> Optional[List[Dict[str, Any]]]:
    if not tools:
        return None
    return [
        {
            "name": spec.name,
            "description": spec.description,
            "input_schema": spec.input_schema,
        }
        for spec in tools
    ]


class AnthropicClient:
    """
    Async client for the Anthropic Messages API with streaming support.

    Handles:
    - Request building from agent messages and tool specs
    - Server-sent event parsing into decoder events
    - Transport errors, raised as ProviderError
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(config.request_timeout, connect=10.0))
        self.base_url = config.anthropic_url.rstrip("/")

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": config.anthropic_api_key,
            "anthropic-version": config.anthropic_version,
            "content-type": "application/json",
        }

    def build_payload(self, system: str, messages: List[Message], tools: List[ToolSpec]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "system": system,
            "messages": map_messages(messages),
            "stream": True,
        }

        tool_config = map_tools(tools)
        if tool_config:
            payload["tools"] = tool_config
            # Let the model decide whether to call a tool or answer in text
            payload["tool_choice"] = {"type": "auto"}

        return payload

    @asynccontextmanager
    async def converse_stream(
        self,
        system: str,
        messages: List[Message],
        tools: List[ToolSpec],
    ) -> AsyncIterator[AsyncIterator[StreamEvent]]:
        """Open a streaming Messages call; the response is closed on exit."""
        payload = self.build_payload(system, messages, tools)
        logger.info(f"Starting chat stream: model={config.model}, messages={len(messages)}, tools={len(tools)}")

        try:
            async with self.client.stream(
                "POST",
                f"{self.base_url}/v1/messages",
                json=payload,
                headers=self._headers(),
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    logger.error(f"Anthropic HTTP error: {response.status_code}")
                    raise ProviderError(
                        f"Anthropic returned {response.status_code}: {body.decode(errors='replace')[:500]}",
                        status_code=response.status_code,
                    )

                events = self._events(response)
                try:
                    yield events
                finally:
                    await events.aclose()
        except httpx.HTTPError as e:
            logger.error(f"Anthropic stream error: {e}")
            raise ProviderError(f"Anthropic request failed: {e}") from e

    async def _events(self, response: httpx.Response) -> AsyncIterator[StreamEvent]:
        stop_reason = ""

        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue

            try:
                data = json.loads(line[5:].strip())
            except json.JSONDecodeError:
                logger.warning(f"Failed to parse event: {line[:100]}")
                continue

            event_type = data.get("type")

            if event_type == "message_start":
                role = data.get("message", {}).get("role", Role.ASSISTANT.value)
                yield MessageStart(role=Role(role))

            elif event_type == "content_block_start":
                block = data.get("content_block", {})
                if block.get("type") == "tool_use":
                    yield ContentBlockStart(
                        kind=BlockKind.TOOL_USE,
                        tool_use_id=block.get("id"),
                        name=block.get("name"),
                    )
                else:
                    yield ContentBlockStart(kind=BlockKind.TEXT)

            elif event_type == "content_block_delta":
                delta = data.get("delta", {})
                if delta.get("type") == "text_delta":
                    yield ContentBlockDelta(kind=BlockKind.TEXT, value=delta.get("text", ""))
                elif delta.get("type") == "input_json_delta":
                    yield ContentBlockDelta(kind=BlockKind.TOOL_USE, value=delta.get("partial_json", ""))

            elif event_type == "content_block_stop":
                yield ContentBlockStop()

            elif event_type == "message_delta":
                stop_reason = data.get("delta", {}).get("stop_reason") or stop_reason

            elif event_type == "message_stop":
                yield MessageStop(stop_reason=stop_reason)
                return

            elif event_type == "error":
                error = data.get("error", {})
                raise ProviderError(f"Anthropic stream error: {error.get('type')}: {error.get('message')}")
