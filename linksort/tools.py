"""Tool contract and registry."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .models import ToolUseResponse, ToolUseStatus

logger = logging.getLogger(__name__)

TOOL_NOT_FOUND = "The selected tool does not exist."


@dataclass(frozen=True)
class ToolSpec:
    """What the model is told about a tool."""
    name: str
    description: str
    # JSON Schema for the tool's input
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


class Tool(Protocol):
    """
    A capability the model can invoke.

    `use` must report every failure through the returned response instead
    of raising, so the model can see the error and adapt.
    """

    def spec(self) -> ToolSpec:
        ...

    async def use(self, tool_use_id: str, input: str) -> ToolUseResponse:
        ...


def success(text: str) -> ToolUseResponse:
    return ToolUseResponse(status=ToolUseStatus.SUCCESS, text=text)


def error(text: str) -> ToolUseResponse:
    return ToolUseResponse(status=ToolUseStatus.ERROR, text=text)


class ToolRegistry:
    """
    Tools available to one agent run, keyed by spec name.

    Handles:
    - Spec listing for the provider's tool configuration
    - Dispatch by exact name, with unknown names reported as tool errors
    """

    def __init__(self, tools: Optional[List[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool):
        name = tool.spec().name
        if name in self._tools:
            raise ValueError(f"tool {name!r} is already registered")
        self._tools[name] = tool

    def specs(self) -> List[ToolSpec]:
        return [tool.spec() for tool in self._tools.values()]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def dispatch(self, name: str, tool_use_id: str, input: str) -> ToolUseResponse:
        """Run the named tool; never raises."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning(f"Model requested unknown tool {name!r}")
            return error(TOOL_NOT_FOUND)

        try:
            return await tool.use(tool_use_id, input)
        except Exception as e:
            logger.exception(f"Tool {name!r} raised instead of returning an error")
            return error(str(e))
