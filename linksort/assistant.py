"""
Linksort chat assistant.

Wires an Agent to the link and folder tools for one user, builds the system
prompt from the user's folders and current page, and runs a converse turn
against a stored conversation.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .agent import Agent
from .anthropic_client import AnthropicClient
from .config import config
from .controllers import (
    FolderController,
    LinkController,
    MemoryFolderController,
    MemoryLinkController,
)
from .link_tools import (
    AddLinkToFolderTool,
    CreateFolderTool,
    DeleteFolderTool,
    GetLinksTool,
    GetLinkTool,
    RemoveLinkFromFolderTool,
    RenameFolderTool,
)
from .models import Message, PageContext, Role, StoredMessage, User, dump
from .ollama_client import OllamaClient
from .provider import ConverseStreamProvider
from .state import Store, store
from .stream import ConverseStream
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "It seems that, due to a technical issue, I failed to complete my task. I am very sorry."

SYSTEM_PROMPT = """\
## Identity

- Your task is to help users of Linksort, a web application, to organize and learn about their links.
- Provide helpful and insightful information about the contents of the user's links when you can, using the tools at your disposal.
- Only answer questions and commands that are about Linksort and/or the user's links and their contents. If the user asks unrelated question, remind them that your purpose is to help the user use Linksort and its features.
- Remember to always be friendly and cordial.

## Linksort Application Summary

Linksort is an open-source, AI-powered bookmarking application that helps users organize, analyze, and discover insights from their saved links. It combines traditional bookmark management with AI features for content analysis, summarization, and conversational interaction.

The user can always save a new link using the "New Link" button in the header, which is always present.

If the user runs into any issues, they can use the "Give Feedback" button in the header to report the issue.

## Available Pages and Features

- Home (/): saved links in condensed, tall, or tile view; filtering by favorites, annotations, folders, tags, or search terms; folder management; quick actions.
- Link (/links/:linkId): the link's content, AI-generated tags and summary.
- Link Edit (/links/:linkId/update): edit title, description, tags; favorite the link.
- Graph View (/graph): interactive graph of links grouped by tag.
- Account Settings (/account): profile, data export, account deletion, API access.
- Extensions (/extensions): browser extension downloads and installation guides.

## Example Requests

- "Explain this article" (when viewing a link)
- "Find my AI research papers"
- "Create a folder for machine learning"
- "Move this to my research folder"
- "Organize my recently saved links into folders"

## Current User

Below is some relevant information about the current user.

{user_summary}
"""


def _page_lines(page_context: Optional[PageContext], route_label: str, link_label: str, query_label: str) -> List[str]:
    if page_context is None:
        return []

    lines = []
    if page_context.route:
        lines.append(f"- {route_label}: {page_context.route}")
        if page_context.route.startswith("/links/") and len(page_context.route) > len("/links/"):
            link_id = page_context.route[len("/links/"):].split("/")[0]
            lines.append(f"- {link_label}: {link_id}")

    filters = {k: v for k, v in page_context.query.items() if v}
    if filters:
        lines.append(f"- {query_label}:")
        lines.extend(f"  - {k}: {v}" for k, v in filters.items())
    return lines


def user_summary(user: User, page_context: Optional[PageContext] = None) -> str:
    """The "Current User" section of the system prompt."""
    lines = [f"- The current user's name is {user.first_name}"]
    lines.extend(_page_lines(
        page_context,
        "The user is currently on page",
        "The user is currently viewing link ID",
        "Current page filters/parameters",
    ))
    folder_tree = json.dumps(dump(user.folder_tree), indent=2)
    lines.append(f"- The user's folder tree is this:\n{folder_tree}")
    return "\n".join(lines)


def to_agent_message(msg: StoredMessage) -> Message:
    """Replay form of a stored message; user text gets its page context appended."""
    message = Message(role=msg.role, is_tool_use=msg.is_tool_use, tool_use=msg.tool_use, text=msg.text)
    if msg.role != Role.USER or msg.is_tool_use or msg.page_context is None:
        return message

    lines = _page_lines(msg.page_context, "Current page", "Current link ID", "Page filters/parameters")
    if not lines:
        return message
    context = "\n".join(["Current page context:"] + lines)
    return message.model_copy(update={"text": f"{msg.text or ''}\n\n{context}"})


def new_provider() -> ConverseStreamProvider:
    """Provider for the configured backend."""
    if config.provider == "ollama":
        return OllamaClient()
    if config.provider == "anthropic":
        return AnthropicClient()
    raise ValueError(f"unknown provider {config.provider!r}")


@dataclass
class ConverseResult:
    messages: List[StoredMessage] = field(default_factory=list)
    fallback: bool = False


class AssistantClient:
    """
    Entry point for converse turns.

    Handles:
    - Tool registry construction for a user
    - History replay from the conversation store
    - Persisting the turn, including a fallback reply when the run produced no text
    """

    def __init__(
        self,
        store: Store,
        links: LinkController,
        folders: FolderController,
        provider: Optional[ConverseStreamProvider] = None,
    ):
        self.store = store
        self.links = links
        self.folders = folders
        self.provider = provider

    def get_provider(self) -> ConverseStreamProvider:
        if self.provider is None:
            self.provider = new_provider()
        return self.provider

    async def close(self):
        if self.provider is not None:
            await self.provider.close()

    def tools_for(self, user: User) -> ToolRegistry:
        return ToolRegistry([
            GetLinksTool(user, self.links),
            GetLinkTool(user, self.links),
            CreateFolderTool(user, self.folders),
            DeleteFolderTool(user, self.folders),
            RenameFolderTool(user, self.folders),
            AddLinkToFolderTool(user, self.links),
            RemoveLinkFromFolderTool(user, self.links),
        ])

    def new_agent(
        self,
        user: User,
        history: List[StoredMessage],
        user_message: StoredMessage,
        stream: ConverseStream,
    ) -> Agent:
        messages = [to_agent_message(m) for m in history]
        messages.append(to_agent_message(user_message))

        return Agent(
            system=SYSTEM_PROMPT.format(user_summary=user_summary(user, user_message.page_context)),
            messages=messages,
            tools=self.tools_for(user),
            provider=self.get_provider(),
            stream=stream,
        )

    async def converse(
        self,
        user: User,
        conversation_id: str,
        text: str,
        page_context: Optional[PageContext],
        stream: ConverseStream,
    ) -> ConverseResult:
        """
        Run one turn and store it.

        Runs on the same conversation are serialized. Errors from the agent
        are logged and end the turn with the fallback reply; whatever
        completed before the error is still stored.
        """
        async with self.store.conversation_lock(conversation_id):
            try:
                conversation = await self.store.get_conversation(conversation_id)
                user_message = StoredMessage(role=Role.USER, text=text, page_context=page_context)
                agent = self.new_agent(user, conversation.messages, user_message, stream)

                try:
                    await asyncio.wait_for(agent.act(), timeout=config.converse_timeout)
                except asyncio.TimeoutError:
                    logger.error(f"Converse timed out after {config.converse_timeout}s in conversation {conversation_id}")
                except Exception:
                    logger.exception(f"Agent failed in conversation {conversation_id}")
                finally:
                    result = await self._persist(conversation_id, user_message, page_context, agent)
            finally:
                await stream.close()

            return result

    async def _persist(
        self,
        conversation_id: str,
        user_message: StoredMessage,
        page_context: Optional[PageContext],
        agent: Agent,
    ) -> ConverseResult:
        new_messages = list(agent.new_messages)

        # A tool request without its response cannot be replayed
        if new_messages and new_messages[-1].tool_requests:
            new_messages.pop()

        fallback = not agent.final_text
        if fallback:
            if new_messages and new_messages[-1].role == Role.ASSISTANT:
                new_messages.pop()
            new_messages.append(Message(role=Role.ASSISTANT, text=FALLBACK_TEXT))

        plain_user = Message(role=Role.USER, text=user_message.text)
        stored = await self.store.put_messages(conversation_id, [plain_user] + new_messages, page_context)
        logger.info(f"Stored {len(stored)} messages in conversation {conversation_id} (fallback={fallback})")
        return ConverseResult(messages=stored, fallback=fallback)


# Global instance
assistant = AssistantClient(store, MemoryLinkController(store), MemoryFolderController(store))
