"""In-memory user, link and conversation storage."""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from .errors import DomainError
from .models import Conversation, Link, Message, PageContext, Pagination, StoredMessage, User

logger = logging.getLogger(__name__)


class Store:
    """
    Process-local stand-in for the document store.

    Handles:
    - Users and their folder trees
    - Links, keyed by ID
    - Conversations and their append-only message sequences
    - One lock per conversation, so runs on the same conversation are serialized
    """

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._links: Dict[str, Link] = {}
        self._conversations: Dict[str, Conversation] = {}
        self._conversation_locks: Dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def create_user(self, user: User) -> User:
        async with self._lock:
            self._users[user.id] = user
            logger.info(f"Created user: {user.id}")
            return user

    async def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise DomainError("user not found", status_code=404)
        return user

    async def update_user(self, user: User) -> User:
        async with self._lock:
            if user.id not in self._users:
                raise DomainError("user not found", status_code=404)
            self._users[user.id] = user
            return user

    @property
    def user_count(self) -> int:
        """Number of known users."""
        return len(self._users)

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    async def create_link(self, link: Link) -> Link:
        async with self._lock:
            self._links[link.id] = link
            return link

    async def get_link(self, link_id: str) -> Link:
        link = self._links.get(link_id)
        if link is None:
            raise DomainError("link not found", status_code=404)
        return link

    async def update_link(self, link: Link) -> Link:
        async with self._lock:
            if link.id not in self._links:
                raise DomainError("link not found", status_code=404)
            link.updated_at = datetime.now()
            self._links[link.id] = link
            return link

    async def get_links_by_user(self, user: User) -> List[Link]:
        return [link for link in self._links.values() if link.user_id == user.id]

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        async with self._lock:
            self._conversations[conversation.id] = conversation
            self._conversation_locks[conversation.id] = asyncio.Lock()
            logger.info(f"Created conversation: {conversation.id}")
            return conversation

    async def get_conversation(self, conversation_id: str, pagination: Optional[Pagination] = None) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise DomainError("conversation not found", status_code=404)

        if pagination is None or pagination.size <= 0:
            return conversation.model_copy()

        # Pages count back from the newest message
        end = len(conversation.messages) - pagination.offset()
        start = max(end - pagination.limit(), 0)
        return conversation.model_copy(update={"messages": conversation.messages[start:max(end, 0)]})

    async def get_conversations_by_user(self, user: User) -> List[Conversation]:
        convs = [c for c in self._conversations.values() if c.user_id == user.id]
        return [
            c.model_copy(update={"messages": []})
            for c in sorted(convs, key=lambda c: c.updated_at, reverse=True)
        ]

    def conversation_lock(self, conversation_id: str) -> asyncio.Lock:
        """Lock held for the duration of one converse run."""
        return self._conversation_locks.setdefault(conversation_id, asyncio.Lock())

    async def put_messages(
        self,
        conversation_id: str,
        messages: List[Message],
        page_context: Optional[PageContext] = None,
    ) -> List[StoredMessage]:
        """
        Append messages with consecutive sequence numbers in one step.

        `page_context` is attached to user text messages only.
        """
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                raise DomainError("conversation not found", status_code=404)

            stored = []
            for msg in messages:
                stored.append(StoredMessage(
                    **msg.model_dump(),
                    sequence_number=conversation.length,
                    page_context=page_context if msg.role.value == "user" and not msg.is_tool_use else None,
                ))
                conversation.length += 1

            conversation.messages = conversation.messages + stored
            conversation.updated_at = datetime.now()
            logger.debug(f"Stored {len(stored)} messages in conversation {conversation_id}")
            return stored


# Global instance
store = Store()
