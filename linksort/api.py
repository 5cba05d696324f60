"""
Conversation endpoints.

Provides conversation creation and retrieval plus the streaming converse
endpoint, which writes one JSON-encoded ConverseEvent per line while the
assistant works.
"""

import asyncio
import json
import logging
from typing import AsyncIterator, Optional, Set

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import StreamingResponse

from .assistant import FALLBACK_TEXT, ConverseResult, assistant
from .errors import DomainError
from .models import (
    Conversation,
    ConversationResponse,
    ConversationsResponse,
    ConverseEvent,
    ConverseRequest,
    Pagination,
    User,
    dump,
)
from .state import store
from .stream import ConverseStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Converse runs outlive client disconnects; keep them referenced until done
_running: Set[asyncio.Task] = set()


async def current_user(x_user_id: Optional[str] = Header(default=None)) -> User:
    """Resolve the requesting user. Stands in for cookie/session auth."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="missing user")
    try:
        return await store.get_user(x_user_id)
    except DomainError:
        raise HTTPException(status_code=401, detail="unknown user")


async def _owned_conversation(user: User, conversation_id: str, pagination: Optional[Pagination] = None) -> Conversation:
    try:
        conversation = await store.get_conversation(conversation_id, pagination)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if conversation.user_id != user.id:
        # Don't reveal that another user's conversation exists
        raise HTTPException(status_code=404, detail="conversation not found")
    return conversation


@router.post("/conversations", status_code=201)
async def create_conversation(user: User = Depends(current_user)):
    conversation = await store.create_conversation(Conversation(user_id=user.id))
    return dump(ConversationResponse(conversation=conversation))


@router.get("/conversations")
async def get_conversations(user: User = Depends(current_user)):
    conversations = await store.get_conversations_by_user(user)
    return dump(ConversationsResponse(conversations=conversations))


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    page: int = 0,
    size: int = 0,
    user: User = Depends(current_user),
):
    conversation = await _owned_conversation(user, conversation_id, Pagination(page=page, size=size))
    return dump(ConversationResponse(conversation=conversation))


@router.put("/conversations/{conversation_id}/converse")
async def converse(
    conversation_id: str,
    req: ConverseRequest,
    user: User = Depends(current_user),
):
    """
    Send a message and stream the assistant's reply.

    The run continues if the client disconnects, so the turn is always
    stored; only delivery to the client stops.
    """
    await _owned_conversation(user, conversation_id)

    stream = ConverseStream()
    task = asyncio.create_task(
        assistant.converse(user, conversation_id, req.message, req.page_context, stream)
    )
    _running.add(task)
    task.add_done_callback(_running.discard)

    logger.info(f"Converse: conversation={conversation_id}, user={user.id}")

    return StreamingResponse(
        _stream_events(stream, task),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


async def _stream_events(stream: ConverseStream, task: "asyncio.Task[ConverseResult]") -> AsyncIterator[str]:
    try:
        async for event in stream:
            yield _format_event(event)

        result = await task
        if result.fallback:
            yield _format_event(ConverseEvent(text_delta=FALLBACK_TEXT))
    finally:
        # No-op once the stream finished; otherwise the client went away
        stream.detach()


def _format_event(event: ConverseEvent) -> str:
    return json.dumps(dump(event, exclude_none=True)) + "\n"
