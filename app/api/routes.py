"""FastAPI routes."""
import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Dict
from fastapi import APIRouter, HTTPException, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse
from app.api.dependencies import get_draft_store, get_turn_runner
from app.api.schemas import (
    ConversationHistoryItem,
    ConversationHistoryResponse,
    ConversationListItem,
    ConversationListResponse,
    CreateConversationRequest,
    DraftResponse,
    SendMessageRequest,
)
from app.conversations.service import ConversationService
from app.drafts.store import DraftStore
from app.drafts.views import readiness, summary
from app.graph.runner import ConversationTurnRunner
from app.models.database import get_db
from app.models.domain import Conversation

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


def _to_list_item(conversation: Conversation) -> ConversationListItem:
    return ConversationListItem(
        conversation_id=conversation.conversation_id,
        title=conversation.title,
        category=conversation.category,
        last_message=conversation.last_message,
        created_at=conversation.created_at.isoformat(),
        updated_at=conversation.updated_at.isoformat(),
    )


async def _require_conversation(service: ConversationService, conversation_id: str) -> Conversation:
    conversation = await service.get_conversation(conversation_id)
    if conversation is None:
        logger.warning(f"Conversation {conversation_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.post("/conversations", response_model=ConversationListItem, status_code=201)
async def create_conversation(
    request: CreateConversationRequest,
    db: AsyncSession = Depends(get_db),
) -> ConversationListItem:
    """
    Create a conversation.

    Args:
        request: Title and workflow category
        db: Database session

    Returns:
        Created conversation
    """
    logger.info(f"CREATE CONVERSATION API REQUEST RECEIVED (category={request.category.value})")
    try:
        conversation = await ConversationService(db).create_conversation(
            title=request.title,
            category=request.category,
        )
        return _to_list_item(conversation)
    except Exception as e:
        logger.error("=" * 80)
        logger.error("ERROR IN CREATE CONVERSATION API")
        logger.error(f"Error type: {type(e).__name__}")
        logger.error("Full exception:", exc_info=True)
        logger.error("=" * 80)
        raise HTTPException(status_code=500, detail="Error creating conversation")


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    limit: int = 100,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
) -> ConversationListResponse:
    """List conversations, most recently updated first."""
    try:
        conversations = await ConversationService(db).list_conversations(limit=limit, offset=offset)
        logger.info(f"Returning {len(conversations)} conversations")
        return ConversationListResponse(conversations=[_to_list_item(c) for c in conversations])
    except Exception as e:
        logger.error("=" * 80)
        logger.error("ERROR IN CONVERSATION LIST API")
        logger.error(f"Error type: {type(e).__name__}")
        logger.error("Full exception:", exc_info=True)
        logger.error("=" * 80)
        raise HTTPException(status_code=500, detail="Error fetching conversation list")


@router.get("/conversations/{conversation_id}/history", response_model=ConversationHistoryResponse)
async def get_conversation_history(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
) -> ConversationHistoryResponse:
    """
    Get conversation history for a given conversation ID.

    Args:
        conversation_id: Conversation ID
        db: Database session

    Returns:
        Conversation history response
    """
    logger.info(f"CONVERSATION HISTORY API REQUEST RECEIVED - {conversation_id}")
    try:
        service = ConversationService(db)
        await _require_conversation(service, conversation_id)
        messages = await service.list_messages(conversation_id)
        logger.info(f"Returning {len(messages)} messages for conversation {conversation_id}")
        return ConversationHistoryResponse(
            conversation_id=conversation_id,
            messages=[
                ConversationHistoryItem(
                    role=m.role.value,
                    content=m.content,
                    created_at=m.created_at.isoformat(),
                )
                for m in messages
            ],
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("=" * 80)
        logger.error("ERROR IN CONVERSATION HISTORY API")
        logger.error(f"Error type: {type(e).__name__}")
        logger.error("Full exception:", exc_info=True)
        logger.error("=" * 80)
        raise HTTPException(status_code=500, detail="Error fetching conversation history")


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Delete a conversation, its messages and its draft."""
    logger.info(f"DELETE CONVERSATION API REQUEST RECEIVED - {conversation_id}")
    try:
        deleted = await ConversationService(db).delete_conversation(conversation_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return {"conversation_id": conversation_id, "deleted": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error("=" * 80)
        logger.error("ERROR IN DELETE CONVERSATION API")
        logger.error(f"Error type: {type(e).__name__}")
        logger.error("Full exception:", exc_info=True)
        logger.error("=" * 80)
        raise HTTPException(status_code=500, detail="Error deleting conversation")


@router.get("/conversations/{conversation_id}/draft", response_model=DraftResponse)
async def get_conversation_draft(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
    draft_store: DraftStore = Depends(get_draft_store),
) -> DraftResponse:
    """Current order draft with summary and readiness."""
    try:
        await _require_conversation(ConversationService(db), conversation_id)
        draft = await draft_store.get_or_create(conversation_id)
        check = readiness(draft)
        return DraftResponse(
            conversation_id=conversation_id,
            draft=draft.model_dump(mode="json"),
            summary=summary(draft),
            ready=check.ready,
            missing=check.missing,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("=" * 80)
        logger.error("ERROR IN DRAFT API")
        logger.error(f"Error type: {type(e).__name__}")
        logger.error("Full exception:", exc_info=True)
        logger.error("=" * 80)
        raise HTTPException(status_code=500, detail="Error fetching draft")


async def _event_generator(
    request: Request,
    conversation_id: str,
    queue: asyncio.Queue,
) -> AsyncGenerator[dict, None]:
    """
    Relay turn events to the caller until done or error.

    A disconnecting caller stops the relay only; the turn keeps running.
    """
    while True:
        if await request.is_disconnected():
            logger.info(f"Client disconnected from {conversation_id}, turn continues in background")
            break
        try:
            event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
        except asyncio.TimeoutError:
            yield {"data": json.dumps({"type": "ping"})}
            continue

        yield {"data": json.dumps(event)}
        if event.get("type") in ("done", "error"):
            break


@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    runner: ConversationTurnRunner = Depends(get_turn_runner),
) -> EventSourceResponse:
    """
    Process a user message and stream the turn as server-sent events.

    Events: {"type": "tool_call", "tool"}, {"type": "content", "content"},
    {"type": "done"}, {"type": "error", "error"}.

    Args:
        conversation_id: Conversation ID
        body: User message
        request: Incoming request (disconnect detection)
        db: Database session
        runner: Turn runner

    Returns:
        EventSourceResponse streaming the turn
    """
    logger.info("=" * 80)
    logger.info("MESSAGE API REQUEST RECEIVED")
    logger.info(f"Conversation ID: {conversation_id}")
    logger.info(f"Message: {body.message}")
    logger.info("=" * 80)

    await _require_conversation(ConversationService(db), conversation_id)

    queue: asyncio.Queue = asyncio.Queue()
    runner.start_turn(conversation_id, body.message, emit=queue.put)

    return EventSourceResponse(_event_generator(request, conversation_id, queue))
