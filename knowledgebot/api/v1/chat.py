"""Chat message endpoints."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.api.deps import (
    get_chat_agent,
    get_current_owner,
    get_db,
    require_owned_chatbot,
)
from knowledgebot.core.exceptions import ChatbotNotFoundError
from knowledgebot.db.repositories import ChatbotRepository, ConversationRepository
from knowledgebot.schemas.chat import (
    ChatMessageRequest,
    ChatMessageResponse,
    ConversationItem,
    ConversationListResponse,
)
from knowledgebot.services.agent.core import ChatAgent

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/message", response_model=ChatMessageResponse)
async def send_message(
    body: ChatMessageRequest,
    db: AsyncSession = Depends(get_db),
    agent: ChatAgent = Depends(get_chat_agent),
) -> ChatMessageResponse:
    """Answer an end-user message. Public: the chatbot must exist and be active."""
    chatbot = await ChatbotRepository(db).get_active(body.chatbot_id)
    if chatbot is None:
        raise ChatbotNotFoundError("Chatbot not found or inactive")

    answer = await agent.answer(
        chatbot_id=body.chatbot_id,
        message=body.message,
        session_id=body.session_id,
    )
    return ChatMessageResponse(
        response=answer.response,
        response_time_ms=answer.response_time_ms,
        conversation_id=answer.conversation_id,
    )


@router.get("/conversations/{chatbot_id}", response_model=ConversationListResponse)
async def list_conversations(
    chatbot_id: UUID,
    limit: int = 50,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> ConversationListResponse:
    """Most recent conversation records for a chatbot the caller owns."""
    await require_owned_chatbot(db, chatbot_id, owner_id)
    records = await ConversationRepository(db).recent(chatbot_id, limit=min(max(limit, 1), 200))
    return ConversationListResponse(
        conversations=[ConversationItem.model_validate(r) for r in records]
    )
