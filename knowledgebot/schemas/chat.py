"""Chat request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ChatMessageRequest(BaseModel):
    """POST /v1/chat/message request body."""

    chatbot_id: uuid.UUID
    message: str
    session_id: str | None = None


class ChatMessageResponse(BaseModel):
    """POST /v1/chat/message response body."""

    model_config = ConfigDict(from_attributes=True)

    response: str
    response_time_ms: int
    conversation_id: uuid.UUID | None = None


class ConversationItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    session_id: str | None = None
    user_message: str
    bot_response: str
    response_time_ms: int | None = None
    created_at: datetime


class ConversationListResponse(BaseModel):
    """GET /v1/chat/conversations/{chatbot_id} response body."""

    conversations: list[ConversationItem]
