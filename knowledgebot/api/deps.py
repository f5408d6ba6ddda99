"""Shared FastAPI dependencies: auth, database sessions and service injection.

The inference provider, extractors, dispatcher and ingestion coordinator are
created once during the FastAPI lifespan and stored on app.state. All
downstream code retrieves them via Depends(), never by direct import.
"""

import uuid

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.core.config import settings
from knowledgebot.core.exceptions import ChatbotNotFoundError, InvalidTokenError
from knowledgebot.core.security import owner_id_from_token
from knowledgebot.db.postgres import get_async_session
from knowledgebot.db.repositories import ChatbotRepository
from knowledgebot.models.chatbot import Chatbot
from knowledgebot.services.agent.core import ChatAgent, ResponseGenerator
from knowledgebot.services.knowledge import QAService
from knowledgebot.services.rag.ingestion import IngestionCoordinator
from knowledgebot.services.rag.retrieval import KnowledgeRetriever


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

async def get_db(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncSession:
    """Yield an async database session."""
    return session


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

async def get_current_owner(
    authorization: str | None = Header(None),
) -> uuid.UUID:
    """Return the owner id carried by the ``Authorization: Bearer`` token."""
    if not authorization:
        raise InvalidTokenError()

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidTokenError()

    return owner_id_from_token(token.strip())


async def require_owned_chatbot(
    db: AsyncSession,
    chatbot_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> Chatbot:
    """Load a chatbot the caller owns or raise ChatbotNotFoundError."""
    chatbot = await ChatbotRepository(db).get_owned(chatbot_id, owner_id)
    if chatbot is None:
        raise ChatbotNotFoundError()
    return chatbot


# ---------------------------------------------------------------------------
# Service singletons, retrieved from app.state (set during lifespan)
# ---------------------------------------------------------------------------

def get_ingestion_coordinator(request: Request) -> IngestionCoordinator:
    """Return the singleton ingestion coordinator from app state."""
    return request.app.state.ingestion_coordinator


def get_response_generator(request: Request) -> ResponseGenerator:
    """Return the singleton response generator from app state."""
    return request.app.state.response_generator


# ---------------------------------------------------------------------------
# Service constructors, wired via Depends()
# ---------------------------------------------------------------------------

async def get_chat_agent(
    db: AsyncSession = Depends(get_db),
    generator: ResponseGenerator = Depends(get_response_generator),
) -> ChatAgent:
    """Return a ChatAgent bound to the request's session."""
    return ChatAgent(
        db=db,
        retriever=KnowledgeRetriever(db),
        generator=generator,
        max_message_chars=settings.max_message_chars,
        max_context_chars=settings.max_context_chars,
    )


async def get_qa_service(
    db: AsyncSession = Depends(get_db),
) -> QAService:
    """Return a QAService instance."""
    return QAService(db=db)
