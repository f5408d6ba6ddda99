"""Answer an end-user message from a chatbot's knowledge.

Turn flow:
    completed document summaries + retrieved Q&A → context
    context + message → response generator (never raises)
    append conversation record (failures logged, answer still returned)
Only an empty or over-long message is rejected.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.core.exceptions import InvalidInputError
from knowledgebot.db.repositories import ConversationRepository, DocumentRepository
from knowledgebot.services.llm.base import InferenceConfig, LLMProvider
from knowledgebot.services.llm.resolver import ModelResolver
from knowledgebot.services.rag.context import assemble_context
from knowledgebot.services.rag.retrieval import KnowledgeEntry, KnowledgeRetriever

logger = structlog.get_logger(__name__)

APOLOGY_RESPONSE = (
    "I'm sorry, I couldn't process your request at the moment. "
    "Please try again later."
)

_RESPONSE_PROMPT_TEMPLATE = """You are a helpful AI assistant. Based on the provided context, answer the user's question accurately and helpfully.

Context: {context}

User Question: {message}

Please provide a helpful and accurate response based on the context. Prefer the custom knowledge and document content when they answer the question. If the context doesn't contain relevant information, politely explain that you don't have enough information to answer the question.

Response:"""


@dataclass
class ChatAnswer:
    """Output from a single chat turn."""

    response: str
    response_time_ms: int
    conversation_id: uuid.UUID | None = None


class ResponseGenerator:
    """Turn context + message into a reply. Failures become the apology."""

    def __init__(
        self,
        llm: LLMProvider,
        resolver: ModelResolver,
        config: InferenceConfig,
    ) -> None:
        self._llm = llm
        self._resolver = resolver
        self._config = config

    async def generate(self, context: str, message: str) -> str:
        try:
            model = await self._resolver.ensure_available(self._config.model)
            response = await self._llm.generate(
                prompt=_RESPONSE_PROMPT_TEMPLATE.format(context=context, message=message),
                model=model,
                max_tokens=self._config.response_max_tokens,
                temperature=self._config.response_temperature,
            )
        except Exception as e:
            logger.error("response_generation_failed", error=str(e))
            return APOLOGY_RESPONSE

        text = response.text.strip()
        if not text:
            logger.warning("response_generation_empty", model=response.model)
            return APOLOGY_RESPONSE
        return text


class ChatAgent:
    """Per-request orchestrator for one chat turn."""

    def __init__(
        self,
        db: AsyncSession,
        retriever: KnowledgeRetriever,
        generator: ResponseGenerator,
        max_message_chars: int = 1000,
        max_context_chars: int | None = None,
    ) -> None:
        self._db = db
        self._retriever = retriever
        self._generator = generator
        self._max_message_chars = max_message_chars
        self._max_context_chars = max_context_chars

    async def answer(
        self,
        chatbot_id: uuid.UUID,
        message: str,
        session_id: str | None = None,
    ) -> ChatAnswer:
        """Answer *message* for *chatbot_id* and log the exchange.

        Raises:
            InvalidInputError: Empty message or longer than the configured limit.
        """
        if not message or not message.strip():
            raise InvalidInputError("Message is required")
        if len(message) > self._max_message_chars:
            raise InvalidInputError(
                f"Message is too long. Maximum length is {self._max_message_chars} characters."
            )

        start = time.monotonic()
        documents = await self._load_documents(chatbot_id)
        entries = await self._retrieve(chatbot_id, message)

        context = assemble_context(documents, entries, max_chars=self._max_context_chars)
        response = await self._generator.generate(context, message)
        response_time_ms = int((time.monotonic() - start) * 1000)

        conversation_id = await self._record(
            chatbot_id, message, response, response_time_ms, session_id
        )
        logger.info(
            "chat_answered",
            chatbot_id=str(chatbot_id),
            documents=len(documents),
            entries=len(entries),
            response_time_ms=response_time_ms,
        )
        return ChatAnswer(
            response=response,
            response_time_ms=response_time_ms,
            conversation_id=conversation_id,
        )

    async def _load_documents(self, chatbot_id: uuid.UUID) -> list[str]:
        try:
            return await DocumentRepository(self._db).completed_contents(chatbot_id)
        except SQLAlchemyError as e:
            logger.error("chat_documents_unavailable", chatbot_id=str(chatbot_id), error=str(e))
            await self._db.rollback()
            return []

    async def _retrieve(self, chatbot_id: uuid.UUID, message: str) -> list[KnowledgeEntry]:
        try:
            result = await self._retriever.retrieve(chatbot_id, message)
        except SQLAlchemyError as e:
            logger.error("chat_retrieval_failed", chatbot_id=str(chatbot_id), error=str(e))
            await self._db.rollback()
            return []
        return result.entries

    async def _record(
        self,
        chatbot_id: uuid.UUID,
        message: str,
        response: str,
        response_time_ms: int,
        session_id: str | None,
    ) -> uuid.UUID | None:
        try:
            record = await ConversationRepository(self._db).append(
                chatbot_id=chatbot_id,
                user_message=message,
                bot_response=response,
                response_time_ms=response_time_ms,
                session_id=session_id,
            )
            await self._db.commit()
        except SQLAlchemyError as e:
            logger.error("conversation_save_failed", chatbot_id=str(chatbot_id), error=str(e))
            await self._db.rollback()
            return None
        return record.id
