"""Manually authored Q&A entries for a chatbot.

Keywords are always derived from the question; callers never supply them.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.core.exceptions import InvalidInputError, QAEntryNotFoundError
from knowledgebot.models.chatbot import Chatbot
from knowledgebot.models.qa import QAEntry
from knowledgebot.services.rag.retrieval import keyword_string

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class QAInput:
    question: str
    answer: str


class QAService:
    """Create, list, update and delete a chatbot's Q&A entries."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def add(self, chatbot_id: uuid.UUID, question: str, answer: str) -> QAEntry:
        question, answer = question.strip(), answer.strip()
        if not question or not answer:
            raise InvalidInputError("Question and answer are required")

        entry = self._new_entry(chatbot_id, question, answer)
        self._db.add(entry)
        await self._db.flush()
        logger.info("qa_added", chatbot_id=str(chatbot_id), qa_id=str(entry.id))
        return entry

    async def bulk_add(
        self, chatbot_id: uuid.UUID, items: Sequence[QAInput]
    ) -> list[QAEntry]:
        """Add every item with a non-blank question and answer; skip the rest."""
        entries = [
            self._new_entry(chatbot_id, item.question.strip(), item.answer.strip())
            for item in items
            if item.question.strip() and item.answer.strip()
        ]
        if not entries:
            raise InvalidInputError("No valid Q&A entries provided")

        self._db.add_all(entries)
        await self._db.flush()
        logger.info(
            "qa_bulk_added",
            chatbot_id=str(chatbot_id),
            added=len(entries),
            skipped=len(items) - len(entries),
        )
        return entries

    async def list_for_chatbot(self, chatbot_id: uuid.UUID) -> list[QAEntry]:
        result = await self._db.execute(
            select(QAEntry)
            .where(QAEntry.chatbot_id == chatbot_id)
            .order_by(QAEntry.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_owned(self, qa_id: uuid.UUID, owner_id: uuid.UUID) -> QAEntry:
        result = await self._db.execute(
            select(QAEntry)
            .join(Chatbot, Chatbot.id == QAEntry.chatbot_id)
            .where(QAEntry.id == qa_id, Chatbot.owner_id == owner_id)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise QAEntryNotFoundError()
        return entry

    async def update(
        self,
        entry: QAEntry,
        question: str | None = None,
        answer: str | None = None,
        is_active: bool | None = None,
    ) -> QAEntry:
        if question is None and answer is None and is_active is None:
            raise InvalidInputError("No fields to update")

        if question is not None:
            if not question.strip():
                raise InvalidInputError("Question cannot be empty")
            entry.question = question.strip()
            entry.keywords = keyword_string(entry.question)
        if answer is not None:
            if not answer.strip():
                raise InvalidInputError("Answer cannot be empty")
            entry.answer = answer.strip()
        if is_active is not None:
            entry.is_active = is_active

        await self._db.flush()
        logger.info("qa_updated", qa_id=str(entry.id))
        return entry

    async def delete(self, entry: QAEntry) -> None:
        await self._db.delete(entry)
        await self._db.flush()
        logger.info("qa_deleted", qa_id=str(entry.id))

    @staticmethod
    def _new_entry(chatbot_id: uuid.UUID, question: str, answer: str) -> QAEntry:
        return QAEntry(
            chatbot_id=chatbot_id,
            question=question,
            answer=answer,
            keywords=keyword_string(question),
            is_active=True,
        )
