"""Store operations over chatbots, documents and conversations.

Repositories wrap a single AsyncSession and never commit; the caller owns
the transaction. Document status writes are conditional on the current
status so that concurrent callers cannot both move a row through the same
transition. Every write sets ``processed_content`` and ``error_message``
together with ``status`` so the document invariants hold at every commit.

Public API:
    - ChatbotRepository.get / get_owned / get_active
    - DocumentRepository.create / get / get_owned / list_for_chatbot /
      find_link / claim / mark_completed / mark_failed / delete /
      completed_contents
    - ConversationRepository.append / recent
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.models.chatbot import Chatbot
from knowledgebot.models.conversation import Conversation
from knowledgebot.models.document import Document, DocumentKind, DocumentStatus

logger = structlog.get_logger(__name__)


class ChatbotRepository:
    """Read access to chatbots for ownership and active checks."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, chatbot_id: uuid.UUID) -> Chatbot | None:
        return await self._db.get(Chatbot, chatbot_id)

    async def get_owned(
        self, chatbot_id: uuid.UUID, owner_id: uuid.UUID
    ) -> Chatbot | None:
        result = await self._db.execute(
            select(Chatbot).where(
                Chatbot.id == chatbot_id,
                Chatbot.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_active(self, chatbot_id: uuid.UUID) -> Chatbot | None:
        result = await self._db.execute(
            select(Chatbot).where(
                Chatbot.id == chatbot_id,
                Chatbot.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()


class DocumentRepository:
    """Keyed reads and guarded status writes for documents."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, document_id: uuid.UUID) -> Document | None:
        result = await self._db.execute(
            select(Document).where(Document.id == document_id)
        )
        return result.scalar_one_or_none()

    async def get_owned(
        self, document_id: uuid.UUID, owner_id: uuid.UUID
    ) -> Document | None:
        """Fetch a document only if its chatbot belongs to *owner_id*."""
        result = await self._db.execute(
            select(Document)
            .join(Chatbot, Chatbot.id == Document.chatbot_id)
            .where(
                Document.id == document_id,
                Chatbot.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_chatbot(self, chatbot_id: uuid.UUID) -> list[Document]:
        result = await self._db.execute(
            select(Document)
            .where(Document.chatbot_id == chatbot_id)
            .order_by(Document.created_at.desc())
        )
        return list(result.scalars().all())

    async def find_link(self, chatbot_id: uuid.UUID, url: str) -> Document | None:
        result = await self._db.execute(
            select(Document).where(
                Document.chatbot_id == chatbot_id,
                Document.kind == DocumentKind.LINK.value,
                Document.source_url == url,
            )
        )
        return result.scalars().first()

    async def completed_contents(self, chatbot_id: uuid.UUID) -> list[str]:
        """Processed content of every completed document, oldest first."""
        result = await self._db.execute(
            select(Document.processed_content)
            .where(
                Document.chatbot_id == chatbot_id,
                Document.status == DocumentStatus.COMPLETED.value,
                Document.processed_content.is_not(None),
            )
            .order_by(Document.created_at.asc())
        )
        return [content for content in result.scalars().all() if content]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self,
        chatbot_id: uuid.UUID,
        kind: DocumentKind,
        source_url: str | None = None,
        file_path: str | None = None,
        original_name: str | None = None,
    ) -> Document:
        doc = Document(
            chatbot_id=chatbot_id,
            kind=kind.value,
            source_url=source_url,
            file_path=file_path,
            original_name=original_name,
            status=DocumentStatus.PENDING.value,
        )
        self._db.add(doc)
        await self._db.flush()
        return doc

    async def claim(
        self,
        document_id: uuid.UUID,
        from_statuses: Iterable[DocumentStatus],
    ) -> bool:
        """Move a document into ``processing`` if it is in one of *from_statuses*.

        Returns True when this caller won the transition.
        """
        allowed = [s.value for s in from_statuses]
        result = await self._db.execute(
            update(Document)
            .where(Document.id == document_id, Document.status.in_(allowed))
            .values(
                status=DocumentStatus.PROCESSING.value,
                processed_content=None,
                error_message=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_completed(
        self,
        document_id: uuid.UUID,
        processed_content: str,
        metadata: dict[str, Any],
        original_name: str | None = None,
    ) -> bool:
        values: dict[Any, Any] = {
            Document.status: DocumentStatus.COMPLETED.value,
            Document.processed_content: processed_content,
            Document.metadata_: metadata,
            Document.error_message: None,
        }
        if original_name:
            values[Document.original_name] = original_name
        return await self._finish(document_id, values)

    async def mark_failed(self, document_id: uuid.UUID, error_message: str) -> bool:
        return await self._finish(
            document_id,
            {
                Document.status: DocumentStatus.FAILED.value,
                Document.processed_content: None,
                Document.error_message: error_message,
            },
        )

    async def _finish(self, document_id: uuid.UUID, values: dict[Any, Any]) -> bool:
        """Terminal write, applied only while the document is processing."""
        result = await self._db.execute(
            update(Document)
            .where(
                Document.id == document_id,
                Document.status == DocumentStatus.PROCESSING.value,
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "document_terminal_write_skipped",
                document_id=str(document_id),
                status=values[Document.status],
            )
            return False
        return True

    async def delete(self, document_id: uuid.UUID) -> None:
        await self._db.execute(
            delete(Document)
            .where(Document.id == document_id)
            .execution_options(synchronize_session=False)
        )


class ConversationRepository:
    """Append-only conversation log."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def append(
        self,
        chatbot_id: uuid.UUID,
        user_message: str,
        bot_response: str,
        response_time_ms: int,
        session_id: str | None = None,
    ) -> Conversation:
        record = Conversation(
            chatbot_id=chatbot_id,
            session_id=session_id,
            user_message=user_message,
            bot_response=bot_response,
            response_time_ms=response_time_ms,
        )
        self._db.add(record)
        await self._db.flush()
        return record

    async def recent(
        self, chatbot_id: uuid.UUID, limit: int = 50
    ) -> list[Conversation]:
        result = await self._db.execute(
            select(Conversation)
            .where(Conversation.chatbot_id == chatbot_id)
            .order_by(Conversation.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
