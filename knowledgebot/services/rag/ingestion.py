"""Document ingestion: claim → extract → summarize → persist.

The coordinator owns every status transition of a Document:

    submit:     (new) pending ──claim──▶ processing
    reprocess:  failed ──claim──▶ processing
    task:       processing ──▶ completed | failed   (exactly one write)

Claims are conditional writes in the store, so only one caller can move a
row into ``processing``. The dispatcher additionally serializes tasks per
document id with an asyncio.Lock held from extraction to the terminal
write. Submission returns as soon as the task is scheduled; callers poll
the Document row for the outcome.

Public API:
    - IngestionDispatcher.dispatch(document_id, work) / drain()
    - IngestionCoordinator.submit(db, chatbot_id, source)   → IngestionAck
    - IngestionCoordinator.reprocess(db, document_id)       → IngestionAck
    - IngestionCoordinator.delete(db, document_id)
"""

from __future__ import annotations

import asyncio
import functools
import os
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledgebot.core.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    ExtractionError,
    InvalidInputError,
    InvalidStateTransitionError,
    KnowledgeBotError,
)
from knowledgebot.db.repositories import DocumentRepository
from knowledgebot.models.document import Document, DocumentKind, DocumentStatus
from knowledgebot.services.extractors.base import (
    DocumentSource,
    ExtractorRegistry,
    LinkSource,
    PdfSource,
)
from knowledgebot.services.rag.summarizer import Summarizer

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IngestionAck:
    """Returned to the submitter once the task is scheduled."""

    document_id: uuid.UUID
    status: DocumentStatus


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class IngestionDispatcher:
    """Run detached ingestion tasks, at most one at a time per document.

    A second task for a document that already has one in flight waits on
    that document's lock instead of interleaving with it.
    """

    def __init__(self) -> None:
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._pending: dict[uuid.UUID, int] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def dispatch(
        self,
        document_id: uuid.UUID,
        work: Callable[[], Awaitable[None]],
    ) -> asyncio.Task[None]:
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._pending[document_id] = self._pending.get(document_id, 0) + 1

        task = asyncio.create_task(
            self._run(document_id, lock, work),
            name=f"ingest-{document_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(
        self,
        document_id: uuid.UUID,
        lock: asyncio.Lock,
        work: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            async with lock:
                await work()
        except Exception as e:
            logger.error(
                "ingestion_task_crashed",
                document_id=str(document_id),
                error=str(e),
            )
        finally:
            remaining = self._pending.get(document_id, 1) - 1
            if remaining <= 0:
                self._pending.pop(document_id, None)
                self._locks.pop(document_id, None)
            else:
                self._pending[document_id] = remaining


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def source_for_document(doc: Document) -> DocumentSource:
    """Rebuild the extraction source from a stored Document."""
    if doc.kind == DocumentKind.PDF.value:
        if not doc.file_path:
            raise InvalidInputError("Source file is no longer available")
        return PdfSource(file_path=doc.file_path, original_name=doc.original_name)
    if doc.kind == DocumentKind.LINK.value:
        if not doc.source_url:
            raise InvalidInputError("Document has no source URL")
        return LinkSource(url=doc.source_url)
    raise InvalidInputError(f"Unsupported document kind: {doc.kind}")


def _error_message(error: Exception) -> str:
    if isinstance(error, KnowledgeBotError):
        return error.message
    return str(error) or type(error).__name__


def release_file(file_path: str | None) -> None:
    """Delete an uploaded file; a file that is already gone is fine."""
    if not file_path:
        return
    try:
        os.unlink(file_path)
        logger.info("upload_released", file_path=file_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("upload_release_failed", file_path=file_path, error=str(e))


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class IngestionCoordinator:
    """Owns the Document state machine and the detached ingestion tasks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        extractors: ExtractorRegistry,
        summarizer: Summarizer,
        dispatcher: IngestionDispatcher,
        min_extracted_chars: int = 10,
        release_failed_uploads: bool = True,
    ) -> None:
        self._session_factory = session_factory
        self._extractors = extractors
        self._summarizer = summarizer
        self._dispatcher = dispatcher
        self._min_chars = min_extracted_chars
        self._release_failed_uploads = release_failed_uploads

    async def submit(
        self,
        db: AsyncSession,
        chatbot_id: uuid.UUID,
        source: DocumentSource,
    ) -> IngestionAck:
        """Create a Document for *source* and start ingesting it.

        Raises:
            InvalidInputError: The source fails validation. Nothing is created.
            DuplicateDocumentError: The link is already attached to the chatbot.
        """
        self._extractors.for_source(source).validate(source)
        repo = DocumentRepository(db)

        if isinstance(source, LinkSource):
            if await repo.find_link(chatbot_id, source.url) is not None:
                raise DuplicateDocumentError()
            doc = await repo.create(
                chatbot_id=chatbot_id,
                kind=DocumentKind.LINK,
                source_url=source.url,
            )
        else:
            doc = await repo.create(
                chatbot_id=chatbot_id,
                kind=DocumentKind.PDF,
                file_path=source.file_path,
                original_name=source.original_name,
            )

        await repo.claim(doc.id, from_statuses=(DocumentStatus.PENDING,))
        await db.commit()

        logger.info(
            "document_submitted",
            document_id=str(doc.id),
            chatbot_id=str(chatbot_id),
            kind=source.kind.value,
        )
        self._dispatch(doc.id, source)
        return IngestionAck(document_id=doc.id, status=DocumentStatus.PROCESSING)

    async def reprocess(self, db: AsyncSession, document_id: uuid.UUID) -> IngestionAck:
        """Re-run ingestion for a failed Document, reusing the same row.

        Raises:
            DocumentNotFoundError: No such document.
            InvalidStateTransitionError: The document is not ``failed``.
                Nothing is changed.
        """
        repo = DocumentRepository(db)
        doc = await repo.get(document_id)
        if doc is None:
            raise DocumentNotFoundError()

        if not await repo.claim(document_id, from_statuses=(DocumentStatus.FAILED,)):
            raise InvalidStateTransitionError("Only failed documents can be reprocessed")
        await db.commit()

        logger.info("document_reprocess_started", document_id=str(document_id))
        try:
            source = source_for_document(doc)
        except InvalidInputError as e:
            await self._finish_failed(document_id, e.message)
            return IngestionAck(document_id=document_id, status=DocumentStatus.FAILED)

        self._dispatch(document_id, source)
        return IngestionAck(document_id=document_id, status=DocumentStatus.PROCESSING)

    async def delete(self, db: AsyncSession, document_id: uuid.UUID) -> None:
        """Remove a Document and release its uploaded file.

        A task still running for it finds no ``processing`` row at the end
        and its result is discarded.
        """
        repo = DocumentRepository(db)
        doc = await repo.get(document_id)
        if doc is None:
            raise DocumentNotFoundError()

        file_path = doc.file_path
        await repo.delete(document_id)
        await db.commit()
        release_file(file_path)
        logger.info("document_deleted", document_id=str(document_id))

    # ------------------------------------------------------------------
    # Task
    # ------------------------------------------------------------------

    def _dispatch(self, document_id: uuid.UUID, source: DocumentSource) -> None:
        self._dispatcher.dispatch(
            document_id, functools.partial(self._process, document_id, source)
        )

    async def _process(self, document_id: uuid.UUID, source: DocumentSource) -> None:
        """Extract and summarize *source*, then write the terminal status."""
        log = logger.bind(document_id=str(document_id), kind=source.kind.value)

        try:
            # ── Step 1: Extract ────────────────────────────────────────
            log.info("ingestion_extract_start")
            content = await self._extractors.for_source(source).extract(source)
            if len(content.text.strip()) < self._min_chars:
                raise ExtractionError("No content extracted from the document")
            log.info("ingestion_extract_done", text_len=len(content.text))

            # ── Step 2: Summarize ──────────────────────────────────────
            summary = await self._summarizer.summarize(content.text)
        except Exception as e:
            message = _error_message(e)
            log.error("ingestion_failed", error=message)
            if isinstance(source, PdfSource) and self._release_failed_uploads:
                release_file(source.file_path)
            await self._finish_failed(document_id, message)
            return

        # ── Step 3: Persist ────────────────────────────────────────────
        title = content.title if isinstance(source, LinkSource) else None
        await self._finish_completed(document_id, summary, content.metadata, title)
        log.info("ingestion_complete", summary_len=len(summary))

    async def _finish_completed(
        self,
        document_id: uuid.UUID,
        summary: str,
        metadata: dict[str, Any],
        title: str | None,
    ) -> None:
        async with self._session_factory() as db:
            await DocumentRepository(db).mark_completed(
                document_id,
                processed_content=summary,
                metadata=metadata,
                original_name=title,
            )
            await db.commit()

    async def _finish_failed(self, document_id: uuid.UUID, message: str) -> None:
        async with self._session_factory() as db:
            await DocumentRepository(db).mark_failed(document_id, message)
            await db.commit()
