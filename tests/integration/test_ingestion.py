"""Integration tests for the ingestion coordinator over a real SQLite store.

Tests cover:
  - PDF upload → processing ack → completed with summary and page metadata
  - Unreachable link → failed with a classified error, then reprocessed
  - Reprocess only from failed; other states are rejected unchanged
  - Summarizer failure releases the uploaded PDF
  - Too little extracted text fails the document
  - Validation errors create nothing
  - Duplicate links are rejected per chatbot
  - Delete while a task is in flight discards the task's result
  - Status/content/error invariants hold after every run
"""

from __future__ import annotations

import asyncio
import os
import socket
import uuid

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledgebot.core.exceptions import (
    DocumentNotFoundError,
    DuplicateDocumentError,
    InferenceError,
    InvalidInputError,
    InvalidStateTransitionError,
)
from knowledgebot.db.repositories import DocumentRepository
from knowledgebot.models.chatbot import Chatbot
from knowledgebot.models.document import Document, DocumentKind, DocumentStatus
from knowledgebot.services.extractors.base import ExtractorRegistry, LinkSource, PdfSource
from knowledgebot.services.extractors.link import LinkExtractor
from knowledgebot.services.extractors.pdf import PdfExtractor
from knowledgebot.services.llm.base import InferenceConfig
from knowledgebot.services.llm.resolver import ModelResolver
from knowledgebot.services.rag.ingestion import IngestionCoordinator, IngestionDispatcher
from knowledgebot.services.rag.summarizer import Summarizer
from tests.conftest import MockLLMProvider, fetch_document, offline_llm

_PAGE_HTML = """
<html><head><title>Shipping FAQ</title></head>
<body><main>
  <p>Standard shipping takes three to five business days within the country.</p>
</main></body></html>
"""


class FakeWeb:
    """Mock transport handler whose behaviour tests can switch per host."""

    def __init__(self) -> None:
        self.reachable = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if not self.reachable:
            raise httpx.ConnectError(
                "[Errno -2] Name or service not known", request=request
            ) from socket.gaierror(-2, "Name or service not known")
        return httpx.Response(200, html=_PAGE_HTML)


def _assert_invariants(doc: Document) -> None:
    assert (doc.processed_content is not None) == (doc.status == DocumentStatus.COMPLETED.value)
    assert (doc.error_message is not None) == (doc.status == DocumentStatus.FAILED.value)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
def summary_llm() -> MockLLMProvider:
    return MockLLMProvider(generate_text="Refunds are accepted within 30 days of purchase.")


@pytest.fixture
def dispatcher() -> IngestionDispatcher:
    return IngestionDispatcher()


def _coordinator(
    session_factory: async_sessionmaker[AsyncSession],
    llm: MockLLMProvider,
    config: InferenceConfig,
    web: FakeWeb,
    dispatcher: IngestionDispatcher,
) -> IngestionCoordinator:
    resolver = ModelResolver(llm, fallback_models=config.fallback_models)
    return IngestionCoordinator(
        session_factory=session_factory,
        extractors=ExtractorRegistry(
            pdf=PdfExtractor(),
            link=LinkExtractor(transport=httpx.MockTransport(web)),
        ),
        summarizer=Summarizer(llm=llm, resolver=resolver, config=config),
        dispatcher=dispatcher,
    )


@pytest_asyncio.fixture
async def coordinator(
    session_factory,
    summary_llm: MockLLMProvider,
    inference_config: InferenceConfig,
    fake_web: FakeWeb,
    dispatcher: IngestionDispatcher,
) -> IngestionCoordinator:
    return _coordinator(session_factory, summary_llm, inference_config, fake_web, dispatcher)


# ---------------------------------------------------------------------------
# PDF ingestion
# ---------------------------------------------------------------------------


class TestPdfIngestion:
    """Upload → extract → summarize → completed."""

    @pytest.mark.asyncio
    async def test_pdf_completes_with_summary(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
        summary_llm: MockLLMProvider,
        make_pdf,
    ) -> None:
        path = make_pdf()

        ack = await coordinator.submit(
            db, sample_chatbot.id, PdfSource(file_path=path, original_name="policy.pdf")
        )
        assert ack.status == DocumentStatus.PROCESSING

        await dispatcher.drain()

        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.COMPLETED.value
        assert doc.processed_content == "Refunds are accepted within 30 days of purchase."
        assert doc.error_message is None
        assert doc.metadata_["pages"] == 1
        assert doc.original_name == "policy.pdf"
        assert doc.kind == DocumentKind.PDF.value
        _assert_invariants(doc)

        assert "Our refund policy is 30 days." in summary_llm.generate_calls[0]["prompt"]
        assert os.path.exists(path)

    @pytest.mark.asyncio
    async def test_summarizer_failure_fails_and_releases_file(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        inference_config: InferenceConfig,
        fake_web: FakeWeb,
        dispatcher: IngestionDispatcher,
        make_pdf,
    ) -> None:
        llm = MockLLMProvider(generate_error=InferenceError("model crashed"))
        coordinator = _coordinator(session_factory, llm, inference_config, fake_web, dispatcher)
        path = make_pdf()

        ack = await coordinator.submit(db, sample_chatbot.id, PdfSource(file_path=path))
        await dispatcher.drain()

        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.error_message == "Failed to process document with AI: model crashed"
        assert doc.processed_content is None
        assert not os.path.exists(path)
        _assert_invariants(doc)

    @pytest.mark.asyncio
    async def test_no_model_available_fails_document(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        inference_config: InferenceConfig,
        fake_web: FakeWeb,
        dispatcher: IngestionDispatcher,
        make_pdf,
    ) -> None:
        coordinator = _coordinator(
            session_factory, offline_llm(), inference_config, fake_web, dispatcher
        )

        ack = await coordinator.submit(db, sample_chatbot.id, PdfSource(file_path=make_pdf()))
        await dispatcher.drain()

        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.error_message.startswith("Inference backend unavailable")

    @pytest.mark.asyncio
    async def test_pdf_without_text_fails(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
        summary_llm: MockLLMProvider,
        make_pdf,
    ) -> None:
        ack = await coordinator.submit(
            db, sample_chatbot.id, PdfSource(file_path=make_pdf(["Hi"]))
        )
        await dispatcher.drain()

        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.error_message == "No content extracted from the document"
        assert summary_llm.generate_calls == []

    @pytest.mark.asyncio
    async def test_invalid_pdf_creates_nothing(
        self,
        db: AsyncSession,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        tmp_path,
    ) -> None:
        with pytest.raises(InvalidInputError):
            await coordinator.submit(
                db, sample_chatbot.id, PdfSource(file_path=str(tmp_path / "missing.pdf"))
            )

        count = await db.scalar(select(func.count()).select_from(Document))
        assert count == 0


# ---------------------------------------------------------------------------
# Link ingestion
# ---------------------------------------------------------------------------


class TestLinkIngestion:
    """Scrape → summarize, network failures and reprocessing."""

    @pytest.mark.asyncio
    async def test_link_completes_with_page_title(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
        fake_web: FakeWeb,
    ) -> None:
        fake_web.reachable = True

        ack = await coordinator.submit(
            db, sample_chatbot.id, LinkSource(url="https://shop.example.com/shipping")
        )
        await dispatcher.drain()

        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.COMPLETED.value
        assert doc.original_name == "Shipping FAQ"
        assert doc.source_url == "https://shop.example.com/shipping"
        assert doc.metadata_["url"] == "https://shop.example.com/shipping"

    @pytest.mark.asyncio
    async def test_unreachable_link_fails_then_reprocesses(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
        fake_web: FakeWeb,
    ) -> None:
        url = "https://no-such-host.invalid/"

        ack = await coordinator.submit(db, sample_chatbot.id, LinkSource(url=url))
        await dispatcher.drain()

        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.FAILED.value
        assert "could not resolve host" in doc.error_message
        assert doc.processed_content is None
        _assert_invariants(doc)

        fake_web.reachable = True
        again = await coordinator.reprocess(db, ack.document_id)
        assert again.document_id == ack.document_id
        assert again.status == DocumentStatus.PROCESSING

        await dispatcher.drain()

        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.COMPLETED.value
        assert doc.error_message is None
        _assert_invariants(doc)

    @pytest.mark.asyncio
    async def test_invalid_url_creates_nothing(
        self,
        db: AsyncSession,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
    ) -> None:
        with pytest.raises(InvalidInputError):
            await coordinator.submit(db, sample_chatbot.id, LinkSource(url="http://127.0.0.1/"))

        count = await db.scalar(select(func.count()).select_from(Document))
        assert count == 0

    @pytest.mark.asyncio
    async def test_duplicate_link_rejected_per_chatbot(
        self,
        db: AsyncSession,
        sample_chatbot: Chatbot,
        other_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
    ) -> None:
        url = "https://shop.example.com/faq"
        await coordinator.submit(db, sample_chatbot.id, LinkSource(url=url))

        with pytest.raises(DuplicateDocumentError):
            await coordinator.submit(db, sample_chatbot.id, LinkSource(url=url))

        await coordinator.submit(db, other_chatbot.id, LinkSource(url=url))
        await dispatcher.drain()


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestReprocessRules:
    """reprocess() accepts only failed documents."""

    @pytest.mark.asyncio
    async def test_completed_document_rejected_unchanged(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
        summary_llm: MockLLMProvider,
        make_pdf,
    ) -> None:
        ack = await coordinator.submit(db, sample_chatbot.id, PdfSource(file_path=make_pdf()))
        await dispatcher.drain()
        before = await fetch_document(session_factory, ack.document_id)
        calls_before = len(summary_llm.generate_calls)

        with pytest.raises(InvalidStateTransitionError):
            await coordinator.reprocess(db, ack.document_id)
        await dispatcher.drain()

        after = await fetch_document(session_factory, ack.document_id)
        assert after.status == DocumentStatus.COMPLETED.value
        assert after.processed_content == before.processed_content
        assert after.updated_at == before.updated_at
        assert len(summary_llm.generate_calls) == calls_before

    @pytest.mark.asyncio
    async def test_processing_document_rejected(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
    ) -> None:
        repo = DocumentRepository(db)
        doc = await repo.create(
            chatbot_id=sample_chatbot.id,
            kind=DocumentKind.LINK,
            source_url="https://shop.example.com/busy",
        )
        await repo.claim(doc.id, from_statuses=(DocumentStatus.PENDING,))
        await db.commit()

        with pytest.raises(InvalidStateTransitionError):
            await coordinator.reprocess(db, doc.id)

        stored = await fetch_document(session_factory, doc.id)
        assert stored.status == DocumentStatus.PROCESSING.value

    @pytest.mark.asyncio
    async def test_unknown_document(
        self,
        db: AsyncSession,
        coordinator: IngestionCoordinator,
    ) -> None:
        with pytest.raises(DocumentNotFoundError):
            await coordinator.reprocess(db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_concurrent_reprocess_has_one_winner(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
    ) -> None:
        ack = await coordinator.submit(
            db, sample_chatbot.id, LinkSource(url="https://no-such-host.invalid/")
        )
        await dispatcher.drain()

        async def attempt() -> str:
            async with session_factory() as session:
                try:
                    await coordinator.reprocess(session, ack.document_id)
                except InvalidStateTransitionError:
                    return "rejected"
                return "accepted"

        outcomes = await asyncio.gather(attempt(), attempt())
        await dispatcher.drain()

        assert sorted(outcomes) == ["accepted", "rejected"]

    @pytest.mark.asyncio
    async def test_reprocess_released_pdf_fails_again(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        inference_config: InferenceConfig,
        fake_web: FakeWeb,
        dispatcher: IngestionDispatcher,
        make_pdf,
    ) -> None:
        llm = MockLLMProvider(generate_error=InferenceError("model crashed"))
        coordinator = _coordinator(session_factory, llm, inference_config, fake_web, dispatcher)
        ack = await coordinator.submit(db, sample_chatbot.id, PdfSource(file_path=make_pdf()))
        await dispatcher.drain()

        again = await coordinator.reprocess(db, ack.document_id)
        await dispatcher.drain()

        assert again.document_id == ack.document_id
        doc = await fetch_document(session_factory, ack.document_id)
        assert doc.status == DocumentStatus.FAILED.value
        assert doc.error_message == "Source file is no longer available"


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDelete:
    """delete() removes the row and the uploaded file."""

    @pytest.mark.asyncio
    async def test_delete_completed_pdf(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
        make_pdf,
    ) -> None:
        path = make_pdf()
        ack = await coordinator.submit(db, sample_chatbot.id, PdfSource(file_path=path))
        await dispatcher.drain()

        await coordinator.delete(db, ack.document_id)

        assert await fetch_document(session_factory, ack.document_id) is None
        assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_delete_while_processing_discards_result(
        self,
        db: AsyncSession,
        session_factory,
        sample_chatbot: Chatbot,
        coordinator: IngestionCoordinator,
        dispatcher: IngestionDispatcher,
        make_pdf,
    ) -> None:
        ack = await coordinator.submit(db, sample_chatbot.id, PdfSource(file_path=make_pdf()))

        await coordinator.delete(db, ack.document_id)
        await dispatcher.drain()

        assert await fetch_document(session_factory, ack.document_id) is None

    @pytest.mark.asyncio
    async def test_delete_unknown(self, db: AsyncSession, coordinator: IngestionCoordinator) -> None:
        with pytest.raises(DocumentNotFoundError):
            await coordinator.delete(db, uuid.uuid4())
