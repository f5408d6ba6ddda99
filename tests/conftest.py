"""Shared pytest fixtures for the knowledge bot test suite.

Provides:
  - MockLLMProvider: in-memory inference backend with call tracking
  - engine / session_factory / db: file-backed SQLite (aiosqlite) per test
  - sample_chatbot / other_chatbot: persisted Chatbot rows
  - make_pdf: writes a small single-page text PDF to tmp_path
  - inference_config: default InferenceConfig

External services are never contacted: the inference backend is mocked and
web fetches go through httpx.MockTransport inside the tests that need them.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import knowledgebot.models  # noqa: F401 (registers every table on Base.metadata)
from knowledgebot.core.exceptions import InferenceError
from knowledgebot.db.postgres import Base, create_engine_for, session_factory_for
from knowledgebot.models.chatbot import Chatbot
from knowledgebot.models.document import Document
from knowledgebot.services.llm.base import InferenceConfig, LLMProvider, LLMResponse

OWNER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_OWNER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")


# ---------------------------------------------------------------------------
# Mock inference backend
# ---------------------------------------------------------------------------


class MockLLMProvider(LLMProvider):
    """Mock inference backend. Returns configurable responses and records calls."""

    def __init__(
        self,
        generate_text: str = "Mock response",
        models: list[str] | None = None,
        generate_error: Exception | None = None,
        list_error: Exception | None = None,
        pull_error: Exception | None = None,
    ) -> None:
        self.generate_text = generate_text
        self.models = list(models) if models is not None else ["llama3:8b"]
        self.generate_error = generate_error
        self.list_error = list_error
        self.pull_error = pull_error
        self.generate_calls: list[dict[str, Any]] = []
        self.pull_calls: list[str] = []
        self.list_calls = 0

    async def generate(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> LLMResponse:
        self.generate_calls.append(
            {
                "prompt": prompt,
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        if self.generate_error is not None:
            raise self.generate_error
        return LLMResponse(
            text=self.generate_text,
            model=model,
            input_tokens=50,
            output_tokens=10,
        )

    async def list_models(self) -> list[str]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.models)

    async def pull_model(self, name: str) -> None:
        self.pull_calls.append(name)
        if self.pull_error is not None:
            raise self.pull_error
        self.models.append(name)


def offline_llm() -> MockLLMProvider:
    """A backend that answers nothing: every call fails."""
    error = InferenceError("Failed to reach inference backend: connection refused")
    return MockLLMProvider(
        models=[],
        generate_error=error,
        list_error=error,
        pull_error=error,
    )


# ---------------------------------------------------------------------------
# PDF fixture builder
# ---------------------------------------------------------------------------


def build_pdf(lines: list[str]) -> bytes:
    """Return a minimal one-page PDF that draws *lines* in Helvetica.

    Object offsets in the xref table are computed from the bytes written so
    the file parses without recovery.
    """
    ops = ["BT", "/F1 12 Tf", "14 TL", "72 720 Td"]
    for line in lines:
        escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        ops.append(f"({escaped}) Tj T*")
    ops.append("ET")
    stream = "\n".join(ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets: list[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\n" % (len(objects) + 1)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_offset
    return bytes(out)


@pytest.fixture
def make_pdf(tmp_path: Path) -> Callable[..., str]:
    """Factory: write a text PDF under tmp_path and return its path."""

    def _make(lines: list[str] | None = None, name: str = "policy.pdf") -> str:
        if lines is None:
            lines = ["Our refund policy is 30 days."]
        path = tmp_path / name
        path.write_bytes(build_pdf(lines))
        return str(path)

    return _make


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    """File-backed SQLite engine with every table created.

    A file rather than :memory: so the ingestion task's own sessions see
    the same database as the test session.
    """
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return session_factory_for(engine)


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]):
    async with session_factory() as session:
        yield session


async def fetch_document(
    session_factory: async_sessionmaker[AsyncSession],
    document_id: uuid.UUID,
) -> Document | None:
    """Read a Document through a fresh session so no cached state leaks in."""
    async with session_factory() as session:
        return await session.get(Document, document_id)


# ---------------------------------------------------------------------------
# Sample rows
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def sample_chatbot(db: AsyncSession) -> Chatbot:
    """Active chatbot owned by OWNER_ID."""
    chatbot = Chatbot(owner_id=OWNER_ID, name="Support Bot", is_active=True)
    db.add(chatbot)
    await db.commit()
    return chatbot


@pytest_asyncio.fixture
async def other_chatbot(db: AsyncSession) -> Chatbot:
    """Active chatbot owned by someone else."""
    chatbot = Chatbot(owner_id=OTHER_OWNER_ID, name="Other Bot", is_active=True)
    db.add(chatbot)
    await db.commit()
    return chatbot


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def inference_config() -> InferenceConfig:
    return InferenceConfig(
        base_url="http://ollama.test",
        model="llama3:8b",
        fallback_models=("llama2:7b", "mistral:7b"),
    )


@pytest.fixture
def mock_llm() -> MockLLMProvider:
    return MockLLMProvider()
