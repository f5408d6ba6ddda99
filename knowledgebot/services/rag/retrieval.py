"""Tiered lexical retrieval over a chatbot's Q&A entries.

Algorithm:
    keywords = extract_keywords(message)
    no keywords          → tier 0: most recent active entries
    tier 1 substring     → whole message inside question/answer/keywords
    tier 2 keyword OR    → any keyword inside question/answer/keywords
    tier 3 full-text     → PostgreSQL ts_rank over prefix terms (best effort)
The first tier returning rows wins; later tiers never run. Every tier is
scoped to the chatbot and to active entries, most recent first.

Public API:
    - extract_keywords(text, limit) → list[str]          (sync, pure)
    - keyword_string(question) → str                      (sync, stored form)
    - KnowledgeRetriever.retrieve(chatbot_id, message)    (async)
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import ColumnElement, func, literal_column, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.core.exceptions import SearchTierError
from knowledgebot.models.qa import QAEntry

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_STOP_WORDS = frozenset({
    "what", "how", "when", "where", "why", "who", "which",
    "is", "are", "was", "were", "do", "does", "did",
    "can", "could", "would", "should",
    "the", "a", "an", "and", "or", "but",
    "in", "on", "at", "to", "for", "of", "by", "with",
})
_MIN_KEYWORD_LEN = 3
_NON_WORD = re.compile(r"[^\w\s]")

MAX_MESSAGE_KEYWORDS = 10
MAX_RESULTS = 5

_RECENT_LIMIT = 5
_SUBSTRING_LIMIT = 5
_KEYWORD_LIMIT = 10
_FULLTEXT_LIMIT = 5
_FULLTEXT_CONFIG = "simple"


# ===================================================================
# Keyword extraction
# ===================================================================

def extract_keywords(text: str, limit: int | None = None) -> list[str]:
    """Lower-cased content words of *text*, in first-seen order.

    Punctuation becomes whitespace; stop-words and tokens shorter than
    three characters are dropped. Applying it to its own joined output
    returns the same list.
    """
    keywords: list[str] = []
    seen: set[str] = set()
    for word in _NON_WORD.sub(" ", text.lower()).split():
        if len(word) < _MIN_KEYWORD_LEN or word in _STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if limit is not None and len(keywords) >= limit:
            break
    return keywords


def keyword_string(question: str) -> str:
    """Keyword field stored alongside a Q&A entry."""
    return " ".join(extract_keywords(question.strip()))


# ===================================================================
# Tiers
# ===================================================================

@dataclass(frozen=True)
class KnowledgeEntry:
    question: str
    answer: str


@dataclass(frozen=True)
class TierQuery:
    chatbot_id: uuid.UUID
    message: str
    keywords: tuple[str, ...]


@dataclass(frozen=True)
class RetrievalResult:
    """Entries found and the name of the tier that produced them."""

    entries: list[KnowledgeEntry]
    tier: str | None = None


SearchTier = Callable[[AsyncSession, TierQuery], Awaitable[list[QAEntry]]]


def _scoped(query: TierQuery) -> tuple[ColumnElement[bool], ...]:
    return (
        QAEntry.chatbot_id == query.chatbot_id,
        QAEntry.is_active.is_(True),
    )


def _contains_any_field(needle: str) -> ColumnElement[bool]:
    return or_(
        func.lower(QAEntry.question).contains(needle, autoescape=True),
        func.lower(QAEntry.answer).contains(needle, autoescape=True),
        func.lower(QAEntry.keywords).contains(needle, autoescape=True),
    )


async def recent_entries(db: AsyncSession, query: TierQuery) -> list[QAEntry]:
    """Tier 0: default knowledge when the message has no usable keywords."""
    result = await db.execute(
        select(QAEntry)
        .where(*_scoped(query))
        .order_by(QAEntry.created_at.desc())
        .limit(_RECENT_LIMIT)
    )
    return list(result.scalars().all())


async def substring_tier(db: AsyncSession, query: TierQuery) -> list[QAEntry]:
    """Tier 1: the whole lower-cased message appears in a field."""
    needle = query.message.strip().lower()
    if not needle:
        return []
    result = await db.execute(
        select(QAEntry)
        .where(*_scoped(query), _contains_any_field(needle))
        .order_by(QAEntry.created_at.desc())
        .limit(_SUBSTRING_LIMIT)
    )
    return list(result.scalars().all())


async def keyword_tier(db: AsyncSession, query: TierQuery) -> list[QAEntry]:
    """Tier 2: any extracted keyword appears in a field."""
    if not query.keywords:
        return []
    result = await db.execute(
        select(QAEntry)
        .where(
            *_scoped(query),
            or_(*(_contains_any_field(kw) for kw in query.keywords)),
        )
        .order_by(QAEntry.created_at.desc())
        .limit(_KEYWORD_LIMIT)
    )
    return list(result.scalars().all())


def _fulltext_config() -> ColumnElement:
    return literal_column(f"'{_FULLTEXT_CONFIG}'::regconfig")


def fulltext_document() -> ColumnElement:
    """tsvector over question, answer and keywords.

    Mirrors the ix_chatbot_qa_fulltext index expression term for term so the
    planner can use the index. Index expressions only accept IMMUTABLE
    functions, hence coalesce and || rather than concat_ws.
    """
    empty, space = literal_column("''"), literal_column("' '")
    text = (
        func.coalesce(QAEntry.question, empty)
        + space
        + func.coalesce(QAEntry.answer, empty)
        + space
        + func.coalesce(QAEntry.keywords, empty)
    )
    return func.to_tsvector(_fulltext_config(), text)


async def fulltext_tier(db: AsyncSession, query: TierQuery) -> list[QAEntry]:
    """Tier 3: ranked PostgreSQL full-text match, every keyword a required prefix.

    Raises:
        SearchTierError: The database has no full-text support or the
            query failed. Runs inside a savepoint so a failure leaves the
            surrounding transaction usable.
    """
    if not query.keywords:
        return []

    dialect = db.get_bind().dialect.name
    if dialect != "postgresql":
        raise SearchTierError(f"Full-text search is not available on {dialect}")

    document = fulltext_document()
    terms = func.to_tsquery(
        _fulltext_config(), " & ".join(f"{kw}:*" for kw in query.keywords)
    )
    stmt = (
        select(QAEntry)
        .where(*_scoped(query), document.bool_op("@@")(terms))
        .order_by(func.ts_rank(document, terms).desc(), QAEntry.created_at.desc())
        .limit(_FULLTEXT_LIMIT)
    )

    try:
        async with db.begin_nested():
            result = await db.execute(stmt)
            return list(result.scalars().all())
    except SQLAlchemyError as e:
        raise SearchTierError(f"Full-text search failed: {e}") from e


DEFAULT_TIERS: tuple[tuple[str, SearchTier], ...] = (
    ("substring", substring_tier),
    ("keyword", keyword_tier),
    ("fulltext", fulltext_tier),
)


# ===================================================================
# Retriever
# ===================================================================

class KnowledgeRetriever:
    """Run the search tiers in order and stop at the first non-empty one."""

    def __init__(
        self,
        db: AsyncSession,
        tiers: Sequence[tuple[str, SearchTier]] = DEFAULT_TIERS,
        max_results: int = MAX_RESULTS,
    ) -> None:
        self._db = db
        self._tiers = tuple(tiers)
        self._max_results = max_results

    async def retrieve(self, chatbot_id: uuid.UUID, message: str) -> RetrievalResult:
        """Best-matching Q&A entries for *message*. Empty is a normal outcome."""
        query = TierQuery(
            chatbot_id=chatbot_id,
            message=message,
            keywords=tuple(extract_keywords(message, limit=MAX_MESSAGE_KEYWORDS)),
        )

        if not query.keywords:
            rows = await recent_entries(self._db, query)
            return self._result(rows, "recent", chatbot_id)

        for name, tier in self._tiers:
            try:
                rows = await tier(self._db, query)
            except SearchTierError as e:
                logger.warning(
                    "search_tier_unavailable",
                    tier=name,
                    chatbot_id=str(chatbot_id),
                    error=e.message,
                )
                rows = []
            if rows:
                return self._result(rows, name, chatbot_id)

        logger.debug("knowledge_not_found", chatbot_id=str(chatbot_id))
        return RetrievalResult(entries=[], tier=None)

    def _result(
        self, rows: list[QAEntry], tier: str, chatbot_id: uuid.UUID
    ) -> RetrievalResult:
        entries = [
            KnowledgeEntry(question=row.question, answer=row.answer)
            for row in rows[: self._max_results]
        ]
        logger.info(
            "knowledge_retrieved",
            chatbot_id=str(chatbot_id),
            tier=tier,
            count=len(entries),
        )
        return RetrievalResult(entries=entries, tier=tier if entries else None)
