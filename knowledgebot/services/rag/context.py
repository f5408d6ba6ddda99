"""Build the context block handed to the response generator."""

from collections.abc import Sequence

from knowledgebot.services.rag.retrieval import KnowledgeEntry

NO_CONTEXT_INSTRUCTION = (
    "No specific context available. Please provide general helpful responses."
)
_KNOWLEDGE_HEADER = "=== CUSTOM KNOWLEDGE ==="
_KNOWLEDGE_FOOTER = "=== END CUSTOM KNOWLEDGE ==="


def assemble_context(
    documents: Sequence[str],
    entries: Sequence[KnowledgeEntry],
    max_chars: int | None = None,
) -> str:
    """Join document summaries and append retrieved Q&A as a delimited block.

    Documents are added in order until *max_chars* would be exceeded; a
    document that does not fit is cut at the boundary. With no documents
    the base context is NO_CONTEXT_INSTRUCTION.
    """
    base = _join_bounded([d.strip() for d in documents if d and d.strip()], max_chars)
    if not base:
        base = NO_CONTEXT_INSTRUCTION

    if not entries:
        return base

    pairs = "\n\n".join(f"Q: {e.question}\nA: {e.answer}" for e in entries)
    return f"{base}\n\n{_KNOWLEDGE_HEADER}\n{pairs}\n{_KNOWLEDGE_FOOTER}"


def _join_bounded(parts: list[str], max_chars: int | None) -> str:
    if max_chars is None:
        return "\n\n".join(parts)

    kept: list[str] = []
    used = 0
    for part in parts:
        separator = 2 if kept else 0
        room = max_chars - used - separator
        if room <= 0:
            break
        if len(part) > room:
            kept.append(part[:room])
            break
        kept.append(part)
        used += separator + len(part)
    return "\n\n".join(kept)
