"""Document sources, extraction results and the extractor contract.

A source is a closed union: PdfSource | LinkSource. The registry picks the
extractor by source type, so adding a kind means adding a source class and
an extractor, not another string comparison.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from knowledgebot.models.document import DocumentKind

_HORIZONTAL_WS = re.compile(r"[ \t\f\v\r]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class PdfSource:
    """An uploaded PDF stored on local disk."""

    kind: ClassVar[DocumentKind] = DocumentKind.PDF

    file_path: str
    original_name: str | None = None


@dataclass(frozen=True)
class LinkSource:
    """A public web page."""

    kind: ClassVar[DocumentKind] = DocumentKind.LINK

    url: str


DocumentSource = Union[PdfSource, LinkSource]


@dataclass
class ExtractedContent:
    """Plain text pulled from a source, plus extractor-defined metadata."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
    title: str | None = None


class ContentExtractor(ABC):
    """Extractor contract.

    ``validate`` runs synchronously before a document row is created so
    input errors reach the caller directly. ``extract`` runs inside the
    detached ingestion task.
    """

    @abstractmethod
    def validate(self, source: DocumentSource) -> None:
        """Raise InvalidInputError if *source* can never be extracted."""
        ...

    @abstractmethod
    async def extract(self, source: DocumentSource) -> ExtractedContent:
        """Return the source's text and metadata.

        Raises:
            InvalidInputError, ExtractionError, NetworkError,
            InsufficientContentError
        """
        ...


class ExtractorRegistry:
    """Maps each source type to the extractor that handles it."""

    def __init__(self, pdf: ContentExtractor, link: ContentExtractor) -> None:
        self._pdf = pdf
        self._link = link

    def for_source(self, source: DocumentSource) -> ContentExtractor:
        if isinstance(source, PdfSource):
            return self._pdf
        if isinstance(source, LinkSource):
            return self._link
        raise TypeError(f"Unsupported document source: {type(source).__name__}")


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace and cap blank lines at one."""
    lines = [_HORIZONTAL_WS.sub(" ", line).strip() for line in text.split("\n")]
    return _EXCESS_NEWLINES.sub("\n\n", "\n".join(lines)).strip()
