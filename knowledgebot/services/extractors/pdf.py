"""PDF text extraction with pypdf.

Parsing is synchronous and CPU-bound, so ``extract`` runs it through
``asyncio.to_thread``. Validation (size, extension, presence on disk) runs
before any parsing and raises InvalidInputError.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any

import structlog
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from knowledgebot.core.exceptions import ExtractionError, InvalidFileTypeError, InvalidInputError
from knowledgebot.services.extractors.base import (
    ContentExtractor,
    DocumentSource,
    ExtractedContent,
    PdfSource,
    normalize_whitespace,
)

logger = structlog.get_logger(__name__)

_DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class PdfExtractor(ContentExtractor):
    """Extract text and page metadata from a PDF on local disk."""

    def __init__(self, max_bytes: int = _DEFAULT_MAX_BYTES) -> None:
        self._max_bytes = max_bytes

    def validate(self, source: DocumentSource) -> None:
        self._checked(source)

    def _checked(self, source: DocumentSource) -> PdfSource:
        if not isinstance(source, PdfSource):
            raise InvalidInputError("PDF extractor received a non-PDF source")

        if not source.file_path.lower().endswith(".pdf"):
            raise InvalidFileTypeError()

        try:
            size = os.path.getsize(source.file_path)
        except OSError as e:
            raise InvalidInputError("Source file is no longer available") from e

        if size > self._max_bytes:
            limit_mb = self._max_bytes // (1024 * 1024)
            raise InvalidInputError(
                f"PDF file is too large. Maximum size allowed is {limit_mb}MB."
            )
        return source

    async def extract(self, source: DocumentSource) -> ExtractedContent:
        source = self._checked(source)

        text, metadata = await asyncio.to_thread(_read_pdf, source.file_path)
        logger.info(
            "pdf_extracted",
            file_path=source.file_path,
            pages=metadata.get("pages"),
            text_len=len(text),
        )
        return ExtractedContent(
            text=text,
            metadata=metadata,
            title=source.original_name,
        )


def _read_pdf(file_path: str) -> tuple[str, dict[str, Any]]:
    """Parse *file_path* and return (normalized text, metadata).

    Synchronous; call via ``asyncio.to_thread`` from async context.
    """
    try:
        reader = PdfReader(file_path)
        pages = [(page.extract_text() or "") for page in reader.pages]
    except (PyPdfError, OSError, ValueError) as e:
        logger.error("pdf_parse_failed", file_path=file_path, error=str(e))
        raise ExtractionError(f"Failed to extract text from PDF: {e}") from e

    return normalize_whitespace("\n".join(pages)), _read_metadata(reader, len(pages))


def _read_metadata(reader: PdfReader, page_count: int) -> dict[str, Any]:
    """Best-effort document info; a broken info dictionary yields an empty one."""
    info: dict[str, str] = {}
    try:
        raw_info = reader.metadata or {}
        info = {str(k).lstrip("/"): str(v) for k, v in raw_info.items()}
    except (PyPdfError, ValueError, TypeError, KeyError) as e:
        logger.warning("pdf_metadata_unreadable", error=str(e))

    return {
        "pages": page_count,
        "info": info,
        "pdf_version": reader.pdf_header.lstrip("%").replace("PDF-", "") or None,
    }
