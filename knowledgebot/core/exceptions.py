"""Custom exception classes for structured error handling."""

from enum import Enum
from typing import Any


class KnowledgeBotError(Exception):
    """Base exception for all knowledge bot errors."""

    def __init__(self, code: str, message: str, status_code: int = 500) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


# ---------------------------------------------------------------------------
# Caller input
# ---------------------------------------------------------------------------


class InvalidInputError(KnowledgeBotError):
    def __init__(self, message: str = "Invalid input") -> None:
        super().__init__(code="INVALID_INPUT", message=message, status_code=400)


class InvalidFileTypeError(InvalidInputError):
    def __init__(self, message: str = "Invalid file type. Only PDF files are allowed.") -> None:
        super().__init__(message)
        self.code = "INVALID_FILE_TYPE"


class InvalidTokenError(KnowledgeBotError):
    def __init__(self, message: str = "Invalid or missing access token") -> None:
        super().__init__(code="INVALID_TOKEN", message=message, status_code=401)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class ExtractionError(KnowledgeBotError):
    def __init__(self, message: str = "Content extraction failed") -> None:
        super().__init__(code="EXTRACTION_FAILED", message=message, status_code=422)


class InsufficientContentError(ExtractionError):
    def __init__(self, message: str = "Insufficient content extracted") -> None:
        super().__init__(message)
        self.code = "INSUFFICIENT_CONTENT"


class NetworkErrorKind(str, Enum):
    """Classified reason a remote fetch failed."""

    NOT_FOUND = "not_found"
    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    TLS = "tls"
    HTTP_STATUS = "http_status"
    OTHER = "other"


class NetworkError(ExtractionError):
    def __init__(
        self,
        message: str = "Failed to fetch remote content",
        kind: NetworkErrorKind = NetworkErrorKind.OTHER,
    ) -> None:
        super().__init__(message)
        self.code = "NETWORK_ERROR"
        self.status_code = 502
        self.kind = kind


class SummarizationError(KnowledgeBotError):
    def __init__(self, message: str = "Summarization failed") -> None:
        super().__init__(code="SUMMARIZATION_FAILED", message=message, status_code=502)


class InferenceError(KnowledgeBotError):
    def __init__(self, message: str = "Inference backend request failed") -> None:
        super().__init__(code="INFERENCE_FAILED", message=message, status_code=502)


class NoModelAvailableError(KnowledgeBotError):
    def __init__(self, message: str = "No inference model is available") -> None:
        super().__init__(code="NO_MODEL_AVAILABLE", message=message, status_code=503)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class SearchTierError(KnowledgeBotError):
    def __init__(self, message: str = "Search tier failed") -> None:
        super().__init__(code="SEARCH_TIER_FAILED", message=message, status_code=500)


# ---------------------------------------------------------------------------
# State and lookups
# ---------------------------------------------------------------------------


class InvalidStateTransitionError(KnowledgeBotError):
    def __init__(self, message: str = "Invalid document state transition") -> None:
        super().__init__(code="INVALID_STATE_TRANSITION", message=message, status_code=409)


class DuplicateDocumentError(KnowledgeBotError):
    def __init__(self, message: str = "This URL has already been added to this chatbot") -> None:
        super().__init__(code="DUPLICATE_DOCUMENT", message=message, status_code=409)


class DocumentNotFoundError(KnowledgeBotError):
    def __init__(self, message: str = "Document not found") -> None:
        super().__init__(code="DOCUMENT_NOT_FOUND", message=message, status_code=404)


class ChatbotNotFoundError(KnowledgeBotError):
    def __init__(self, message: str = "Chatbot not found") -> None:
        super().__init__(code="CHATBOT_NOT_FOUND", message=message, status_code=404)


class QAEntryNotFoundError(KnowledgeBotError):
    def __init__(self, message: str = "Q&A entry not found") -> None:
        super().__init__(code="QA_ENTRY_NOT_FOUND", message=message, status_code=404)


class DatabaseConnectionError(KnowledgeBotError):
    def __init__(self, message: str = "Database connection failed") -> None:
        super().__init__(code="DATABASE_CONNECTION_ERROR", message=message, status_code=503)
