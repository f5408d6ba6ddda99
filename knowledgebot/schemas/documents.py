"""Document ingestion request/response schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class AddLinkRequest(BaseModel):
    """POST /v1/documents/add-link request body."""

    chatbot_id: uuid.UUID
    url: str


class IngestResponse(BaseModel):
    """Acknowledgement for upload-pdf, add-link and reprocess."""

    model_config = ConfigDict(from_attributes=True)

    document_id: uuid.UUID
    status: str
    message: str


class DocumentStatusResponse(BaseModel):
    """GET /v1/documents/{document_id}/status response body."""

    model_config = ConfigDict(from_attributes=True)

    document_id: uuid.UUID
    status: str
    error_message: str | None = None
    updated_at: datetime | None = None


class DocumentListItem(BaseModel):
    """Single document in the list response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: str
    source_url: str | None = None
    original_name: str | None = None
    status: str
    error_message: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime | None = None


class DocumentListResponse(BaseModel):
    """GET /v1/documents/list/{chatbot_id} response body."""

    documents: list[DocumentListItem]


class DocumentDeleteResponse(BaseModel):
    """DELETE /v1/documents/{document_id} response body."""

    deleted: bool
