"""Q&A management request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QACreateRequest(BaseModel):
    """POST /v1/qa request body."""

    chatbot_id: uuid.UUID
    question: str
    answer: str


class QAItem(BaseModel):
    question: str
    answer: str


class QABulkCreateRequest(BaseModel):
    """POST /v1/qa/bulk request body."""

    chatbot_id: uuid.UUID
    entries: list[QAItem] = Field(min_length=1)


class QAUpdateRequest(BaseModel):
    """PUT /v1/qa/{qa_id} request body. Omitted fields are left unchanged."""

    question: str | None = None
    answer: str | None = None
    is_active: bool | None = None


class QAResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    chatbot_id: uuid.UUID
    question: str
    answer: str
    keywords: str
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


class QAListResponse(BaseModel):
    entries: list[QAResponse]


class QABulkCreateResponse(BaseModel):
    added: int
    entries: list[QAResponse]


class QADeleteResponse(BaseModel):
    deleted: bool
