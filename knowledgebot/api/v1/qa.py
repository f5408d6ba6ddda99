"""Q&A management endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.api.deps import (
    get_current_owner,
    get_db,
    get_qa_service,
    require_owned_chatbot,
)
from knowledgebot.schemas.qa import (
    QABulkCreateRequest,
    QABulkCreateResponse,
    QACreateRequest,
    QADeleteResponse,
    QAListResponse,
    QAResponse,
    QAUpdateRequest,
)
from knowledgebot.services.knowledge import QAInput, QAService

router = APIRouter(prefix="/qa", tags=["qa"])


@router.post("", status_code=201, response_model=QAResponse)
async def add_qa(
    body: QACreateRequest,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    qa: QAService = Depends(get_qa_service),
) -> QAResponse:
    """Add a single Q&A entry."""
    await require_owned_chatbot(db, body.chatbot_id, owner_id)
    entry = await qa.add(body.chatbot_id, body.question, body.answer)
    return QAResponse.model_validate(entry)


@router.post("/bulk", status_code=201, response_model=QABulkCreateResponse)
async def bulk_add_qa(
    body: QABulkCreateRequest,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    qa: QAService = Depends(get_qa_service),
) -> QABulkCreateResponse:
    """Add many Q&A entries; blank ones are skipped."""
    await require_owned_chatbot(db, body.chatbot_id, owner_id)
    entries = await qa.bulk_add(
        body.chatbot_id,
        [QAInput(question=e.question, answer=e.answer) for e in body.entries],
    )
    return QABulkCreateResponse(
        added=len(entries),
        entries=[QAResponse.model_validate(e) for e in entries],
    )


@router.get("/list/{chatbot_id}", response_model=QAListResponse)
async def list_qa(
    chatbot_id: UUID,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    qa: QAService = Depends(get_qa_service),
) -> QAListResponse:
    """List a chatbot's Q&A entries, newest first."""
    await require_owned_chatbot(db, chatbot_id, owner_id)
    entries = await qa.list_for_chatbot(chatbot_id)
    return QAListResponse(entries=[QAResponse.model_validate(e) for e in entries])


@router.put("/{qa_id}", response_model=QAResponse)
async def update_qa(
    qa_id: UUID,
    body: QAUpdateRequest,
    owner_id: UUID = Depends(get_current_owner),
    qa: QAService = Depends(get_qa_service),
) -> QAResponse:
    """Update question, answer or active flag of an entry."""
    entry = await qa.get_owned(qa_id, owner_id)
    entry = await qa.update(
        entry,
        question=body.question,
        answer=body.answer,
        is_active=body.is_active,
    )
    return QAResponse.model_validate(entry)


@router.delete("/{qa_id}", response_model=QADeleteResponse)
async def delete_qa(
    qa_id: UUID,
    owner_id: UUID = Depends(get_current_owner),
    qa: QAService = Depends(get_qa_service),
) -> QADeleteResponse:
    """Delete a Q&A entry."""
    entry = await qa.get_owned(qa_id, owner_id)
    await qa.delete(entry)
    return QADeleteResponse(deleted=True)
