"""Document ingestion endpoints."""

import os
import uuid
from pathlib import Path
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from knowledgebot.api.deps import (
    get_current_owner,
    get_db,
    get_ingestion_coordinator,
    require_owned_chatbot,
)
from knowledgebot.core.config import settings
from knowledgebot.core.exceptions import (
    DocumentNotFoundError,
    InvalidFileTypeError,
    InvalidInputError,
)
from knowledgebot.db.repositories import DocumentRepository
from knowledgebot.models.document import Document
from knowledgebot.schemas.documents import (
    AddLinkRequest,
    DocumentDeleteResponse,
    DocumentListItem,
    DocumentListResponse,
    DocumentStatusResponse,
    IngestResponse,
)
from knowledgebot.services.extractors.base import LinkSource, PdfSource
from knowledgebot.services.rag.ingestion import (
    IngestionAck,
    IngestionCoordinator,
    release_file,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def _get_extension(filename: str) -> str:
    """Extract file extension (lowercase, no dot)."""
    _, ext = os.path.splitext(filename)
    return ext.lstrip(".").lower()


def _ack_response(ack: IngestionAck, message: str) -> IngestResponse:
    return IngestResponse(
        document_id=ack.document_id,
        status=ack.status.value,
        message=f"{message} Poll /v1/documents/{ack.document_id}/status",
    )


async def _owned_document(
    db: AsyncSession, document_id: UUID, owner_id: UUID
) -> Document:
    doc = await DocumentRepository(db).get_owned(document_id, owner_id)
    if doc is None:
        raise DocumentNotFoundError()
    return doc


@router.post("/upload-pdf", status_code=201, response_model=IngestResponse)
async def upload_pdf(
    chatbot_id: UUID = Form(...),
    file: UploadFile = File(...),
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
) -> IngestResponse:
    """Store an uploaded PDF and start ingesting it."""
    await require_owned_chatbot(db, chatbot_id, owner_id)

    if not file.filename or _get_extension(file.filename) != "pdf":
        raise InvalidFileTypeError()

    content = await file.read(settings.max_pdf_bytes + 1)
    if len(content) > settings.max_pdf_bytes:
        limit_mb = settings.max_pdf_bytes // (1024 * 1024)
        raise InvalidInputError(
            f"PDF file is too large. Maximum size allowed is {limit_mb}MB."
        )

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    file_path = upload_dir / f"pdf-{uuid.uuid4().hex}.pdf"
    with open(file_path, "wb") as out:
        out.write(content)

    try:
        ack = await coordinator.submit(
            db,
            chatbot_id,
            PdfSource(file_path=str(file_path), original_name=file.filename),
        )
    except Exception:
        release_file(str(file_path))
        raise

    return _ack_response(ack, "PDF uploaded. Processing started.")


@router.post("/add-link", status_code=201, response_model=IngestResponse)
async def add_link(
    body: AddLinkRequest,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
) -> IngestResponse:
    """Attach a web page to a chatbot and start scraping it."""
    await require_owned_chatbot(db, body.chatbot_id, owner_id)
    ack = await coordinator.submit(db, body.chatbot_id, LinkSource(url=body.url.strip()))
    return _ack_response(ack, "Link added. Processing started.")


@router.get("/list/{chatbot_id}", response_model=DocumentListResponse)
async def list_documents(
    chatbot_id: UUID,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> DocumentListResponse:
    """List a chatbot's documents, newest first."""
    await require_owned_chatbot(db, chatbot_id, owner_id)
    docs = await DocumentRepository(db).list_for_chatbot(chatbot_id)

    return DocumentListResponse(
        documents=[
            DocumentListItem(
                id=d.id,
                kind=d.kind,
                source_url=d.source_url,
                original_name=d.original_name,
                status=d.status,
                error_message=d.error_message,
                metadata=d.metadata_,
                created_at=d.created_at,
                updated_at=d.updated_at,
            )
            for d in docs
        ]
    )


@router.get("/{document_id}/status", response_model=DocumentStatusResponse)
async def get_document_status(
    document_id: UUID,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> DocumentStatusResponse:
    """Get the ingestion status of a document."""
    doc = await _owned_document(db, document_id, owner_id)
    return DocumentStatusResponse(
        document_id=doc.id,
        status=doc.status,
        error_message=doc.error_message,
        updated_at=doc.updated_at,
    )


@router.post("/{document_id}/reprocess", response_model=IngestResponse)
async def reprocess_document(
    document_id: UUID,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
) -> IngestResponse:
    """Retry ingestion of a failed document."""
    await _owned_document(db, document_id, owner_id)
    ack = await coordinator.reprocess(db, document_id)
    return _ack_response(ack, "Reprocessing started.")


@router.delete("/{document_id}", response_model=DocumentDeleteResponse)
async def delete_document(
    document_id: UUID,
    owner_id: UUID = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
    coordinator: IngestionCoordinator = Depends(get_ingestion_coordinator),
) -> DocumentDeleteResponse:
    """Delete a document and its uploaded file."""
    await _owned_document(db, document_id, owner_id)
    await coordinator.delete(db, document_id)
    return DocumentDeleteResponse(deleted=True)
