"""Knowledge document ORM model."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowledgebot.db.postgres import Base
from knowledgebot.models.types import JSONType


class DocumentKind(str, Enum):
    PDF = "pdf"
    LINK = "link"


class DocumentStatus(str, Enum):
    """Ingestion lifecycle.

    pending -> processing -> completed | failed, and failed -> processing
    on reprocess. processed_content is set only while completed and
    error_message only while failed.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint("kind IN ('pdf', 'link')", name="ck_documents_kind"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_documents_status",
        ),
        CheckConstraint(
            "(processed_content IS NOT NULL) = (status = 'completed')",
            name="ck_documents_content_when_completed",
        ),
        CheckConstraint(
            "(error_message IS NOT NULL) = (status = 'failed')",
            name="ck_documents_error_when_failed",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    chatbot_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chatbots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(Text, nullable=False)  # 'pdf' | 'link'
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType, nullable=True
    )
    status: Mapped[str] = mapped_column(
        Text, default=DocumentStatus.PENDING.value, nullable=False
    )  # 'pending' | 'processing' | 'completed' | 'failed'
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    chatbot: Mapped["Chatbot"] = relationship(  # noqa: F821
        back_populates="documents", lazy="noload"
    )
