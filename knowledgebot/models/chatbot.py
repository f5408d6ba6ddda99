"""Chatbot ORM model.

Chatbots are created by the account-facing service; this backend only reads
them for ownership and active checks and hangs knowledge off them.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowledgebot.db.postgres import Base


class Chatbot(Base):
    __tablename__ = "chatbots"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships (rows are removed by ON DELETE CASCADE)
    documents: Mapped[list["Document"]] = relationship(  # noqa: F821
        back_populates="chatbot", lazy="noload", passive_deletes=True
    )
    qa_entries: Mapped[list["QAEntry"]] = relationship(  # noqa: F821
        back_populates="chatbot", lazy="noload", passive_deletes=True
    )
    conversations: Mapped[list["Conversation"]] = relationship(  # noqa: F821
        back_populates="chatbot", lazy="noload", passive_deletes=True
    )
