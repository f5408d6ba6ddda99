"""initial schema: chatbots, documents, Q&A, conversations

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Built only from IMMUTABLE functions; the ranked search tier queries the same expression.
QA_FULLTEXT_EXPRESSION = (
    "to_tsvector('simple'::regconfig, "
    "coalesce(question, '') || ' ' || coalesce(answer, '') || ' ' || coalesce(keywords, ''))"
)


def upgrade() -> None:
    # --- chatbots ---
    op.create_table(
        "chatbots",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("owner_id", UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_chatbots_owner_id", "chatbots", ["owner_id"])

    # --- documents ---
    op.create_table(
        "documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "chatbot_id",
            UUID(as_uuid=True),
            sa.ForeignKey("chatbots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=True),
        sa.Column("original_name", sa.Text(), nullable=True),
        sa.Column("processed_content", sa.Text(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.CheckConstraint("kind IN ('pdf', 'link')", name="ck_documents_kind"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_documents_status",
        ),
        sa.CheckConstraint(
            "(processed_content IS NOT NULL) = (status = 'completed')",
            name="ck_documents_content_when_completed",
        ),
        sa.CheckConstraint(
            "(error_message IS NOT NULL) = (status = 'failed')",
            name="ck_documents_error_when_failed",
        ),
    )
    op.create_index("ix_documents_chatbot_id", "documents", ["chatbot_id"])
    op.create_index("ix_documents_chatbot_status", "documents", ["chatbot_id", "status"])

    # --- chatbot_qa ---
    op.create_table(
        "chatbot_qa",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "chatbot_id",
            UUID(as_uuid=True),
            sa.ForeignKey("chatbots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=False),
        sa.Column("keywords", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_chatbot_qa_chatbot_id", "chatbot_qa", ["chatbot_id"])
    # Full-text index backing the ranked search tier
    op.execute(
        f"CREATE INDEX ix_chatbot_qa_fulltext ON chatbot_qa USING GIN ({QA_FULLTEXT_EXPRESSION})"
    )

    # --- conversations ---
    op.create_table(
        "conversations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "chatbot_id",
            UUID(as_uuid=True),
            sa.ForeignKey("chatbots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("session_id", sa.Text(), nullable=True),
        sa.Column("user_message", sa.Text(), nullable=False),
        sa.Column("bot_response", sa.Text(), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
    )
    op.create_index("ix_conversations_chatbot_id", "conversations", ["chatbot_id"])


def downgrade() -> None:
    op.drop_table("conversations")
    op.execute("DROP INDEX IF EXISTS ix_chatbot_qa_fulltext")
    op.drop_table("chatbot_qa")
    op.drop_table("documents")
    op.drop_table("chatbots")
