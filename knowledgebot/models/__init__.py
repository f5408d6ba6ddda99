"""SQLAlchemy ORM models.

Individual models should be imported explicitly:
    from knowledgebot.models.document import Document

All models are imported here so Alembic can detect them during migration
autogenerate. This module is imported by alembic/env.py.
"""

from knowledgebot.models.chatbot import Chatbot
from knowledgebot.models.conversation import Conversation
from knowledgebot.models.document import Document, DocumentKind, DocumentStatus
from knowledgebot.models.qa import QAEntry

__all__ = [
    "Chatbot",
    "Document",
    "DocumentKind",
    "DocumentStatus",
    "QAEntry",
    "Conversation",
]
