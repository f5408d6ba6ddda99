"""Database engine, sessions and store operations.

Use explicit imports: ``from knowledgebot.db.postgres import Base``,
``from knowledgebot.db.repositories import DocumentRepository``.
"""
