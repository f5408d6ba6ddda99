"""Knowledge pipeline: ingestion, summarization, retrieval, context assembly.

Imports are intentionally NOT eagerly loaded here.
Use explicit imports: ``from knowledgebot.services.rag.retrieval import KnowledgeRetriever``.
"""
