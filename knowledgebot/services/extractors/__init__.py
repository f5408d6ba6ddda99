"""Content extractors: turn a document source into plain text + metadata.

Use explicit imports: ``from knowledgebot.services.extractors.pdf import PdfExtractor``.
"""
