"""Chat answering.

Imports are intentionally NOT eagerly loaded here. Use explicit imports:
    from knowledgebot.services.agent.core import ChatAgent
"""
