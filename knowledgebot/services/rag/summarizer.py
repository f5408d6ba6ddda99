"""Condense extracted document text into chatbot training knowledge."""

import structlog

from knowledgebot.core.exceptions import (
    KnowledgeBotError,
    NoModelAvailableError,
    SummarizationError,
)
from knowledgebot.services.llm.base import InferenceConfig, LLMProvider
from knowledgebot.services.llm.resolver import ModelResolver

logger = structlog.get_logger(__name__)

_SUMMARY_PROMPT = (
    "Analyze and summarize this content for chatbot training. Extract key "
    "information, main topics, and important details that would be useful "
    "for answering user questions:\n\n"
    "Content: {content}\n\n"
    "Please provide a comprehensive summary that captures the essential information:"
)


class Summarizer:
    """Ask the inference backend for a training summary of a document."""

    def __init__(
        self,
        llm: LLMProvider,
        resolver: ModelResolver,
        config: InferenceConfig,
    ) -> None:
        self._llm = llm
        self._resolver = resolver
        self._config = config

    async def summarize(self, text: str) -> str:
        """Return the summary text.

        Raises:
            NoModelAvailableError: No model could be resolved.
            SummarizationError: The backend failed or returned nothing.
        """
        model = await self._resolver.ensure_available(self._config.model)

        try:
            response = await self._llm.generate(
                prompt=_SUMMARY_PROMPT.format(content=text),
                model=model,
                max_tokens=self._config.summary_max_tokens,
                temperature=self._config.summary_temperature,
            )
        except NoModelAvailableError:
            raise
        except KnowledgeBotError as e:
            raise SummarizationError(
                f"Failed to process document with AI: {e.message}"
            ) from e
        except Exception as e:
            raise SummarizationError(f"Failed to process document with AI: {e}") from e

        summary = response.text.strip()
        if not summary:
            raise SummarizationError("Failed to process document with AI: empty summary")

        logger.info(
            "document_summarized",
            model=model,
            input_len=len(text),
            summary_len=len(summary),
        )
        return summary
