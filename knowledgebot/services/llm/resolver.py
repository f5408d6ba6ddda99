"""Pick an inference model that the backend can actually serve.

Order: preferred model if installed → pull preferred → first installed
configured fallback. The resolver holds no mutable state; the chosen name
is returned to the caller for that call only.
"""

from collections.abc import Sequence

import structlog

from knowledgebot.core.exceptions import InferenceError, NoModelAvailableError
from knowledgebot.services.llm.base import LLMProvider

logger = structlog.get_logger(__name__)


class ModelResolver:
    """Resolve a usable model name against the live backend."""

    def __init__(self, llm: LLMProvider, fallback_models: Sequence[str]) -> None:
        self._llm = llm
        self._fallbacks = tuple(fallback_models)

    async def ensure_available(self, preferred: str) -> str:
        """Return *preferred* if the backend has or can pull it, else a fallback.

        Raises:
            NoModelAvailableError: When neither the preferred model nor any
                fallback is available.
        """
        try:
            installed = await self._llm.list_models()
            if preferred in installed:
                return preferred

            logger.info("model_missing_pulling", model=preferred)
            await self._llm.pull_model(preferred)
            return preferred
        except InferenceError as e:
            logger.warning("model_unavailable", model=preferred, error=str(e))

        return await self._first_installed_fallback(preferred)

    async def _first_installed_fallback(self, preferred: str) -> str:
        try:
            installed = set(await self._llm.list_models())
        except InferenceError as e:
            raise NoModelAvailableError(
                f"Inference backend unavailable: {e.message}"
            ) from e

        for name in self._fallbacks:
            if name in installed:
                logger.info("model_fallback_selected", preferred=preferred, model=name)
                return name

        raise NoModelAvailableError(
            f"Model '{preferred}' is unavailable and no fallback model is installed"
        )
