"""Abstract inference backend interface.

All inference implementations must inherit from this class.
Business logic never imports a concrete provider directly.
The concrete provider is instantiated once in the FastAPI lifespan
and injected everywhere via Depends() or constructor arguments.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from knowledgebot.core.config import Settings


@dataclass(frozen=True)
class LLMResponse:
    """Structured response from a generate call."""

    text: str
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class InferenceConfig:
    """Immutable inference settings, built once at startup.

    The preferred model is a configuration value only; the model actually
    used for a call is whatever ModelResolver.ensure_available() returns.
    """

    base_url: str = "http://localhost:11434"
    model: str = "llama3:8b"
    fallback_models: tuple[str, ...] = field(
        default=("llama3:8b", "llama2:7b", "mistral:7b", "codellama:7b")
    )
    timeout_seconds: float = 60.0
    pull_timeout_seconds: float = 600.0
    summary_temperature: float = 0.7
    summary_max_tokens: int = 1000
    response_temperature: float = 0.7
    response_max_tokens: int = 500

    @classmethod
    def from_settings(cls, settings: Settings) -> InferenceConfig:
        return cls(
            base_url=settings.inference_base_url,
            model=settings.inference_model,
            fallback_models=settings.fallback_models,
            timeout_seconds=settings.inference_timeout_seconds,
            pull_timeout_seconds=settings.inference_pull_timeout_seconds,
        )


class LLMProvider(ABC):
    """Abstract base class for inference backends."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a complete, non-streamed completion.

        Args:
            prompt: Full prompt text.
            model: Model name, as returned by the model resolver.
            max_tokens: Maximum tokens in the generated response.
            temperature: Sampling temperature (0.0–1.0).

        Returns:
            LLMResponse with the completion text.

        Raises:
            InferenceError: If the backend call fails or times out.
        """
        ...

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the names of models available on the backend.

        Raises:
            InferenceError: If the backend cannot be queried.
        """
        ...

    @abstractmethod
    async def pull_model(self, name: str) -> None:
        """Ask the backend to download *name*.

        Raises:
            InferenceError: If the pull fails.
        """
        ...
