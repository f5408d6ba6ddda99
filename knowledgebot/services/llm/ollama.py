"""Ollama inference provider.

Talks to an Ollama-compatible server over HTTP:
    GET  /api/tags      → installed models
    POST /api/pull      → download a model
    POST /api/generate  → non-streamed completion
Every call has a timeout and structured error logging. Failures surface
as InferenceError so callers handle one exception type.
"""

from typing import Any

import httpx
import structlog

from knowledgebot.core.exceptions import InferenceError
from knowledgebot.services.llm.base import LLMProvider, LLMResponse

logger = structlog.get_logger(__name__)


class OllamaProvider(LLMProvider):
    """Inference backend backed by an Ollama HTTP server."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 60.0,
        pull_timeout_seconds: float = 600.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url)
        self._owns_client = client is None
        self._timeout = timeout_seconds
        self._pull_timeout = pull_timeout_seconds
        logger.info("ollama_provider_initialized", base_url=base_url)

    async def generate(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a complete response using /api/generate."""
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        }
        data = await self._post("/api/generate", payload, timeout=self._timeout)
        result = LLMResponse(
            text=str(data.get("response") or ""),
            model=model,
            input_tokens=int(data.get("prompt_eval_count") or 0),
            output_tokens=int(data.get("eval_count") or 0),
        )
        logger.debug(
            "ollama_generate_ok",
            model=model,
            prompt_len=len(prompt),
            output_tokens=result.output_tokens,
        )
        return result

    async def list_models(self) -> list[str]:
        try:
            response = await self._client.get("/api/tags", timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("ollama_list_models_failed", error=str(e))
            raise InferenceError(f"Failed to list models: {e}") from e

        return [m["name"] for m in data.get("models", []) if m.get("name")]

    async def pull_model(self, name: str) -> None:
        logger.info("ollama_pull_start", model=name)
        await self._post(
            "/api/pull",
            {"name": name, "stream": False},
            timeout=self._pull_timeout,
        )
        logger.info("ollama_pull_done", model=name)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _post(
        self, path: str, payload: dict[str, Any], timeout: float
    ) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error("ollama_request_timeout", path=path)
            raise InferenceError(f"Inference request to {path} timed out") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("ollama_request_failed", path=path, error=str(e))
            raise InferenceError(f"Inference request to {path} failed: {e}") from e

        if isinstance(data, dict) and data.get("error"):
            logger.error("ollama_request_rejected", path=path, error=data["error"])
            raise InferenceError(f"Inference request to {path} failed: {data['error']}")
        return data if isinstance(data, dict) else {}
