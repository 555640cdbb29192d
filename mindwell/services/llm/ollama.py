"""
Ollama LLM provider implementation.

Uses the Ollama Python SDK (``ollama.AsyncClient``) against a locally running
server. Transient connection failures are retried.
"""

import logging

import httpx
from ollama import AsyncClient, ResponseError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mindwell.core.config import get_settings
from mindwell.services.llm.base import BaseLLM

logger = logging.getLogger(__name__)


class OllamaLLM(BaseLLM):
    """Ollama local LLM provider with retry logic.

    Args:
        base_url: Ollama server URL (falls back to settings if not provided).
        model: Model name to use (e.g. "llama3.2").
        temperature: Default sampling temperature.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float = 0.3,
    ) -> None:
        settings = get_settings()
        self._base_url = base_url or settings.ollama_base_url
        self._model = model or settings.ollama_model
        self._temperature = temperature
        self._client = AsyncClient(host=self._base_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=16),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    async def _call_api(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        json_mode: bool = False,
    ) -> str:
        """Send a chat request, translating SDK errors to builtins."""
        try:
            response = await self._client.chat(
                model=self._model,
                messages=messages,
                format="json" if json_mode else "",
                options={"temperature": temperature},
            )
        except (ConnectionError, httpx.ConnectError) as exc:
            logger.warning("Ollama connection error (%s): %s", self._base_url, exc)
            raise ConnectionError(f"Failed to connect to Ollama at {self._base_url}: {exc}") from exc
        except (TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("Ollama timeout (%s): %s", self._base_url, exc)
            raise TimeoutError(f"Ollama request timed out ({self._base_url}): {exc}") from exc
        except ResponseError as exc:
            logger.error("Ollama response error: %s", exc)
            raise RuntimeError(f"Ollama error: {exc}") from exc

        return response.message.content or ""

    async def generate(self, prompt: str, **kwargs) -> str:
        messages: list[dict[str, str]] = []
        system = kwargs.get("system")
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        temperature = kwargs.get("temperature")
        return await self._call_api(
            messages=messages,
            temperature=self._temperature if temperature is None else temperature,
            json_mode=bool(kwargs.get("json_mode")),
        )
