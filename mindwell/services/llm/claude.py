"""
Claude LLM provider implementation.

Uses the Anthropic Python SDK (``anthropic.AsyncAnthropic``). A semaphore caps
concurrent requests across pipeline jobs and transient errors are retried.
"""

import asyncio
import logging

from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    RateLimitError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mindwell.core.config import get_settings
from mindwell.services.llm.base import BaseLLM

logger = logging.getLogger(__name__)

_JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."


class ClaudeLLM(BaseLLM):
    """Claude API provider with a concurrency cap and retry logic."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int = 512,
        temperature: float = 0.3,
        max_concurrent: int = 5,
    ) -> None:
        settings = get_settings()
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._client = AsyncAnthropic(api_key=api_key or settings.claude_api_key)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=16),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    async def _call_api(
        self,
        user_prompt: str,
        system: str | None,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Send one messages request, translating SDK errors to builtins."""
        async with self._semaphore:
            request: dict = {
                "model": self._model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": user_prompt}],
            }
            if system:
                request["system"] = system

            try:
                response = await self._client.messages.create(**request)
            except APITimeoutError as exc:
                logger.warning("Claude API timeout: %s", exc)
                raise TimeoutError(f"Claude API request timed out: {exc}") from exc
            except APIConnectionError as exc:
                logger.warning("Claude API connection error: %s", exc)
                raise ConnectionError(f"Failed to connect to Claude API: {exc}") from exc
            except RateLimitError as exc:
                logger.warning("Claude API rate limit hit: %s", exc)
                raise ConnectionError(f"Claude API rate limit exceeded: {exc}") from exc
            except APIStatusError as exc:
                if exc.status_code >= 500:
                    logger.warning("Claude API server error %s: %s", exc.status_code, exc)
                    raise ConnectionError(f"Claude API server error: {exc}") from exc
                logger.error("Claude API rejected request (%s): %s", exc.status_code, exc)
                raise RuntimeError(f"Claude API error: {exc}") from exc

        text_blocks = [block.text for block in response.content if getattr(block, "type", "text") == "text"]
        return "".join(text_blocks)

    async def generate(self, prompt: str, **kwargs) -> str:
        system = kwargs.get("system")
        if kwargs.get("json_mode"):
            system = f"{system}\n{_JSON_INSTRUCTION}" if system else _JSON_INSTRUCTION
        temperature = kwargs.get("temperature")
        return await self._call_api(
            user_prompt=prompt,
            system=system,
            temperature=self._temperature if temperature is None else temperature,
            max_tokens=kwargs.get("max_tokens") or self._max_tokens,
        )
