"""Shared plumbing for the LLM-backed analysis stages."""

import json
import logging

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from mindwell.core.exceptions import PipelineStageError
from mindwell.core.utils import strip_code_fences
from mindwell.services.llm.base import BaseLLM

logger = logging.getLogger(__name__)


class BaseAnalyzer:
    """Base for stages that prompt an LLM and parse its reply.

    Subclasses set ``error_cls`` to the stage-tagged exception raised when
    the model is unreachable or its answer is unusable.
    """

    error_cls: type[PipelineStageError]

    def __init__(self, llm: BaseLLM) -> None:
        self._llm = llm

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    async def _call_llm(self, prompt: str, **kwargs) -> str:
        """Call LLM with retry for transient failures."""
        return await self._llm.generate(prompt, **kwargs)

    async def _ask(self, prompt: str, **kwargs) -> str:
        try:
            return await self._call_llm(prompt, **kwargs)
        except Exception as exc:
            raise self.error_cls(f"LLM call failed: {exc}") from exc

    async def _ask_json(self, prompt: str, **kwargs) -> dict:
        """Prompt for a JSON object and decode it.

        Raises:
            PipelineStageError: (the subclass's ``error_cls``) if the call
                fails or the reply is not a JSON object.
        """
        raw = await self._ask(prompt, json_mode=True, **kwargs)
        cleaned = strip_code_fences(raw)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise self.error_cls(f"Invalid JSON from LLM: {cleaned[:200]}") from exc
        if not isinstance(data, dict):
            raise self.error_cls(f"Expected a JSON object from LLM, got: {cleaned[:200]}")
        return data
