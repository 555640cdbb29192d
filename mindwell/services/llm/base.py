"""
Abstract base class for LLM providers.

The analysis stages (mood, categorization, titles) talk to language models
only through this interface, so providers can be swapped via configuration.
"""

from abc import ABC, abstractmethod


class BaseLLM(ABC):
    """Interface that every LLM provider must implement."""

    @abstractmethod
    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate a text response.

        Args:
            prompt: The user prompt to send to the model.
            **kwargs: ``system`` (system prompt), ``temperature``,
                ``max_tokens`` and ``json_mode`` (ask for a bare JSON object
                where the provider supports it).

        Returns:
            The model's text response.

        Raises:
            ConnectionError: Transient transport failure (retryable).
            TimeoutError: The provider did not answer in time (retryable).
            RuntimeError: Any other provider failure.
        """
