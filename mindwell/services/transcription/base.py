"""
Abstract base class for Speech-to-Text providers.

The processing pipeline depends only on this interface, so tests can swap in
a mock and deployments can add hosted providers next to local Whisper.
"""

from abc import ABC, abstractmethod


class BaseSTT(ABC):
    """Interface that every STT provider must implement."""

    @abstractmethod
    async def transcribe(self, audio_path: str, **kwargs) -> dict:
        """Transcribe a recorded journal entry.

        Args:
            audio_path: Path to the uploaded audio file (any container the
                provider can decode).
            **kwargs: Provider-specific options (language, beam_size, etc.).

        Returns:
            Dict with keys: ``text``, ``language``, ``confidence``, ``duration``.

        Raises:
            TranscriptionFailedError: If the provider cannot process the audio.
        """
