"""Whisper STT implementation using faster-whisper.

Journal recordings are transcribed in one batch after upload. Models are
loaded lazily and cached per (size, device, compute type) so concurrent jobs
share one instance.
"""

import asyncio
import logging
import math
import threading

from faster_whisper import WhisperModel

from mindwell.core.config import get_settings
from mindwell.core.exceptions import TranscriptionFailedError
from mindwell.core.models import TranscriptionResult, TranscriptionSegment
from mindwell.services.transcription.base import BaseSTT

logger = logging.getLogger(__name__)

_model_cache: dict[tuple[str, str, str], WhisperModel] = {}
_model_lock = threading.Lock()


class WhisperSTT(BaseSTT):
    """Speech-to-text provider using faster-whisper (CTranslate2).

    Args:
        model_size: Whisper model size (tiny, base, small, medium, large-v3).
        device: Computation device ("cpu" or "cuda").
        compute_type: CTranslate2 compute type ("int8", "float16", etc.).
        language: Default ISO language code; empty means auto-detect.
        settings: Optional Settings instance (defaults to get_settings()).
    """

    def __init__(
        self,
        model_size: str | None = None,
        device: str = "cpu",
        compute_type: str = "int8",
        language: str | None = None,
        settings=None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model_size = model_size or self._settings.whisper_model
        self._device = device
        self._compute_type = compute_type
        self._language = language if language is not None else self._settings.whisper_default_language

    def _get_model(self) -> WhisperModel:
        """Return the cached WhisperModel, loading it on first use."""
        key = (self._model_size, self._device, self._compute_type)
        with _model_lock:
            model = _model_cache.get(key)
            if model is None:
                logger.info(
                    "Loading Whisper model: %s (device=%s, compute=%s)",
                    self._model_size,
                    self._device,
                    self._compute_type,
                )
                model = WhisperModel(
                    self._model_size,
                    device=self._device,
                    compute_type=self._compute_type,
                )
                _model_cache[key] = model
        return model

    def _run_transcription(
        self,
        audio_path: str,
        language: str | None = None,
        beam_size: int = 5,
        vad_filter: bool = True,
    ) -> tuple:
        """Run synchronous transcription (CPU-bound).

        Must be called via asyncio.to_thread(). The segment generator is
        consumed in this thread because CTranslate2 decodes lazily.
        """
        model = self._get_model()
        segments_iter, info = model.transcribe(
            audio_path,
            language=language or None,
            beam_size=beam_size,
            vad_filter=vad_filter,
        )
        return list(segments_iter), info

    @staticmethod
    def _logprob_to_confidence(avg_logprob: float) -> float:
        """Convert average log probability to a 0-1 confidence score."""
        return max(0.0, min(1.0, math.exp(avg_logprob)))

    async def transcribe(self, audio_path: str, **kwargs) -> dict:
        """Transcribe an uploaded recording.

        Args:
            audio_path: Path to the stored upload.
            **kwargs: Optional keys: language, beam_size, vad_filter.

        Returns:
            Dict with text, language, confidence, duration, segments.

        Raises:
            TranscriptionFailedError: If decoding or inference fails.
        """
        try:
            segments, info = await asyncio.to_thread(
                self._run_transcription,
                audio_path,
                language=kwargs.get("language", self._language),
                beam_size=kwargs.get("beam_size", 5),
                vad_filter=kwargs.get("vad_filter", True),
            )
        except Exception as exc:
            raise TranscriptionFailedError(f"Whisper transcription failed: {exc}") from exc

        kept = [
            TranscriptionSegment(
                text=seg.text.strip(),
                start=seg.start,
                end=seg.end,
                avg_logprob=seg.avg_logprob,
                no_speech_prob=seg.no_speech_prob,
            )
            for seg in segments
            if seg.text.strip()
        ]

        confidence = 0.0
        if kept:
            confidence = self._logprob_to_confidence(sum(s.avg_logprob for s in kept) / len(kept))

        result = TranscriptionResult(
            text=" ".join(s.text for s in kept),
            language=info.language or "unknown",
            language_probability=info.language_probability,
            confidence=confidence,
            duration=info.duration,
            segments=kept,
        )
        logger.debug("Transcribed %s: %d segments, %.1fs", audio_path, len(kept), result.duration)
        return result.model_dump()
