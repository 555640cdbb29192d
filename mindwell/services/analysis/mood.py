"""
Mood and sentiment analysis of a journal transcript.
"""

import logging

from mindwell.core.exceptions import AnalysisFailedError
from mindwell.core.models import MoodAnalysis
from mindwell.services.analysis.base import BaseAnalyzer

logger = logging.getLogger(__name__)

MOOD_LABELS = ("happy", "sad", "anxious", "angry", "calm", "neutral")

SYSTEM_PROMPT = (
    "You are a psychologist specialised in emotional analysis of personal journal entries. "
    "Given a transcript and the mood the writer declared, assess their emotional state.\n\n"
    "Rules:\n"
    "- Output ONLY valid JSON, no markdown fences or extra text.\n"
    '- Format: {"mood": "...", "emotionalTone": "...", "sentimentScore": 0, '
    '"dominantEmotions": [...]}\n'
    f"- mood: exactly one of {', '.join(MOOD_LABELS)}.\n"
    '- emotionalTone: the prevailing tone in one word (e.g. "Hopeful", "Melancholic").\n'
    "- sentimentScore: integer from -100 (extremely negative) to 100 (extremely positive).\n"
    "- dominantEmotions: 3-5 single-word emotions detected in the text.\n"
    "- Keep emotion words in the language of the transcript."
)


def _build_user_prompt(transcript: str, declared_mood: str | None) -> str:
    parts = [f"Journal transcript:\n{transcript}"]
    if declared_mood:
        parts.append(f"Mood declared by the writer: {declared_mood}")
    return "\n\n".join(parts)


def _coerce_score(value) -> int:  # noqa: ANN001
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(-100, min(100, score))


class MoodAnalyzer(BaseAnalyzer):
    """Derives mood label, sentiment score and dominant emotions."""

    error_cls = AnalysisFailedError

    async def analyze(self, transcript: str, declared_mood: str | None = None) -> MoodAnalysis:
        """Analyse the emotional content of a transcript.

        Args:
            transcript: Text produced by the transcription stage.
            declared_mood: The writer's self-reported mood, if any. Used as a
                hint and as the fallback label when the model's is unusable.

        Raises:
            AnalysisFailedError: If the LLM fails or returns unusable output.
        """
        if not transcript.strip():
            raise AnalysisFailedError("Cannot analyse an empty transcript")

        data = await self._ask_json(
            _build_user_prompt(transcript, declared_mood),
            system=SYSTEM_PROMPT,
            temperature=0.2,
        )

        mood = str(data.get("mood") or "").strip().lower()
        if mood not in MOOD_LABELS:
            fallback = (declared_mood or "").strip().lower()
            logger.debug("LLM mood %r not recognised; falling back to %r", mood, fallback or "neutral")
            mood = fallback if fallback in MOOD_LABELS else "neutral"

        emotions = data.get("dominantEmotions") or data.get("dominant_emotions") or []
        if not isinstance(emotions, list):
            emotions = []
        emotions = [str(e).strip().lower() for e in emotions if str(e).strip()][:5]

        return MoodAnalysis(
            mood=mood,
            sentiment_score=_coerce_score(data.get("sentimentScore", data.get("sentiment_score"))),
            dominant_emotions=emotions,
            emotional_tone=str(data.get("emotionalTone") or data.get("emotional_tone") or "").strip(),
        )
