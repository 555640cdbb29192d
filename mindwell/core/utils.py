"""Shared utility functions for MindWell."""

import re

NEUTRAL_COLOR = "#7dd3fc"

MOOD_COLORS: dict[str, str] = {
    "happy": "#86efac",
    "joy": "#86efac",
    "sad": "#a1a1aa",
    "sadness": "#a1a1aa",
    "anxious": "#fdba74",
    "anxiety": "#fdba74",
    "angry": "#fda4af",
    "anger": "#fda4af",
    "calm": "#a5b4fc",
    "neutral": NEUTRAL_COLOR,
    "love": "#f9a8d4",
    "motivated": "#93c5fd",
    "motivation": "#93c5fd",
    "satisfied": "#a5f3fc",
    "satisfaction": "#a5f3fc",
}

TITLE_MAX_LENGTH = 60


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences wrapping JSON from LLM responses."""
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```$", "", text)
    return text.strip()


def mood_color(mood: str | None, emotions: list[str] | None = None) -> str:
    """Map a mood label to its display colour.

    Falls back to the first recognised dominant emotion, then to neutral.
    """
    for candidate in [mood, *(emotions or [])]:
        if candidate:
            color = MOOD_COLORS.get(candidate.strip().lower())
            if color:
                return color
    return NEUTRAL_COLOR


def clean_title(raw: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Normalise an LLM-generated title.

    Strips wrapping quotes and trailing punctuation, collapses whitespace,
    title-cases, and truncates on a word boundary. Returns "" when nothing
    usable is left.
    """
    title = raw.strip().splitlines()[0] if raw.strip() else ""
    title = re.sub(r"^(title\s*:\s*)", "", title, flags=re.IGNORECASE)
    title = title.strip().strip("\"'`*").strip()
    title = re.sub(r"[.!?:;,]+$", "", title)
    title = re.sub(r"\s+", " ", title)
    if not title:
        return ""

    title = " ".join(word[:1].upper() + word[1:] for word in title.split(" "))
    if len(title) > max_length:
        cut = title[:max_length].rsplit(" ", 1)[0]
        title = cut if cut else title[:max_length]
    return title.strip()
