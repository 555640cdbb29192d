"""
Topic categorization and tag extraction for journal entries.
"""

import logging

from mindwell.core.exceptions import CategorizationFailedError
from mindwell.core.models import CategorizationResult
from mindwell.services.analysis.base import BaseAnalyzer

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = (
    "Anxiety",
    "Depression",
    "Stress",
    "Relationships",
    "Family",
    "Work",
    "Studies",
    "Health",
    "Sleep",
    "Nutrition",
    "Leisure",
    "Finances",
    "Spirituality",
    "Personal Goals",
    "Personal Growth",
    "General Reflections",
    "Achievements",
    "Challenges",
    "Memories",
    "Creative Thoughts",
)

DEFAULT_CATEGORY = "General Reflections"
MAX_TAGS = 5

SYSTEM_PROMPT = (
    "You categorise mental-health journal entries.\n\n"
    "Rules:\n"
    "- Output ONLY valid JSON, no markdown fences or extra text.\n"
    '- Format: {"category": "...", "tags": [...]}\n'
    f"- category: exactly one of: {', '.join(CATEGORIES)}.\n"
    "- tags: 1-5 short keywords (up to 3 words each) useful for search, "
    "covering themes, contexts and triggers in the entry."
)


def match_category(raw: str) -> str:
    """Map a model answer onto the fixed category list."""
    answer = raw.strip().strip("\"'.").lower()
    for category in CATEGORIES:
        if answer == category.lower():
            return category
    for category in CATEGORIES:
        if category.lower() in answer:
            return category
    return DEFAULT_CATEGORY


def normalize_tags(raw) -> list[str]:  # noqa: ANN001
    """Lower-case, de-duplicate and cap tags, preserving order."""
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return []
    tags: list[str] = []
    for item in raw:
        tag = str(item).strip().strip("#").lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


class TopicCategorizer(BaseAnalyzer):
    """Assigns one category and a handful of tags to a transcript."""

    error_cls = CategorizationFailedError

    async def categorize(self, transcript: str) -> CategorizationResult:
        """Classify a transcript.

        Raises:
            CategorizationFailedError: If the LLM fails, returns invalid JSON,
                or proposes no tags.
        """
        data = await self._ask_json(f"Journal entry:\n{transcript}", system=SYSTEM_PROMPT, temperature=0.1)

        category = match_category(str(data.get("category") or ""))
        tags = normalize_tags(data.get("tags"))
        if not tags:
            raise CategorizationFailedError("LLM returned no usable tags")

        logger.debug("Categorised entry as %s with tags %s", category, tags)
        return CategorizationResult(category=category, tags=tags)
