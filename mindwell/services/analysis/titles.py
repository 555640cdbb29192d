"""Title generation for journal entries."""

from mindwell.core.exceptions import TitleGenerationFailedError
from mindwell.core.utils import clean_title
from mindwell.services.analysis.base import BaseAnalyzer

SYSTEM_PROMPT = (
    "You write short, evocative titles for personal journal entries. "
    "The title captures the emotional core or main theme of the entry in 3-8 words, "
    "in the language of the entry. Reply with the title only, no quotes or explanation."
)


class TitleGenerator(BaseAnalyzer):
    error_cls = TitleGenerationFailedError

    async def generate(self, transcript: str, mood: str | None = None) -> str:
        """Return a cleaned title for the transcript.

        Raises:
            TitleGenerationFailedError: If the LLM fails or the reply cleans
                down to an empty title.
        """
        prompt = f"Journal entry:\n{transcript}"
        if mood:
            prompt += f"\n\nWriter's mood: {mood}"

        title = clean_title(await self._ask(prompt, system=SYSTEM_PROMPT, temperature=0.6))
        if len(title) < 3:
            raise TitleGenerationFailedError("LLM returned an unusable title")
        return title
