"""LLM-backed analysis stages of the processing pipeline."""

from .categorizer import TopicCategorizer
from .mood import MoodAnalyzer
from .titles import TitleGenerator

__all__ = ["MoodAnalyzer", "TitleGenerator", "TopicCategorizer"]
