"""MindWell voice journal: capture, processing pipeline, and journal API."""

__version__ = "0.1.0"
