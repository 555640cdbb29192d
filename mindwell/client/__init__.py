"""
Client module - Recording flow, upload, and job tracking against the journal API.
"""

from .api_client import APIError, JournalAPIClient
from .flow import FlowState, VoiceJournalFlow
from .tracker import JobStatusTracker
from .uploader import SubmissionReceipt, UploadCoordinator

__all__ = [
    "APIError",
    "FlowState",
    "JobStatusTracker",
    "JournalAPIClient",
    "SubmissionReceipt",
    "UploadCoordinator",
    "VoiceJournalFlow",
]
