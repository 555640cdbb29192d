"""
Audio module - Microphone capture and container negotiation.
"""

from .capture import AudioCapture, RecordingSession, RecordingState, SoundDeviceMicrophone
from .formats import AudioContainer, normalize_mime, probe_container

__all__ = [
    "AudioCapture",
    "AudioContainer",
    "RecordingSession",
    "RecordingState",
    "SoundDeviceMicrophone",
    "normalize_mime",
    "probe_container",
]
