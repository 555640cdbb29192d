"""Shared pytest fixtures for the MindWell test suite.

Provides mock LLM/STT providers, a temp-file SQLite engine wired into the
storage module, and helpers to build a processing pipeline around them.
"""

import json
import struct
from unittest.mock import AsyncMock

import numpy as np
import pytest

from mindwell.services.analysis import MoodAnalyzer, TitleGenerator, TopicCategorizer
from mindwell.services.analysis import categorizer as categorizer_module
from mindwell.services.analysis import mood as mood_module
from mindwell.services.audio.capture import AudioCapture, MicrophoneBackend
from mindwell.services.audio.formats import WAV_PCM16
from mindwell.services.llm.base import BaseLLM
from mindwell.services.pipeline import ProcessingPipeline
from mindwell.services.storage.database import build_engine, get_session, init_db, reset_engine, use_engine
from mindwell.services.storage.repository import JournalRepository
from mindwell.services.transcription.base import BaseSTT

MOOD_REPLY = {
    "mood": "calm",
    "emotionalTone": "Hopeful",
    "sentimentScore": 42,
    "dominantEmotions": ["relief", "gratitude", "calm"],
}
CATEGORY_REPLY = {"category": "Work", "tags": ["deadline", "team", "relief"]}
TITLE_REPLY = "A Quiet Evening After The Deadline"

# ---------------------------------------------------------------------------
# LLM Fixtures
# ---------------------------------------------------------------------------


def route_llm_reply(prompt: str, **kwargs) -> str:
    """Answer like a well-behaved model, keyed on the stage's system prompt."""
    system = kwargs.get("system") or ""
    if system == mood_module.SYSTEM_PROMPT:
        return json.dumps(MOOD_REPLY)
    if system == categorizer_module.SYSTEM_PROMPT:
        return json.dumps(CATEGORY_REPLY)
    return TITLE_REPLY


@pytest.fixture
def mock_llm():
    """Create a mock LLM provider answering every analysis stage.

    Returns:
        AsyncMock: A mock implementing the BaseLLM interface whose replies
        depend on the system prompt of the calling stage.
    """
    llm = AsyncMock(spec=BaseLLM)
    llm.generate.side_effect = route_llm_reply
    return llm


# ---------------------------------------------------------------------------
# STT Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_stt():
    """Create a mock STT provider for unit testing.

    Returns:
        AsyncMock: A mock implementing the BaseSTT interface with a
        default transcribe response.
    """
    stt = AsyncMock(spec=BaseSTT)
    stt.transcribe.return_value = {
        "text": "Finally handed in the report today and I feel relieved.",
        "language": "en",
        "confidence": 0.93,
        "duration": 5.0,
    }
    return stt


# ---------------------------------------------------------------------------
# Audio Fixtures
# ---------------------------------------------------------------------------


class FakeStream:
    def __init__(self) -> None:
        self.stopped = False
        self.closed = False

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True


class FakeMicrophone(MicrophoneBackend):
    """Microphone double: records the chunk callback so tests can feed it."""

    def __init__(self, sample_rate: int = 16000) -> None:
        self.sample_rate = sample_rate
        self.error: Exception | None = None
        self.on_chunk = None
        self.streams: list[FakeStream] = []

    def open(self, sample_rate, channels, on_chunk):
        if self.error is not None:
            raise self.error
        self.on_chunk = on_chunk
        stream = FakeStream()
        self.streams.append(stream)
        return stream

    def feed(self, seconds: float, block: int = 1600) -> None:
        """Push *seconds* of a 440Hz tone through the callback in blocks."""
        remaining = int(seconds * self.sample_rate)
        t = 0
        while remaining > 0:
            n = min(block, remaining)
            idx = np.arange(t, t + n)
            chunk = (0.3 * np.sin(2 * np.pi * 440 * idx / self.sample_rate)).astype(np.float32)
            self.on_chunk(chunk.reshape(-1, 1))
            remaining -= n
            t += n


@pytest.fixture
def microphone():
    return FakeMicrophone()


@pytest.fixture
def capture(microphone):
    """AudioCapture on the fake microphone, negotiating WAV."""
    return AudioCapture(microphone=microphone, sample_rate=16000, is_supported=lambda c: c is WAV_PCM16)


@pytest.fixture
def sample_wav_bytes():
    """Generate 2 seconds of a 440Hz tone as a WAV file (16kHz, 16-bit, mono).

    Returns:
        bytes: A complete WAV file.
    """
    import io
    import math
    import wave

    sample_rate = 16000
    samples = b"".join(
        struct.pack("<h", int(12000 * math.sin(2 * math.pi * 440.0 * i / sample_rate)))
        for i in range(sample_rate * 2)
    )
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(samples)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine(tmp_path):
    """Temp-file SQLite engine injected into the storage module.

    A file (rather than ``:memory:``) lets concurrent pipeline tasks open
    independent connections.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    use_engine(engine)
    yield engine
    reset_engine()
    await engine.dispose()


@pytest.fixture
async def repository(db_engine):
    """JournalRepository bound to one session of the test database."""
    async with get_session() as session:
        yield JournalRepository(session)


# ---------------------------------------------------------------------------
# Pipeline Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def transitions():
    """Collects ``(job_id, status, progress)`` for every committed transition."""
    return []


@pytest.fixture
def make_pipeline(tmp_path, mock_stt, mock_llm, transitions):
    """Factory building a pipeline around the mock providers.

    Keyword arguments override any ``ProcessingPipeline`` parameter.
    """

    def _make(**overrides) -> ProcessingPipeline:
        options = dict(
            stt=mock_stt,
            mood_analyzer=MoodAnalyzer(mock_llm),
            categorizer=TopicCategorizer(mock_llm),
            title_generator=TitleGenerator(mock_llm),
            recordings_dir=tmp_path / "recordings",
            stage_timeout=5.0,
            max_concurrent=2,
            retention_seconds=3600,
            sweep_interval=0.05,
            on_transition=lambda job_id, status, progress: transitions.append((job_id, status, progress)),
        )
        options.update(overrides)
        return ProcessingPipeline(**options)

    return _make


@pytest.fixture
async def pipeline(db_engine, make_pipeline):
    """A running pipeline with default mocks; interrupted on teardown."""
    instance = make_pipeline()
    yield instance
    await instance.shutdown()
