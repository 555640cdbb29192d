"""
Microphone capture for voice journal entries.

``AudioCapture`` owns the microphone for the lifetime of one
``RecordingSession`` and encodes incoming PCM frames into the negotiated
container as they arrive, so ``stop()`` only has to finalise the header.

States: idle -> recording -> stopped | cancelled
"""

import asyncio
import io
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

import numpy as np
import soundfile as sf

from mindwell.core.exceptions import (
    MicrophonePermissionError,
    NoDeviceError,
    RecordingAlreadyActiveError,
    RecordingStateError,
    RecordingTooShortError,
)
from mindwell.services.audio.formats import PREFERRED_CONTAINERS, AudioContainer, probe_container

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[np.ndarray], None]

_PERMISSION_MARKERS = ("permission", "not permitted", "access denied", "unauthorized")
_NO_DEVICE_MARKERS = ("no default input device", "invalid device", "device unavailable", "no such device")


class MicrophoneStream(Protocol):
    def stop(self) -> None: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Microphone backends
# ---------------------------------------------------------------------------


class MicrophoneBackend(ABC):
    """Opens an input stream that delivers float32 frames to a callback."""

    @abstractmethod
    def open(self, sample_rate: int, channels: int, on_chunk: ChunkCallback) -> MicrophoneStream:
        """Acquire the device and start streaming.

        Blocking; ``AudioCapture`` calls it through ``asyncio.to_thread``.

        Raises:
            MicrophonePermissionError: Access was refused.
            NoDeviceError: No usable input device exists.
        """


class SoundDeviceMicrophone(MicrophoneBackend):
    """Microphone backed by sounddevice / PortAudio."""

    def __init__(self, device: int | str | None = None, block_size: int = 1024) -> None:
        self._device = device
        self._block_size = block_size

    def open(self, sample_rate: int, channels: int, on_chunk: ChunkCallback) -> MicrophoneStream:
        try:
            import sounddevice as sd
        except OSError as exc:
            # Raised when the PortAudio shared library itself is missing
            raise NoDeviceError(f"Audio subsystem unavailable: {exc}") from exc

        def _callback(indata, frames, time_info, status) -> None:  # noqa: ANN001
            if status:
                logger.warning("sounddevice status: %s", status)
            on_chunk(indata.copy())

        try:
            stream = sd.InputStream(
                samplerate=sample_rate,
                channels=channels,
                dtype="float32",
                blocksize=self._block_size,
                device=self._device,
                callback=_callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise _classify_device_error(exc) from exc

        try:
            stream.start()
        except sd.PortAudioError as exc:
            stream.close()
            raise _classify_device_error(exc) from exc

        logger.info("Microphone opened (device=%s, %d Hz, %d ch)", self._device, sample_rate, channels)
        return stream


def _classify_device_error(exc: Exception) -> Exception:
    message = str(exc)
    lowered = message.lower()
    if any(marker in lowered for marker in _PERMISSION_MARKERS):
        return MicrophonePermissionError(f"Microphone access was denied: {message}")
    if any(marker in lowered for marker in _NO_DEVICE_MARKERS):
        return NoDeviceError(f"No microphone is available: {message}")
    return NoDeviceError(f"Could not open microphone: {message}")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class RecordingState(StrEnum):
    idle = "idle"
    recording = "recording"
    stopped = "stopped"
    cancelled = "cancelled"


@dataclass
class RecordingSession:
    """One capture, from ``start()`` until it is submitted or cancelled.

    ``blob`` is only set once the session is stopped; the container travels
    with it so the upload does not need to sniff the format.
    """

    container: AudioContainer
    sample_rate: int
    channels: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: RecordingState = RecordingState.idle
    started_at: datetime | None = None
    frames: int = 0
    blob: bytes | None = None
    _buffer: io.BytesIO | None = field(default=None, init=False, repr=False)
    _writer: Any = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def elapsed_seconds(self) -> float:
        return self.frames / self.sample_rate if self.sample_rate else 0.0

    @property
    def size_bytes(self) -> int:
        return len(self.blob) if self.blob else 0

    def begin(self) -> None:
        self._buffer = io.BytesIO()
        self._writer = sf.SoundFile(
            self._buffer,
            mode="w",
            samplerate=self.sample_rate,
            channels=self.channels,
            format=self.container.sf_format,
            subtype=self.container.sf_subtype,
        )
        self.state = RecordingState.recording
        self.started_at = datetime.now(UTC)

    def write(self, chunk: np.ndarray) -> None:
        """Encode one block of frames. Called from the audio thread."""
        with self._lock:
            if self._writer is None:
                return
            self._writer.write(chunk)
            self.frames += len(chunk)

    def finish(self) -> bytes:
        with self._lock:
            if self._writer is not None:
                self._writer.close()
                self._writer = None
            self.blob = self._buffer.getvalue() if self._buffer is not None else b""
            self._buffer = None
            self.state = RecordingState.stopped
        return self.blob

    def discard(self, state: RecordingState | None = None) -> None:
        """Drop buffered audio; the session can no longer be submitted."""
        with self._lock:
            writer, self._writer = self._writer, None
            self._buffer = None
            self.blob = None
            if state is not None:
                self.state = state
        if writer is not None:
            writer.close()


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class AudioCapture:
    """Record one journal entry at a time from the microphone.

    Args:
        microphone: Device backend; defaults to sounddevice.
        sample_rate: Capture rate in Hz.
        channels: Number of input channels.
        min_seconds: Recordings shorter than this are rejected as too short.
        min_bytes: Encoded blobs smaller than this are rejected as too short.
        containers: Preferred containers, probed once on first ``start()``.
        is_supported: Optional container capability check (for tests).
    """

    def __init__(
        self,
        microphone: MicrophoneBackend | None = None,
        sample_rate: int = 16000,
        channels: int = 1,
        min_seconds: float = 1.0,
        min_bytes: int = 1024,
        containers: Sequence[AudioContainer] = PREFERRED_CONTAINERS,
        is_supported: Callable[[AudioContainer], bool] | None = None,
    ) -> None:
        self._microphone = microphone or SoundDeviceMicrophone()
        self._sample_rate = sample_rate
        self._channels = channels
        self._min_seconds = min_seconds
        self._min_bytes = min_bytes
        self._containers = tuple(containers)
        self._is_supported = is_supported
        self._container: AudioContainer | None = None
        self._session: RecordingSession | None = None
        self._stream: MicrophoneStream | None = None

    @property
    def container(self) -> AudioContainer:
        """The negotiated container, probed on first access."""
        if self._container is None:
            self._container = probe_container(self._containers, self._is_supported)
        return self._container

    @property
    def active_session(self) -> RecordingSession | None:
        return self._session

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    async def start(self) -> RecordingSession:
        """Acquire the microphone and begin recording.

        Raises:
            RecordingAlreadyActiveError: A recording is already in progress.
            MicrophonePermissionError: Access to the microphone was refused.
            NoDeviceError: No input device could be opened.
        """
        if self._session is not None:
            raise RecordingAlreadyActiveError()

        session = RecordingSession(
            container=self.container,
            sample_rate=self._sample_rate,
            channels=self._channels,
        )
        session.begin()
        # Reserve the slot before suspending so a concurrent start() is refused
        self._session = session

        try:
            self._stream = await asyncio.to_thread(
                self._microphone.open, self._sample_rate, self._channels, session.write
            )
        except BaseException:
            self._session = None
            session.discard(RecordingState.cancelled)
            raise

        logger.info("Recording %s started (%s)", session.id, session.container.label)
        return session

    async def stop(self) -> RecordingSession:
        """Release the microphone and return the finished session.

        Raises:
            RecordingStateError: Nothing is being recorded.
            RecordingTooShortError: The take is below the minimum duration
                or size; it has been discarded.
        """
        session = self._session
        if session is None:
            raise RecordingStateError("Cannot stop: no recording is active")

        stream, self._stream = self._stream, None
        try:
            if stream is not None:
                await asyncio.to_thread(_release, stream)
            session.finish()
        except BaseException:
            session.discard(RecordingState.cancelled)
            raise
        finally:
            self._session = None

        duration = session.elapsed_seconds
        size = session.size_bytes
        if duration < self._min_seconds or size < self._min_bytes:
            session.discard(RecordingState.cancelled)
            logger.info("Recording %s discarded as too short (%.2fs, %d bytes)", session.id, duration, size)
            raise RecordingTooShortError(duration, size)

        logger.info("Recording %s stopped (%.2fs, %d bytes)", session.id, duration, size)
        return session

    def cancel(self) -> None:
        """Abort the active recording immediately, discarding its audio.

        A no-op when nothing is being recorded.
        """
        session = self._session
        if session is None:
            return

        stream, self._stream = self._stream, None
        self._session = None
        try:
            if stream is not None:
                _release(stream)
        finally:
            session.discard(RecordingState.cancelled)
        logger.info("Recording %s cancelled", session.id)

    @asynccontextmanager
    async def recording(self) -> AsyncIterator[RecordingSession]:
        """Scope a recording; the microphone is released on every exit path.

        Call ``stop()`` inside the block to keep the audio. Leaving the block
        without stopping (including via an exception) cancels the take.
        """
        session = await self.start()
        try:
            yield session
        finally:
            if self._session is session:
                self.cancel()


def _release(stream: MicrophoneStream) -> None:
    try:
        stream.stop()
    finally:
        stream.close()
