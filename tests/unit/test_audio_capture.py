"""Tests for AudioCapture and RecordingSession.

The ``microphone`` fixture stands in for PortAudio; frames are pushed into
the session's chunk callback by the test, exactly as the audio thread would.
"""

import pytest

from mindwell.core.exceptions import (
    MicrophonePermissionError,
    NoDeviceError,
    RecordingAlreadyActiveError,
    RecordingStateError,
    RecordingTooShortError,
)
from mindwell.services.audio.capture import (
    AudioCapture,
    RecordingState,
    _classify_device_error,
)
from mindwell.services.audio.formats import WAV_PCM16

SAMPLE_RATE = 16000

# ---------------------------------------------------------------------------
# Start / stop
# ---------------------------------------------------------------------------


class TestRecording:
    async def test_five_second_take(self, capture, microphone):
        session = await capture.start()
        assert capture.is_recording
        assert session.state is RecordingState.recording
        assert session.container is WAV_PCM16

        microphone.feed(5.0)
        stopped = await capture.stop()

        assert stopped is session
        assert session.state is RecordingState.stopped
        assert session.elapsed_seconds == pytest.approx(5.0)
        assert session.blob[:4] == b"RIFF"
        assert session.size_bytes > 5 * SAMPLE_RATE * 2
        assert not capture.is_recording
        assert microphone.streams[0].stopped and microphone.streams[0].closed

    async def test_container_probed_once(self, microphone):
        probes = []

        def supported(container):
            probes.append(container)
            return container is WAV_PCM16

        capture = AudioCapture(microphone=microphone, sample_rate=SAMPLE_RATE, is_supported=supported)
        for _ in range(2):
            await capture.start()
            microphone.feed(1.5)
            await capture.stop()

        assert probes.count(WAV_PCM16) == 1

    async def test_each_take_gets_a_new_id(self, capture, microphone):
        first = await capture.start()
        microphone.feed(1.5)
        await capture.stop()
        second = await capture.start()
        assert first.id != second.id
        capture.cancel()


class TestTooShort:
    """Takes under the minimum are discarded and never become uploads."""

    async def test_short_take_raises(self, capture, microphone):
        session = await capture.start()
        microphone.feed(0.3)

        with pytest.raises(RecordingTooShortError) as exc_info:
            await capture.stop()

        assert exc_info.value.duration_seconds == pytest.approx(0.3)
        assert exc_info.value.code == "TOO_SHORT"
        assert session.state is RecordingState.cancelled
        assert session.blob is None
        assert not capture.is_recording

    async def test_size_bound(self, microphone):
        capture = AudioCapture(
            microphone=microphone,
            sample_rate=SAMPLE_RATE,
            min_seconds=0.0,
            min_bytes=10 * 1024 * 1024,
            is_supported=lambda c: c is WAV_PCM16,
        )
        await capture.start()
        microphone.feed(1.0)
        with pytest.raises(RecordingTooShortError):
            await capture.stop()

    async def test_can_record_again_after_too_short(self, capture, microphone):
        await capture.start()
        microphone.feed(0.2)
        with pytest.raises(RecordingTooShortError):
            await capture.stop()

        await capture.start()
        microphone.feed(2.0)
        session = await capture.stop()
        assert session.state is RecordingState.stopped


class TestExclusivity:
    async def test_second_start_rejected(self, capture):
        await capture.start()
        with pytest.raises(RecordingAlreadyActiveError):
            await capture.start()
        capture.cancel()

    async def test_stop_when_idle(self, capture):
        with pytest.raises(RecordingStateError):
            await capture.stop()


class TestDeviceErrors:
    async def test_permission_denied(self, capture, microphone):
        microphone.error = MicrophonePermissionError()

        with pytest.raises(MicrophonePermissionError):
            await capture.start()
        assert not capture.is_recording

    async def test_no_device_leaves_capture_usable(self, capture, microphone):
        microphone.error = NoDeviceError()

        with pytest.raises(NoDeviceError):
            await capture.start()

        microphone.error = None
        session = await capture.start()
        assert session.state is RecordingState.recording
        capture.cancel()

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("Error opening InputStream: Permission denied", MicrophonePermissionError),
            ("Access denied by system policy", MicrophonePermissionError),
            ("Error querying device -1: no default input device", NoDeviceError),
            ("Unanticipated host error", NoDeviceError),
        ],
    )
    def test_classify_device_error(self, message, expected):
        assert isinstance(_classify_device_error(Exception(message)), expected)


class TestCancel:
    async def test_cancel_releases_microphone(self, capture, microphone):
        session = await capture.start()
        microphone.feed(1.0)

        capture.cancel()

        assert session.state is RecordingState.cancelled
        assert session.blob is None
        assert microphone.streams[0].closed
        assert not capture.is_recording

    def test_cancel_when_idle_is_noop(self, capture):
        capture.cancel()
        assert not capture.is_recording

    async def test_late_frames_after_cancel_are_ignored(self, capture, microphone):
        session = await capture.start()
        capture.cancel()
        microphone.feed(0.5)
        assert session.frames == 0

    async def test_context_manager_cancels_on_error(self, capture, microphone):
        with pytest.raises(RuntimeError):
            async with capture.recording() as session:
                microphone.feed(1.0)
                raise RuntimeError("ui crashed")

        assert session.state is RecordingState.cancelled
        assert microphone.streams[0].closed
        assert not capture.is_recording

    async def test_context_manager_keeps_stopped_take(self, capture, microphone):
        async with capture.recording() as session:
            microphone.feed(2.0)
            await capture.stop()

        assert session.state is RecordingState.stopped
        assert session.blob
