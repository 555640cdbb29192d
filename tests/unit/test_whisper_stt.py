"""Tests for WhisperSTT (mocked WhisperModel, no GPU needed)."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

import mindwell.services.transcription.whisper as whisper_module
from mindwell.core.exceptions import TranscriptionFailedError
from mindwell.services.transcription import create_stt
from mindwell.services.transcription.whisper import WhisperSTT


def _make_segment(text="Hello world", start=0.0, end=1.0, avg_logprob=-0.3, no_speech_prob=0.1):
    """Create a mock faster-whisper segment object."""
    return SimpleNamespace(
        text=text,
        start=start,
        end=end,
        avg_logprob=avg_logprob,
        no_speech_prob=no_speech_prob,
    )


def _make_info(language="en", language_probability=0.95, duration=5.0):
    """Create a mock faster-whisper transcription info object."""
    return SimpleNamespace(language=language, language_probability=language_probability, duration=duration)


def _settings(**overrides):
    values = {"whisper_model": "base", "whisper_default_language": ""}
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture(autouse=True)
def _clear_model_cache():
    """Ensure the module-level model cache is empty for each test."""
    saved = dict(whisper_module._model_cache)
    whisper_module._model_cache.clear()
    yield
    whisper_module._model_cache.clear()
    whisper_module._model_cache.update(saved)


@pytest.fixture
def mock_whisper_model():
    model = MagicMock()
    model.transcribe.return_value = (
        iter([_make_segment(" Today was hard. "), _make_segment("   "), _make_segment("But I managed.", 1.0, 2.5)]),
        _make_info(),
    )
    return model


@pytest.fixture
def stt(mock_whisper_model):
    instance = WhisperSTT(settings=_settings())
    instance._get_model = MagicMock(return_value=mock_whisper_model)
    return instance


class TestTranscribe:
    async def test_joins_non_empty_segments(self, stt):
        result = await stt.transcribe("/fake/entry.ogg")

        assert result["text"] == "Today was hard. But I managed."
        assert result["language"] == "en"
        assert result["duration"] == 5.0
        assert len(result["segments"]) == 2

    async def test_confidence_from_logprob(self, stt):
        result = await stt.transcribe("/fake/entry.ogg")
        assert 0.0 < result["confidence"] <= 1.0

    async def test_language_kwarg(self, stt, mock_whisper_model):
        await stt.transcribe("/fake/entry.ogg", language="pt")
        assert mock_whisper_model.transcribe.call_args.kwargs["language"] == "pt"

    async def test_default_language_is_auto_detect(self, stt, mock_whisper_model):
        await stt.transcribe("/fake/entry.ogg")
        assert mock_whisper_model.transcribe.call_args.kwargs["language"] is None

    async def test_decoder_failure(self, stt, mock_whisper_model):
        mock_whisper_model.transcribe.side_effect = RuntimeError("Invalid data found when processing input")
        with pytest.raises(TranscriptionFailedError, match="Invalid data"):
            await stt.transcribe("/fake/corrupt.webm")


class TestModelCache:
    def test_model_loaded_once_per_config(self):
        with patch.object(whisper_module, "WhisperModel") as mock_cls:
            first = WhisperSTT(settings=_settings())._get_model()
            second = WhisperSTT(settings=_settings())._get_model()
            WhisperSTT(model_size="small", settings=_settings())._get_model()

        assert first is second
        assert mock_cls.call_count == 2

    def test_confidence_is_clamped(self):
        assert WhisperSTT._logprob_to_confidence(0.5) == 1.0
        assert WhisperSTT._logprob_to_confidence(-50) == pytest.approx(0.0, abs=1e-9)


class TestCreateSTT:
    def test_local(self):
        with patch("mindwell.services.transcription.whisper.get_settings", return_value=_settings()):
            assert isinstance(create_stt("local"), WhisperSTT)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_stt("cloud")
