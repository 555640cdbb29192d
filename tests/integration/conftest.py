"""Integration test fixtures for MindWell.

Builds the real FastAPI application around a pipeline with mocked STT/LLM
providers and a temp-file SQLite database. ``ASGITransport`` does not run
the lifespan, so the engine and pipeline are injected directly.
"""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from mindwell.api.app import create_app


@pytest.fixture
async def app(db_engine, make_pipeline):
    """A fresh application whose pipeline is interrupted on teardown."""
    application = create_app(pipeline=make_pipeline())
    yield application
    await application.state.pipeline.shutdown()


@pytest.fixture
def live_pipeline(app):
    return app.state.pipeline


@pytest.fixture
async def async_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def blocked_stt(mock_stt):
    """Make transcription wait until the returned event is set."""
    release = asyncio.Event()
    reply = mock_stt.transcribe.return_value

    async def _transcribe(audio_path, language=None):
        await release.wait()
        return reply

    mock_stt.transcribe.side_effect = _transcribe
    return release
