"""Integration tests for the MindWell REST API.

Exercises submission, polling, cancellation and finalization end-to-end
through the real routes, pipeline, finalizer and SQLite database. Only the
STT and LLM providers are mocked.
"""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from mindwell.api.app import create_app

JOBS = "/api/v1/jobs"
ENTRIES = "/api/v1/entries"


async def _submit(client, audio: bytes, filename="take.wav", mime="audio/wav", duration="5.0", **kwargs):
    data = {"durationSeconds": duration}
    if "mood" in kwargs:
        data["moodHint"] = kwargs.pop("mood")
    return await client.post(JOBS, files={"audio": (filename, audio, mime)}, data=data, **kwargs)


async def _completed_job(client, pipeline, audio: bytes) -> str:
    resp = await _submit(client, audio)
    assert resp.status_code == 202
    job_id = resp.json()["jobId"]
    await pipeline.join(job_id)
    return job_id


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_health(self, async_client):
        resp = await async_client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert "timestamp" in body


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class TestSubmitJob:
    async def test_accepted(self, async_client, sample_wav_bytes):
        resp = await _submit(async_client, sample_wav_bytes, mood="Calm")

        assert resp.status_code == 202
        body = resp.json()
        assert body["jobId"]
        assert body["status"] == "queued"
        assert body["duplicate"] is False

    async def test_idempotency_key_returns_original_job(self, async_client, live_pipeline, sample_wav_bytes, mock_stt):
        headers = {"Idempotency-Key": "take-0001"}
        first = await _submit(async_client, sample_wav_bytes, headers=headers)
        second = await _submit(async_client, sample_wav_bytes, headers=headers)

        assert first.status_code == 202
        assert second.status_code == 200
        assert second.json()["jobId"] == first.json()["jobId"]
        assert second.json()["duplicate"] is True

        await live_pipeline.join(first.json()["jobId"])
        assert mock_stt.transcribe.await_count == 1

    @pytest.mark.parametrize(
        ("audio", "filename", "mime", "duration", "status", "code"),
        [
            (b"", "take.wav", "audio/wav", "5.0", 400, "EMPTY_AUDIO"),
            (b"x" * 4096, "notes.txt", "text/plain", "5.0", 415, "UNSUPPORTED_CONTAINER"),
            (b"x" * 4096, "take.wav", "audio/wav", "0.3", 422, "AUDIO_TOO_SHORT"),
            (b"x" * 100, "take.wav", "audio/wav", "5.0", 422, "AUDIO_TOO_SHORT"),
        ],
    )
    async def test_rejected(self, async_client, audio, filename, mime, duration, status, code):
        resp = await _submit(async_client, audio, filename=filename, mime=mime, duration=duration)

        assert resp.status_code == status
        assert resp.json()["code"] == code

    async def test_missing_duration(self, async_client, sample_wav_bytes):
        resp = await async_client.post(JOBS, files={"audio": ("take.wav", sample_wav_bytes, "audio/wav")})

        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_codec_parameters_accepted(self, async_client):
        resp = await _submit(async_client, b"\x1a\x45\xdf\xa3" + b"\x00" * 4096, "take.webm", "audio/webm;codecs=opus")
        assert resp.status_code == 202

    async def test_oversized_upload_rejected_before_reading(self, db_engine, make_pipeline):
        pipeline = make_pipeline(max_bytes=2048)
        app = create_app(pipeline=pipeline)
        transport = ASGITransport(app=app)
        with (
            patch("starlette.datastructures.UploadFile.read", new_callable=AsyncMock) as read,
            patch.object(pipeline, "submit", new_callable=AsyncMock) as submit,
        ):
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                resp = await _submit(client, b"\x01" * 4096)

        assert resp.status_code == 413
        assert resp.json()["code"] == "PAYLOAD_TOO_LARGE"
        read.assert_not_awaited()
        submit.assert_not_awaited()
        await pipeline.shutdown()


class TestJobStatus:
    async def test_poll_until_complete(self, async_client, live_pipeline, sample_wav_bytes):
        job_id = await _completed_job(async_client, live_pipeline, sample_wav_bytes)

        resp = await async_client.get(f"{JOBS}/{job_id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "complete"
        assert body["progress"] == 100
        assert body["error"] is None
        result = body["result"]
        assert result["transcript"] == "Finally handed in the report today and I feel relieved."
        assert result["mood"] == "calm"
        assert result["sentimentScore"] == 42
        assert result["dominantEmotions"] == ["relief", "gratitude", "calm"]
        assert result["category"] == "Work"
        assert result["title"] == "A Quiet Evening After The Deadline"

    async def test_in_flight_status(self, async_client, sample_wav_bytes, blocked_stt):
        job_id = (await _submit(async_client, sample_wav_bytes)).json()["jobId"]

        body = (await async_client.get(f"{JOBS}/{job_id}")).json()

        assert body["status"] in ("queued", "transcribing")
        assert body["result"] is None
        blocked_stt.set()

    async def test_transcription_failure_surfaces(self, async_client, live_pipeline, sample_wav_bytes, mock_stt):
        mock_stt.transcribe.return_value = {"text": "  ", "language": "en"}
        job_id = await _completed_job(async_client, live_pipeline, sample_wav_bytes)

        body = (await async_client.get(f"{JOBS}/{job_id}")).json()

        assert body["status"] == "error"
        assert body["progress"] == 25
        assert body["result"] is None
        assert body["error"] == {"kind": "transcription_failed", "message": "No speech detected in the recording"}

    async def test_unknown_job(self, async_client):
        resp = await async_client.get(f"{JOBS}/does-not-exist")

        assert resp.status_code == 404
        assert resp.json()["code"] == "JOB_NOT_FOUND"

    async def test_foreign_job_is_not_found(self, async_client, live_pipeline, sample_wav_bytes):
        with patch("mindwell.api.middleware.auth.get_settings") as mock_settings:
            mock_settings.return_value.auth_tokens = {"alice": 1, "bob": 2}
            alice = {"Authorization": "Bearer alice"}
            bob = {"Authorization": "Bearer bob"}

            job_id = (await _submit(async_client, sample_wav_bytes, headers=alice)).json()["jobId"]
            await live_pipeline.join(job_id)

            assert (await async_client.get(f"{JOBS}/{job_id}", headers=alice)).status_code == 200
            assert (await async_client.get(f"{JOBS}/{job_id}", headers=bob)).status_code == 404
            assert (await async_client.get(f"{JOBS}/{job_id}")).status_code == 401


class TestCancelJob:
    async def test_cancel_running_job(self, async_client, live_pipeline, sample_wav_bytes, blocked_stt):
        job_id = (await _submit(async_client, sample_wav_bytes)).json()["jobId"]

        resp = await async_client.delete(f"{JOBS}/{job_id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "error"
        assert body["error"]["kind"] == "cancelled"
        assert job_id not in live_pipeline.active_jobs

    async def test_cancel_finished_job_is_noop(self, async_client, live_pipeline, sample_wav_bytes):
        job_id = await _completed_job(async_client, live_pipeline, sample_wav_bytes)

        resp = await async_client.delete(f"{JOBS}/{job_id}")

        assert resp.status_code == 200
        assert resp.json()["status"] == "complete"

    async def test_cancel_unknown(self, async_client):
        resp = await async_client.delete(f"{JOBS}/nope")
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class TestFinalizeEntry:
    async def test_finalize_completed_job(self, async_client, live_pipeline, sample_wav_bytes):
        job_id = await _completed_job(async_client, live_pipeline, sample_wav_bytes)

        resp = await async_client.post(ENTRIES, json={"jobId": job_id})

        assert resp.status_code == 201
        entry = resp.json()
        assert entry["jobId"] == job_id
        assert entry["content"] == "Finally handed in the report today and I feel relieved."
        assert entry["title"] == "A Quiet Evening After The Deadline"
        assert entry["mood"] == "calm"
        assert entry["category"] == "Work"
        assert entry["tags"] == ["deadline", "team", "relief"]
        assert entry["colorHex"].startswith("#")
        assert entry["audioDuration"] == 5.0
        assert entry["audioUrl"] == f"{ENTRIES}/{entry['id']}/audio"

    async def test_finalize_twice_returns_same_entry(self, async_client, live_pipeline, sample_wav_bytes):
        job_id = await _completed_job(async_client, live_pipeline, sample_wav_bytes)

        first = await async_client.post(ENTRIES, json={"jobId": job_id})
        second = await async_client.post(ENTRIES, json={"jobId": job_id})

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        assert len((await async_client.get(ENTRIES)).json()) == 1

    async def test_mood_override(self, async_client, live_pipeline, sample_wav_bytes):
        job_id = await _completed_job(async_client, live_pipeline, sample_wav_bytes)

        resp = await async_client.post(ENTRIES, json={"jobId": job_id, "moodOverride": "Happy"})

        assert resp.json()["mood"] == "happy"

    async def test_job_not_complete(self, async_client, sample_wav_bytes, blocked_stt):
        job_id = (await _submit(async_client, sample_wav_bytes)).json()["jobId"]

        resp = await async_client.post(ENTRIES, json={"jobId": job_id})

        assert resp.status_code == 409
        assert resp.json()["code"] == "JOB_NOT_COMPLETE"
        blocked_stt.set()

    async def test_failed_job_creates_no_entry(self, async_client, live_pipeline, sample_wav_bytes, mock_stt):
        mock_stt.transcribe.return_value = {"text": "", "language": "en"}
        job_id = await _completed_job(async_client, live_pipeline, sample_wav_bytes)

        resp = await async_client.post(ENTRIES, json={"jobId": job_id})

        assert resp.status_code == 409
        assert (await async_client.get(ENTRIES)).json() == []

    async def test_unknown_job(self, async_client):
        resp = await async_client.post(ENTRIES, json={"jobId": "missing"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "JOB_NOT_FOUND"


class TestEntryAudio:
    async def _voice_entry(self, client, pipeline, audio: bytes, **kwargs) -> dict:
        resp = await _submit(client, audio, **kwargs)
        await pipeline.join(resp.json()["jobId"])
        return (await client.post(ENTRIES, json={"jobId": resp.json()["jobId"]}, **kwargs)).json()

    async def test_download_recording(self, async_client, live_pipeline, sample_wav_bytes):
        entry = await self._voice_entry(async_client, live_pipeline, sample_wav_bytes)

        resp = await async_client.get(entry["audioUrl"])

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "audio/wav"
        assert resp.content == sample_wav_bytes

    async def test_recording_outlives_its_job(self, async_client, live_pipeline, make_pipeline, sample_wav_bytes):
        entry = await self._voice_entry(async_client, live_pipeline, sample_wav_bytes)

        assert await make_pipeline(retention_seconds=0).purge_expired() == 1

        resp = await async_client.get(entry["audioUrl"])
        assert resp.status_code == 200
        assert resp.content == sample_wav_bytes

    async def test_foreign_entry_audio_is_not_found(self, async_client, live_pipeline, sample_wav_bytes):
        with patch("mindwell.api.middleware.auth.get_settings") as mock_settings:
            mock_settings.return_value.auth_tokens = {"alice": 1, "bob": 2}
            alice = {"Authorization": "Bearer alice"}
            bob = {"Authorization": "Bearer bob"}

            entry = await self._voice_entry(async_client, live_pipeline, sample_wav_bytes, headers=alice)

            assert (await async_client.get(entry["audioUrl"], headers=alice)).status_code == 200
            resp = await async_client.get(entry["audioUrl"], headers=bob)
            assert resp.status_code == 404
            assert resp.json()["code"] == "ENTRY_NOT_FOUND"

    async def test_text_entry_has_no_audio(self, async_client):
        entry = (await async_client.post(ENTRIES, json={"content": "No recording here"})).json()

        resp = await async_client.get(f"{ENTRIES}/{entry['id']}/audio")

        assert resp.status_code == 404
        assert resp.json()["code"] == "AUDIO_NOT_FOUND"


class TestTextEntry:
    async def test_text_entry_saved_verbatim(self, async_client):
        resp = await async_client.post(ENTRIES, json={"content": "Feeling better today", "mood": "calm"})

        assert resp.status_code == 201
        entry = resp.json()
        assert entry["jobId"] is None
        assert entry["content"] == "Feeling better today"
        assert entry["mood"] == "calm"
        assert entry["title"] is None
        assert entry["audioUrl"] is None

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"content": "   "},
            {"jobId": "abc", "content": "Both at once"},
        ],
    )
    async def test_invalid_body(self, async_client, body):
        resp = await async_client.post(ENTRIES, json=body)

        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"


class TestListEntries:
    async def test_list_and_get(self, async_client):
        for text in ("first", "second", "third"):
            await async_client.post(ENTRIES, json={"content": text})

        listed = (await async_client.get(ENTRIES, params={"limit": 2})).json()
        assert [e["content"] for e in listed] == ["third", "second"]

        entry_id = listed[0]["id"]
        resp = await async_client.get(f"{ENTRIES}/{entry_id}")
        assert resp.status_code == 200
        assert resp.json()["content"] == "third"

    async def test_get_unknown_entry(self, async_client):
        resp = await async_client.get(f"{ENTRIES}/9999")

        assert resp.status_code == 404
        assert resp.json()["code"] == "ENTRY_NOT_FOUND"

    async def test_limit_validated(self, async_client):
        resp = await async_client.get(ENTRIES, params={"limit": 0})
        assert resp.status_code == 422
