"""Unit tests for the global error handlers."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from mindwell.api.middleware.error_handler import register_error_handlers
from mindwell.core.exceptions import (
    EntryNotFoundError,
    InvalidSubmissionError,
    JobNotCompleteError,
    PersistenceError,
)


class _Body(BaseModel):
    content: str


def _create_test_app() -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/entry")
    async def missing_entry():
        raise EntryNotFoundError(42)

    @app.get("/unsupported")
    async def unsupported():
        raise InvalidSubmissionError("Unsupported audio container: text/plain", "UNSUPPORTED_CONTAINER", 415)

    @app.get("/not-complete")
    async def not_complete():
        raise JobNotCompleteError("abc", "analyzing")

    @app.get("/db")
    async def db_down():
        raise PersistenceError()

    @app.post("/validate")
    async def validate(body: _Body):
        return body

    return app


@pytest.fixture
def client():
    return AsyncClient(transport=ASGITransport(app=_create_test_app()), base_url="http://test")


@pytest.mark.parametrize(
    ("path", "status", "code"),
    [
        ("/entry", 404, "ENTRY_NOT_FOUND"),
        ("/unsupported", 415, "UNSUPPORTED_CONTAINER"),
        ("/not-complete", 409, "JOB_NOT_COMPLETE"),
        ("/db", 503, "PERSISTENCE_ERROR"),
    ],
)
async def test_domain_errors(client, path, status, code):
    resp = await client.get(path)

    assert resp.status_code == status
    body = resp.json()
    assert body["code"] == code
    assert body["detail"]
    assert body["timestamp"]


async def test_validation_error(client):
    resp = await client.post("/validate", json={})

    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert "content" in body["detail"]
