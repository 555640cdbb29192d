"""
Async HTTP client for the MindWell journal API.

Uses ``httpx.AsyncClient`` so it composes with the capture, upload and
tracking coroutines of the recording flow.
"""

import logging

import httpx

from mindwell.core.models import EntryResponse, JobStatusResponse, JobSubmitResponse

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class APIError(Exception):
    """API error with a categorized, user-friendly message.

    Categories: "connection", "timeout", "http", "network".
    ``status_code`` and ``code`` are set for "http" errors.
    """

    def __init__(
        self,
        message: str,
        category: str = "unknown",
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        self.message = message
        self.category = category
        self.status_code = status_code
        self.code = code
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """True for failures worth retrying: transport problems and 5xx."""
        if self.category in ("connection", "timeout", "network"):
            return True
        return self.status_code is not None and self.status_code >= 500

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class JournalAPIClient:
    """Thin async wrapper around httpx for calling the journal backend.

    Args:
        base_url: Base URL of the MindWell API.
        token: Bearer token identifying the user.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``ASGITransport``).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "JournalAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request, translating failures to ``APIError``.

        Raises:
            APIError: On connection, timeout, HTTP status, or network errors.
        """
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.ConnectError:
            raise APIError(
                "Journal server is not reachable. Check your connection and try again.",
                category="connection",
            ) from None
        except httpx.TimeoutException:
            raise APIError(
                "Request timed out. The server may be overloaded.",
                category="timeout",
            ) from None
        except httpx.HTTPStatusError as exc:
            detail, code = exc.response.text or str(exc), None
            try:
                body = exc.response.json()
                detail = body.get("detail", detail)
                code = body.get("code")
            except ValueError:
                pass  # Non-JSON error body; keep the raw text
            raise APIError(
                str(detail),
                category="http",
                status_code=exc.response.status_code,
                code=code,
            ) from None
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}", category="network") from None

    # -- health --

    async def health_check(self) -> dict:
        return (await self._request("GET", "/health")).json()

    # -- jobs --

    async def submit_job(
        self,
        audio: bytes,
        filename: str,
        container: str,
        duration_seconds: float,
        mood_hint: str | None = None,
        correlation_token: str | None = None,
        timeout: float | None = None,
    ) -> JobSubmitResponse:
        """Upload a recording as a multipart processing-job submission."""
        data = {"container": container, "durationSeconds": f"{duration_seconds:.3f}"}
        if mood_hint:
            data["moodHint"] = mood_hint
        headers = {"Idempotency-Key": correlation_token} if correlation_token else None
        kwargs: dict = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        resp = await self._request(
            "POST",
            f"{API_PREFIX}/jobs",
            files={"audio": (filename, audio, container)},
            data=data,
            headers=headers,
            **kwargs,
        )
        return JobSubmitResponse.model_validate(resp.json())

    async def get_job(self, job_id: str) -> JobStatusResponse:
        resp = await self._request("GET", f"{API_PREFIX}/jobs/{job_id}")
        return JobStatusResponse.model_validate(resp.json())

    async def cancel_job(self, job_id: str) -> JobStatusResponse:
        resp = await self._request("DELETE", f"{API_PREFIX}/jobs/{job_id}")
        return JobStatusResponse.model_validate(resp.json())

    # -- entries --

    async def create_entry(self, job_id: str, mood_override: str | None = None) -> EntryResponse:
        """Finalize a completed job into a journal entry."""
        body: dict = {"jobId": job_id}
        if mood_override:
            body["moodOverride"] = mood_override
        resp = await self._request("POST", f"{API_PREFIX}/entries", json=body)
        return EntryResponse.model_validate(resp.json())

    async def create_text_entry(
        self,
        content: str,
        mood: str | None = None,
        title: str | None = None,
        tags: list[str] | None = None,
    ) -> EntryResponse:
        body: dict = {"content": content}
        if mood:
            body["mood"] = mood
        if title:
            body["title"] = title
        if tags:
            body["tags"] = tags
        resp = await self._request("POST", f"{API_PREFIX}/entries", json=body)
        return EntryResponse.model_validate(resp.json())

    async def list_entries(self, limit: int = 50, offset: int = 0) -> list[EntryResponse]:
        resp = await self._request("GET", f"{API_PREFIX}/entries", params={"limit": limit, "offset": offset})
        return [EntryResponse.model_validate(item) for item in resp.json()]

    async def get_entry(self, entry_id: int) -> EntryResponse:
        resp = await self._request("GET", f"{API_PREFIX}/entries/{entry_id}")
        return EntryResponse.model_validate(resp.json())
