"""
Upload of finished recordings as processing-job submissions.

Transient failures (transport errors, timeouts, 5xx) are retried with
exponential backoff; a 4xx means the server rejected the payload and is
surfaced immediately. Every attempt for one recording carries the same
correlation token so the server can collapse a retried request that had
actually succeeded.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from mindwell.client.api_client import APIError, JournalAPIClient
from mindwell.core.exceptions import RecordingStateError, SubmissionRejectedError, UploadTimeoutError
from mindwell.services.audio.capture import RecordingSession, RecordingState
from mindwell.services.audio.formats import extension_for, normalize_mime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionReceipt:
    job_id: str
    correlation_token: str
    attempts: int
    duplicate: bool = False


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, APIError) and exc.is_transient


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Upload attempt %d failed (%s); retrying in %.1fs",
        retry_state.attempt_number,
        exc,
        retry_state.next_action.sleep if retry_state.next_action else 0.0,
    )


class UploadCoordinator:
    """Submits recordings to the processing pipeline.

    Args:
        client: API client used for the multipart upload.
        max_attempts: Total attempts, including the first.
        backoff_base: Delay before the first retry; doubles per retry.
        backoff_max: Upper bound on a single delay.
        deadline: Overall seconds allowed for all attempts and delays.
        sleep: Awaitable sleep used between attempts (injectable for tests).
    """

    def __init__(
        self,
        client: JournalAPIClient,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        deadline: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._deadline = deadline
        self._sleep = sleep

    async def submit(
        self,
        audio: bytes,
        container: str,
        duration_seconds: float,
        mood_hint: str | None = None,
        correlation_token: str | None = None,
        filename: str | None = None,
    ) -> SubmissionReceipt:
        """Upload one recording, retrying transient failures.

        Raises:
            SubmissionRejectedError: The server answered 4xx; not retried.
            UploadTimeoutError: Attempts or the overall deadline ran out.
        """
        token = correlation_token or uuid.uuid4().hex
        mime = normalize_mime(container, filename) or container
        filename = filename or f"journal-{token[:12]}{extension_for(mime)}"

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base, min=self._backoff_base, max=self._backoff_max),
            retry=retry_if_exception(_is_transient),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        attempts = 0
        try:
            async with asyncio.timeout(self._deadline):
                async for attempt in retrying:
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        response = await self._client.submit_job(
                            audio=audio,
                            filename=filename,
                            container=mime,
                            duration_seconds=duration_seconds,
                            mood_hint=mood_hint,
                            correlation_token=token,
                        )
        except TimeoutError as exc:
            raise UploadTimeoutError(
                f"Upload did not finish within {self._deadline:.0f}s", attempts=attempts
            ) from exc
        except APIError as exc:
            if exc.is_transient:
                raise UploadTimeoutError(
                    f"Upload failed after {attempts} attempt(s): {exc.message}", attempts=attempts
                ) from exc
            raise SubmissionRejectedError(exc.message, status_code=exc.status_code or 400) from exc

        logger.info(
            "Submitted recording as job %s (attempts=%d, duplicate=%s)",
            response.job_id,
            attempts,
            response.duplicate,
        )
        return SubmissionReceipt(
            job_id=response.job_id,
            correlation_token=token,
            attempts=attempts,
            duplicate=response.duplicate,
        )

    async def submit_session(self, session: RecordingSession, mood_hint: str | None = None) -> SubmissionReceipt:
        """Submit a stopped recording, using its id as the correlation token.

        The session's audio is released once the server has accepted or
        rejected it; after an ``UploadTimeoutError`` it is kept so the same
        recording can be resubmitted under the same token.
        """
        if session.state is not RecordingState.stopped or not session.blob:
            raise RecordingStateError(f"Recording {session.id} is {session.state}; only stopped recordings can be submitted")

        try:
            receipt = await self.submit(
                audio=session.blob,
                container=session.container.mime_type,
                duration_seconds=session.elapsed_seconds,
                mood_hint=mood_hint,
                correlation_token=session.id,
                filename=f"{session.id}{session.container.extension}",
            )
        except SubmissionRejectedError:
            session.discard()
            raise
        session.discard()
        return receipt
