"""
Client-side observer of a processing job.

Polls ``GET /jobs/{job_id}`` on a fixed interval until the job is terminal.
A 404 is tolerated a bounded number of times in a row (the job may not be
queryable yet) before the tracker reports the job as lost; a pipeline
``error`` is surfaced verbatim. Detaching a tracker only stops polling; the
job keeps running on the server.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from mindwell.client.api_client import APIError, JournalAPIClient
from mindwell.core.exceptions import JobFailedError, JobLostError
from mindwell.core.models import ErrorKind, JobStatus, JobStatusResponse

logger = logging.getLogger(__name__)

Handoff = Callable[[JobStatusResponse], Awaitable[Any]]


class JobStatusTracker:
    """Watches one job until it completes, fails, or the caller detaches.

    Args:
        client: API client used for status lookups.
        job_id: The job to observe.
        poll_interval: Seconds between lookups.
        max_not_found: Consecutive 404s after which the job counts as lost.
        max_transient_errors: Consecutive transport / 5xx failures tolerated.
        on_update: Called with each status whose stage or progress changed.
    """

    def __init__(
        self,
        client: JournalAPIClient,
        job_id: str,
        poll_interval: float = 3.0,
        max_not_found: int = 5,
        max_transient_errors: int = 10,
        on_update: Callable[[JobStatusResponse], None] | None = None,
    ) -> None:
        self.job_id = job_id
        self._client = client
        self._interval = poll_interval
        self._max_not_found = max_not_found
        self._max_transient = max_transient_errors
        self._on_update = on_update
        self._cancel_event = asyncio.Event()
        self._run_task: asyncio.Task | None = None
        self.last_status: JobStatusResponse | None = None
        self.polls = 0

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop polling. Does not cancel the job on the server."""
        if not self._cancel_event.is_set():
            logger.info("Tracker for job %s detached", self.job_id)
        self._cancel_event.set()

    async def _pause(self) -> bool:
        """Sleep one interval; return True if the tracker was cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=self._interval)
        except TimeoutError:
            return False
        return True

    def _record(self, status: JobStatusResponse) -> None:
        previous = self.last_status
        self.last_status = status
        changed = previous is None or (previous.status, previous.progress) != (status.status, status.progress)
        if changed and self._on_update is not None:
            self._on_update(status)

    async def wait(self) -> JobStatusResponse | None:
        """Poll until the job is terminal.

        Returns:
            The ``complete`` status (with result), or None if cancelled.

        Raises:
            JobFailedError: The pipeline reported ``error``.
            JobLostError: The job stayed unfindable for ``max_not_found`` polls.
            APIError: A non-transient client error, or too many transient ones.
        """
        not_found = 0
        transient = 0

        while not self.cancelled:
            self.polls += 1
            try:
                status = await self._client.get_job(self.job_id)
            except APIError as exc:
                if exc.is_not_found:
                    not_found += 1
                    if not_found >= self._max_not_found:
                        logger.warning("Job %s not found after %d polls; giving up", self.job_id, not_found)
                        raise JobLostError(self.job_id, not_found) from exc
                    logger.debug("Job %s not found yet (%d/%d)", self.job_id, not_found, self._max_not_found)
                elif exc.is_transient:
                    transient += 1
                    if transient > self._max_transient:
                        raise
                    logger.warning("Polling job %s failed (%s); will retry", self.job_id, exc.message)
                else:
                    raise
            else:
                not_found = 0
                transient = 0
                self._record(status)

                if status.status is JobStatus.complete:
                    return status
                if status.status is JobStatus.error:
                    error = status.error
                    kind = error.kind if error else ErrorKind.transcription_failed
                    message = error.message if error else "Job failed"
                    raise JobFailedError(self.job_id, kind, message)

            if await self._pause():
                break

        return None

    async def _observe(self, handoff: Handoff) -> Any:
        status = await self.wait()
        if status is None:
            return None
        return await handoff(status)

    async def run(self, handoff: Handoff) -> Any:
        """Wait for completion and hand the result off exactly once.

        Concurrent or repeated calls share one observation; *handoff* is
        only ever invoked once per tracker. Returns None when cancelled.
        """
        if self._run_task is None:
            self._run_task = asyncio.create_task(self._observe(handoff), name=f"track-{self.job_id}")
        return await self._run_task
