import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from job_client.errors import (
    InvalidResponseError,
    JobCancelledError,
    JobFailedError,
    JobTimeoutError,
)
from job_client.models import Job, JobState, JobStatus
from job_client.transport import JobTransport

StatusCallback = Callable[[JobStatus], Awaitable[Any]]


class OperationPoller:
    """Submits a remote job and waits for it to reach a terminal state.

    Polling starts right after the submission is accepted and repeats every
    ``check_interval`` seconds until the job succeeds, fails or is cancelled,
    all under a mandatory overall ``timeout``. A client-side timeout does not
    cancel the remote job.
    """

    def __init__(
        self,
        transport: JobTransport,
        on_status_change: Optional[StatusCallback] = None,
    ):
        self.transport = transport
        self.on_status_change = on_status_change
        self.logger = logger

    async def _get_status_once(self, job_id: str) -> JobStatus:
        # shielded so a deadline never aborts a request already on the wire
        request = asyncio.ensure_future(self.transport.poll_status(job_id))
        try:
            status = await asyncio.shield(request)
        except asyncio.CancelledError:
            request.add_done_callback(self._log_abandoned_poll)
            raise
        if status is None:
            raise InvalidResponseError(f"status of job {job_id} is missing")
        return status

    def _log_abandoned_poll(self, request: asyncio.Future) -> None:
        if request.cancelled():
            return
        error = request.exception()
        if error is not None:
            self.logger.warning(f"Status request finished after the deadline with an error: {error}")

    async def _handle_status_change(
        self, status: JobStatus, last_state: Optional[JobState]
    ) -> None:
        """Invoke the status change callback if the state has changed"""
        if last_state != status.state:
            self.logger.debug(f"Job state changed to {status.state.value}")
            if self.on_status_change is not None:
                await self.on_status_change(status)

    async def _wait_before_retry(self, check_interval: float) -> None:
        self.logger.debug(f"Job still pending, waiting {check_interval:.2f}s before next poll")
        await asyncio.sleep(check_interval)

    async def _poll_until_terminal(self, job_id: str, check_interval: float) -> JobStatus:
        last_state = None

        while True:
            status = await self._get_status_once(job_id)
            await self._handle_status_change(status, last_state)
            last_state = status.state

            if not status.state.is_terminal:
                await self._wait_before_retry(check_interval)
                continue

            if status.state == JobState.cancelled:
                raise JobCancelledError(job_id)
            if status.state == JobState.failed:
                raise JobFailedError(job_id, status)
            return status

    async def wait(self, job_id: str, timeout: float, check_interval: float) -> JobStatus:
        """Wait for an already submitted job to succeed"""
        try:
            status = await asyncio.wait_for(
                self._poll_until_terminal(job_id, check_interval), timeout
            )
        except asyncio.TimeoutError as e:
            self.logger.error(f"Job {job_id} not finished after {timeout}s, giving up")
            raise JobTimeoutError(job_id, timeout) from e

        self.logger.info(f"Job {job_id} succeeded")
        return status

    async def submit(self, params: Dict[str, Any]) -> Job:
        job_id = await self.transport.submit(params)
        if not job_id:
            raise InvalidResponseError("job ID is missing")
        self.logger.info(f"Submitted job {job_id}")
        return Job(job_id=job_id)

    async def submit_and_wait(
        self, params: Dict[str, Any], timeout: float, check_interval: float
    ) -> str:
        job = await self.submit(params)
        await self.wait(job.job_id, timeout, check_interval)
        return job.job_id
