import asyncio
from typing import Any, Awaitable, Callable, Optional

from loguru import logger
from pydantic import ValidationError

from block_booking.errors import (
    BlockApiRequestError,
    JobFailedError,
    JobPollingTimeoutError,
)
from block_booking.models import Job, JobResult, JobStatus, PollingConfig
from block_booking.transport import BlockApiTransport


def _loop_time() -> float:
    return asyncio.get_running_loop().time()


class JobPoller:
    """Polls GET /v1/jobs/{id} at a fixed interval until the job is terminal.

    Any status other than "success" or "error" counts as pending, so the
    queued -> leased -> in_progress -> waiting_2fa pipeline needs no special
    cases. Failed reads are retried after the normal interval and only the
    overall timeout can end the loop early.
    """

    def __init__(
        self,
        transport: BlockApiTransport,
        config: Optional[PollingConfig] = None,
        on_status_change: Optional[Callable[[Job], Awaitable[Any]]] = None,
        clock: Callable[[], float] = _loop_time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.transport = transport
        self.config = config or PollingConfig()
        self.on_status_change = on_status_change
        self.logger = logger
        self._clock = clock
        self._sleep = sleep

    async def _get_job_once(self, job_id: str) -> tuple[dict, Job]:
        """Fetches the current state of a job from the server"""
        data = await self.transport.get(f"/v1/jobs/{job_id}")
        return data, Job.model_validate(data)

    async def _handle_status_change(self, job: Job, last_status: Optional[str]) -> None:
        """Invoke the status change callback if the status has changed"""
        if last_status != job.status and self.on_status_change is not None:
            self.logger.debug(f"Job status changed to {job.status}")
            await self.on_status_change(job)

    async def _wait_before_retry(self) -> None:
        interval = self.config.interval
        if interval <= 0:
            return
        await self._sleep(interval)

    async def poll_until_complete(
        self,
        job_id: str,
        subject: str = "Job",
        failure_hint: Optional[str] = None,
    ) -> JobResult:
        """Poll the job until it succeeds, fails or the timeout elapses"""
        timeout = self.config.timeout
        start_time = self._clock()
        attempts = 0
        last_status = None

        while True:
            elapsed = self._clock() - start_time
            if elapsed >= timeout:
                self.logger.error(
                    f"Job {job_id} still {last_status or 'unknown'} after {elapsed:.1f}s"
                )
                raise JobPollingTimeoutError(job_id, timeout, elapsed)

            attempts += 1
            try:
                data, job = await self._get_job_once(job_id)
            except (BlockApiRequestError, ValidationError) as e:
                self.logger.warning(
                    f"Error polling job {job_id} (attempt {attempts}): {e}"
                )
                await self._wait_before_retry()
                continue

            await self._handle_status_change(job, last_status)
            last_status = job.status

            if job.status == JobStatus.success.value:
                elapsed = self._clock() - start_time
                self.logger.info(
                    f"Job {job_id} succeeded after {attempts} attempts ({elapsed:.1f}s)"
                )
                return JobResult(
                    job_id=job_id,
                    status=JobStatus.success,
                    raw_response=data,
                    elapsed_time=elapsed,
                    attempts=attempts,
                )

            if job.status == JobStatus.error.value:
                self.logger.error(
                    f"Job {job_id} failed: {job.error_code or 'unknown_error'} {job.error_message or ''}"
                )
                kwargs = {"hint": failure_hint} if failure_hint else {}
                raise JobFailedError(
                    job_id,
                    error_code=job.error_code,
                    error_message=job.error_message,
                    subject=subject,
                    raw_response=data,
                    **kwargs,
                )

            self.logger.debug(
                f"Job {job_id} is {job.status}, waiting {self.config.interval}s before next attempt"
            )
            await self._wait_before_retry()
