from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from block_booking.errors import JobSubmissionError
from block_booking.models import (
    ActionRequest,
    ActionType,
    BlockApiCredentials,
    BookAppointmentParams,
    GetAvailabilityParams,
    Job,
    JobResult,
    OperationParams,
    PollingConfig,
)
from block_booking.poller import JobPoller
from block_booking.transport import BlockApiTransport

FAILURE_HINTS = {
    ActionType.book_appointment: (
        "Verify the connection ID, appointment details, and customer information "
        "are correct, then try again."
    ),
    ActionType.get_availability: (
        "Verify the connection ID and date range are correct, then try again."
    ),
}


class BlockBookingClient:
    def __init__(
        self,
        credentials: BlockApiCredentials,
        transport: Optional[BlockApiTransport] = None,
        on_status_change: Optional[Callable[[Job], Awaitable[Any]]] = None,
        poller_factory: Callable[..., JobPoller] = JobPoller,
    ):
        self.credentials = credentials
        self.transport = transport or BlockApiTransport(credentials)
        self.on_status_change = on_status_change
        self.poller_factory = poller_factory
        self.logger = logger

    async def __aenter__(self) -> "BlockBookingClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def submit_action(self, request: ActionRequest) -> str:
        """Posts an action and returns the id of the job it created"""
        self.logger.info(
            f"Submitting {request.action.value} for connection {request.connection_id}"
        )
        response = await self.transport.post("/v1/actions", request.to_body())

        job_id = response.get("jobId") if isinstance(response, dict) else None
        if not job_id:
            self.logger.error(f"No job ID in {request.action.value} response: {response}")
            raise JobSubmissionError(request.action.subject)

        self.logger.info(f"{request.action.value} queued as job {job_id}")
        return str(job_id)

    async def run_action(
        self, request: ActionRequest, config: Optional[PollingConfig] = None
    ) -> JobResult:
        """Submit an action and wait for its job to finish"""
        job_id = await self.submit_action(request)
        poller = self.poller_factory(
            self.transport, config, on_status_change=self.on_status_change
        )
        return await poller.poll_until_complete(
            job_id,
            subject=request.action.subject,
            failure_hint=FAILURE_HINTS[request.action],
        )

    async def run(self, params: OperationParams) -> JobResult:
        return await self.run_action(params.to_action_request(), params.polling)

    async def book_appointment(self, params: BookAppointmentParams) -> JobResult:
        return await self.run(params)

    async def get_availability(self, params: GetAvailabilityParams) -> JobResult:
        return await self.run(params)

    async def test_credentials(self) -> Any:
        """Checks the API key by listing connections"""
        return await self.transport.get("/v1/connections")

    async def close(self) -> None:
        await self.transport.close()
