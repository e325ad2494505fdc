from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from booking_server import BookingServer
from block_booking.errors import BlockApiRequestError
from block_booking.models import BlockApiCredentials

API_KEY = "test-key"


class FakeClock:
    """Virtual time: sleeping advances the clock instead of waiting."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class FakeTransport:
    """Scripted transport. Each GET consumes the next response; an exception
    instance in the script is raised instead of returned."""

    def __init__(self, clock: FakeClock, job_responses=None, action_response=None, read_latency=0.0):
        self.clock = clock
        self.job_responses = list(job_responses or [])
        self.action_response = {"jobId": "job-1"} if action_response is None else action_response
        self.read_latency = read_latency
        self.posts = []
        self.reads = []
        self.closed = False

    async def post(self, endpoint: str, body: dict) -> Any:
        self.posts.append((endpoint, body))
        return self.action_response

    async def get(self, endpoint: str, params=None) -> Any:
        self.reads.append((self.clock.time(), endpoint))
        self.clock.now += self.read_latency
        response = self.job_responses.pop(0) if len(self.job_responses) > 1 else self.job_responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


def transient_error() -> BlockApiRequestError:
    return BlockApiRequestError("Could not connect to the Block API", url="http://test/v1/jobs/job-1")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credentials() -> BlockApiCredentials:
    return BlockApiCredentials(api_key=API_KEY, base_url="http://block.test")


@pytest_asyncio.fixture
async def server() -> AsyncGenerator[BookingServer, None]:
    """Start and yield a BookingServer on a free port."""
    server_instance = BookingServer(completion_time=1.0, error_rate=0.0, api_key=API_KEY)
    await server_instance.start(port=0)
    try:
        yield server_instance
    finally:
        await server_instance.stop()
