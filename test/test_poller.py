import pytest
from conftest import FakeTransport, transient_error
from block_booking.errors import JobFailedError, JobPollingTimeoutError
from block_booking.models import JobStatus, PollingConfig
from block_booking.poller import JobPoller


def make_poller(transport, clock, interval, timeout, **kwargs) -> JobPoller:
    return JobPoller(
        transport,
        PollingConfig(interval=interval, timeout=timeout),
        clock=clock.time,
        sleep=clock.sleep,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_success_after_pending_statuses(clock):
    """Reads at t=0,2,4,6 and returns the payload of the fourth read."""
    success = {"id": "job-1", "status": "success", "result": {"appointmentId": "a1"}}
    transport = FakeTransport(
        clock,
        job_responses=[
            {"id": "job-1", "status": "queued"},
            {"id": "job-1", "status": "in_progress"},
            {"id": "job-1", "status": "in_progress"},
            success,
        ],
    )
    poller = make_poller(transport, clock, interval=2, timeout=10)

    result = await poller.poll_until_complete("job-1")

    assert result.status == JobStatus.success
    assert result.raw_response == success
    assert result.attempts == 4
    assert result.elapsed_time == 6
    assert [t for t, _ in transport.reads] == [0, 2, 4, 6]
    assert transport.reads[0][1] == "/v1/jobs/job-1"


@pytest.mark.asyncio
async def test_timeout_when_never_terminal(clock):
    transport = FakeTransport(clock, job_responses=[{"status": "queued"}])
    poller = make_poller(transport, clock, interval=1, timeout=3)

    with pytest.raises(JobPollingTimeoutError) as excinfo:
        await poller.poll_until_complete("job-1")

    assert len(transport.reads) == 3
    assert clock.now == 3
    assert excinfo.value.job_id == "job-1"
    assert excinfo.value.timeout_seconds == 3
    assert "Job polling timed out after 3 seconds. Job ID: job-1" == excinfo.value.message
    assert isinstance(excinfo.value, TimeoutError)


@pytest.mark.asyncio
async def test_timeout_is_never_raised_early(clock):
    transport = FakeTransport(clock, job_responses=[{"status": "leased"}])
    poller = make_poller(transport, clock, interval=3, timeout=10)

    with pytest.raises(JobPollingTimeoutError):
        await poller.poll_until_complete("job-1")

    # reads at 0, 3, 6, 9; the check at t=12 is the first past the deadline
    assert [t for t, _ in transport.reads] == [0, 3, 6, 9]
    assert 10 <= clock.now < 10 + 3


@pytest.mark.asyncio
async def test_error_status_fails_immediately(clock):
    transport = FakeTransport(
        clock,
        job_responses=[
            {"status": "waiting_2fa"},
            {"status": "error", "errorCode": "slot_taken", "errorMessage": "Slot already booked"},
            {"status": "success"},
        ],
    )
    poller = make_poller(transport, clock, interval=1, timeout=600)

    with pytest.raises(JobFailedError) as excinfo:
        await poller.poll_until_complete("job-1", subject="Booking")

    error = excinfo.value
    assert len(transport.reads) == 2
    assert error.job_id == "job-1"
    assert error.error_code == "slot_taken"
    assert error.message == "Booking job could not be completed. Job ID: job-1, Code: slot_taken"
    assert error.description.startswith("Slot already booked. ")
    assert error.raw_response == {
        "status": "error",
        "errorCode": "slot_taken",
        "errorMessage": "Slot already booked",
    }


@pytest.mark.asyncio
async def test_error_status_without_details_uses_defaults(clock):
    transport = FakeTransport(clock, job_responses=[{"status": "error"}])
    poller = make_poller(transport, clock, interval=1, timeout=10)

    with pytest.raises(JobFailedError) as excinfo:
        await poller.poll_until_complete("job-9", subject="Availability check")

    assert excinfo.value.error_code == "unknown_error"
    assert excinfo.value.error_message == "The availability check job could not be completed"


@pytest.mark.asyncio
async def test_transient_read_failures_are_retried(clock):
    success = {"status": "success", "slots": []}
    transport = FakeTransport(
        clock,
        job_responses=[transient_error(), transient_error(), ["not", "a", "job"], success],
    )
    poller = make_poller(transport, clock, interval=2, timeout=30)

    result = await poller.poll_until_complete("job-1")

    assert result.raw_response == success
    assert len(transport.reads) == 4
    assert clock.sleeps == [2, 2, 2]


@pytest.mark.asyncio
async def test_persistent_read_failures_end_in_timeout(clock):
    transport = FakeTransport(clock, job_responses=[transient_error()])
    poller = make_poller(transport, clock, interval=2, timeout=5)

    with pytest.raises(JobPollingTimeoutError):
        await poller.poll_until_complete("job-1")

    assert len(transport.reads) == 3


@pytest.mark.asyncio
async def test_unknown_status_is_treated_as_pending(clock):
    transport = FakeTransport(
        clock,
        job_responses=[{"status": "verifying"}, {}, {"status": "success"}],
    )
    poller = make_poller(transport, clock, interval=1, timeout=10)

    result = await poller.poll_until_complete("job-1")

    assert result.attempts == 3


@pytest.mark.asyncio
async def test_non_positive_interval_busy_polls(clock):
    transport = FakeTransport(
        clock,
        job_responses=[{"status": "queued"}, {"status": "queued"}, {"status": "success"}],
    )
    poller = make_poller(transport, clock, interval=0, timeout=10)

    result = await poller.poll_until_complete("job-1")

    assert result.attempts == 3
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_slow_reads_count_against_the_timeout(clock):
    transport = FakeTransport(clock, job_responses=[{"status": "in_progress"}], read_latency=4)
    poller = make_poller(transport, clock, interval=1, timeout=10)

    with pytest.raises(JobPollingTimeoutError):
        await poller.poll_until_complete("job-1")

    assert [t for t, _ in transport.reads] == [0, 5]


@pytest.mark.asyncio
async def test_status_change_callback(clock):
    seen = []

    async def on_change(job):
        seen.append(job.status)

    transport = FakeTransport(
        clock,
        job_responses=[
            {"status": "queued"},
            {"status": "queued"},
            {"status": "leased"},
            {"status": "in_progress"},
            {"status": "success"},
        ],
    )
    poller = make_poller(transport, clock, interval=1, timeout=60, on_status_change=on_change)

    await poller.poll_until_complete("job-1")

    assert seen == ["queued", "leased", "in_progress", "success"]
