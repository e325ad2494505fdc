from typing import Optional

DEFAULT_JOB_ERROR_CODE = "unknown_error"


class BlockBookingError(Exception):
    """Base exception for Block booking failures.

    Attributes:
        message: Short summary shown to the workflow user
        description: Longer explanation with a suggested fix
    """

    def __init__(self, message: str, description: Optional[str] = None):
        self.message = message
        self.description = description
        super().__init__(message)


class BlockApiRequestError(BlockBookingError):
    """Raised when an HTTP call to the Block API fails.

    Covers connection errors, HTTP error statuses, request timeouts and
    bodies that are not valid JSON.
    """

    def __init__(
        self,
        message: str,
        url: str,
        status: Optional[int] = None,
        description: Optional[str] = None,
    ):
        self.url = url
        self.status = status
        super().__init__(message, description)


class JobSubmissionError(BlockBookingError):
    """Raised when the actions endpoint answers without a job id"""

    def __init__(self, subject: str = "Block"):
        super().__init__(
            f"No job ID returned from the {subject.lower()} service",
            f"The {subject.lower()} service did not return a job ID. Verify your "
            "connection ID and API credentials are correct, then try again.",
        )


class JobPollingTimeoutError(BlockBookingError, TimeoutError):
    """Raised when a job does not reach a terminal status in time"""

    def __init__(self, job_id: str, timeout_seconds: float, elapsed_seconds: float):
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"Job polling timed out after {timeout_seconds:g} seconds. Job ID: {job_id}",
            "The job did not complete within the specified timeout period. Increase "
            'the "Poll Timeout (Seconds)" parameter or check the job status manually '
            "using the job ID.",
        )


class JobFailedError(BlockBookingError):
    """Raised when the remote job ends with status "error"

    Attributes:
        job_id: Remote job identifier
        error_code: Code reported by the job, "unknown_error" when missing
        error_message: Message reported by the job
        raw_response: The terminal job payload
    """

    def __init__(
        self,
        job_id: str,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        subject: str = "Job",
        hint: str = "Verify the connection ID and request details are correct, then try again.",
        raw_response: Optional[dict] = None,
    ):
        self.job_id = job_id
        self.error_code = error_code or DEFAULT_JOB_ERROR_CODE
        self.error_message = (
            error_message or f"The {subject.lower()} job could not be completed"
        )
        self.raw_response = raw_response or {}
        super().__init__(
            f"{subject} job could not be completed. Job ID: {job_id}, Code: {self.error_code}",
            f"{self.error_message}. {hint}",
        )


class BlockBookingOperationError(BlockBookingError):
    """Raised by the node driver for unknown operations and unexpected failures"""
