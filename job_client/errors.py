from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from job_client.models import JobStatus


class JobClientError(Exception):
    """Base class for every error raised by job_client"""


class TransportError(JobClientError):
    """The remote call itself failed (network, HTTP status, protocol)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidResponseError(JobClientError):
    """A successful response was missing fields it must carry"""


class JobCancelledError(JobClientError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} was cancelled")
        self.job_id = job_id


class JobFailedError(JobClientError):
    def __init__(self, job_id: str, status: "JobStatus"):
        super().__init__(f"Job {job_id} failed: {status.raw_response}")
        self.job_id = job_id
        self.status = status


class JobTimeoutError(JobClientError, TimeoutError):
    def __init__(self, job_id: str, timeout: float):
        super().__init__(f"Job {job_id} did not complete within {timeout} seconds")
        self.job_id = job_id
        self.timeout = timeout


class BatchLimitError(JobClientError):
    pass


class EntryTooLargeError(BatchLimitError):
    def __init__(self, size: int, single_limit: int):
        super().__init__(f"data size: {size}, single_limit: {single_limit}")
        self.size = size
        self.single_limit = single_limit


class BatchFullError(BatchLimitError):
    def __init__(self, total_size: int, total_limit: int, entries: int, record_limit: int):
        super().__init__(
            f"total size: {total_size}, total_limit: {total_limit}, "
            f"entries: {entries}, record_limit: {record_limit}"
        )
        self.total_size = total_size
        self.total_limit = total_limit
        self.entries = entries
        self.record_limit = record_limit


class BatchConsumedError(JobClientError):
    """The builder was already finalized by build()"""


class EmptyBatchError(BatchLimitError):
    pass
