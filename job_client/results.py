from typing import Any, AsyncIterator, Dict

from job_client.cursor import CursorStream
from job_client.models import Cursor, Page
from job_client.poller import OperationPoller
from job_client.transport import JobTransport


async def execute_for_stream(
    poller: OperationPoller,
    params: Dict[str, Any],
    timeout: float,
    check_interval: float,
) -> CursorStream:
    """Runs a job to success and returns a stream over its result pages"""
    job_id = await poller.submit_and_wait(params, timeout, check_interval)
    return results_stream(poller.transport, job_id)


def results_stream(transport: JobTransport, job_id: str) -> CursorStream:
    async def fetch(cursor: Cursor) -> Page:
        return await transport.fetch_page(job_id, cursor)

    return CursorStream(fetch, Cursor.not_started())


async def stream_result_pages(
    poller: OperationPoller,
    params: Dict[str, Any],
    timeout: float,
    check_interval: float,
) -> AsyncIterator[Page]:
    # a job that never succeeded raises here, before any page is requested
    stream = await execute_for_stream(poller, params, timeout, check_interval)
    async for page in stream:
        yield page


async def stream_results(
    poller: OperationPoller,
    params: Dict[str, Any],
    timeout: float,
    check_interval: float,
) -> AsyncIterator[Any]:
    stream = await execute_for_stream(poller, params, timeout, check_interval)
    async for item in stream.items():
        yield item
