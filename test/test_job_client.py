import asyncio
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from job_server import JobServer
from job_client.client import JobClient
from job_client.errors import EmptyBatchError, JobFailedError, JobTimeoutError, TransportError
from job_client.models import BatchLimits, ClientConfig, JobState, PollingConfig
from job_client.transport import HttpJobTransport

BASE_URL_TEMPLATE = "http://localhost:{}"


@pytest_asyncio.fixture
async def server(unused_tcp_port_factory) -> AsyncGenerator[JobServer, None]:
    """Start and yield a test JobServer instance on a random port."""
    port = unused_tcp_port_factory()
    server_instance = JobServer(completion_time=0.5, error_rate=0.0, page_size=2, result_count=5)
    await server_instance.start(port=port)
    try:
        yield server_instance, port
    finally:
        await _cleanup_server(server_instance)


async def _cleanup_server(server_instance: JobServer):
    """Clean up tasks and stop the server."""
    try:
        tasks = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    except Exception as e:
        print(f"Error during cleanup: {e}")
    finally:
        await server_instance.app.shutdown()
        await server_instance.app.cleanup()


@pytest.fixture
def config() -> ClientConfig:
    """Provide default configuration for the client."""
    return ClientConfig(
        polling=PollingConfig(timeout=10.0, check_interval=0.1),
        batch_limits=BatchLimits(single_limit=100, total_limit=200, record_limit=3),
        cache_ttl=60.0,
    )


@pytest.mark.asyncio
async def test_successful_completion(server, config):
    """Test normal successful completion flow."""
    status_changes = []
    server_instance, port = server

    async def status_callback(status):
        status_changes.append(status.state)

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:
        client = JobClient(transport, config, on_status_change=status_callback)
        job_id = await client.submit_and_wait({"query": "SELECT 1"})

    assert job_id in server_instance.jobs
    assert server_instance.jobs[job_id]["params"] == {"query": "SELECT 1"}
    assert JobState.running in status_changes
    assert status_changes[-1] == JobState.succeeded


@pytest.mark.asyncio
async def test_stream_results(server, config):
    server_instance, port = server

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:
        client = JobClient(transport, config)
        rows = [row async for row in client.stream_results({"query": "SELECT *"})]

    assert rows == [{"row": index} for index in range(5)]


@pytest.mark.asyncio
async def test_error_scenario(server, config):
    """Test failed job handling with high error rate."""
    server_instance, port = server
    server_instance.error_rate = 1.0

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:
        client = JobClient(transport, config)
        with pytest.raises(JobFailedError) as excinfo:
            await client.submit_and_wait({})

    assert excinfo.value.status.raw_response["job"]["status"] == "failed"


@pytest.mark.asyncio
async def test_timeout_scenario(server, config):
    """Test timeout handling."""
    server_instance, port = server
    server_instance.completion_time = 30.0

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:
        client = JobClient(transport, config)
        with pytest.raises(JobTimeoutError):
            await client.submit_and_wait({}, timeout=0.5)

    await asyncio.sleep(0.05)
    requests_at_deadline = server_instance.status_requests
    await asyncio.sleep(0.3)
    assert server_instance.status_requests == requests_at_deadline


@pytest.mark.asyncio
async def test_server_unavailable(config):
    """Test behavior when server is not available."""
    async with HttpJobTransport("http://localhost:9999") as transport:  # Invalid port
        client = JobClient(transport, config)
        with pytest.raises(TransportError):
            await client.submit_and_wait({})


@pytest.mark.asyncio
async def test_unknown_job_is_transport_error(server, config):
    server_instance, port = server

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:
        with pytest.raises(TransportError) as excinfo:
            await transport.poll_status("no-such-job")

    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_submit_batch(server, config):
    server_instance, port = server

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:
        client = JobClient(transport, config)
        batch = client.new_batch()
        batch.add_entry(b"\x00\x01binary", partition_key="p1")
        batch.add_entry("text", partition_key="p2")
        ack = await client.submit_batch(batch)

        with pytest.raises(EmptyBatchError):
            await client.submit_batch(client.new_batch())

    assert ack.accepted == 2
    assert [record["data"] for record in server_instance.batches[0]] == [b"\x00\x01binary", b"text"]
    assert len(server_instance.batches) == 1


@pytest.mark.asyncio
async def test_submit_records_splits_batches(server, config):
    server_instance, port = server

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:
        client = JobClient(transport, config)
        acks = await client.submit_records([(f"record-{i}", "k") for i in range(7)])

    assert [ack.accepted for ack in acks] == [3, 3, 1]
    assert len(server_instance.batches) == 3


@pytest.mark.asyncio
async def test_lookup_is_cached(config):
    calls = []

    async def lookup_job(key):
        calls.append(key)
        return {"id": key}

    async with HttpJobTransport("http://localhost:9999") as transport:
        client = JobClient(transport, config)
        assert await client.lookup("job-1", lookup_job) == {"id": "job-1"}
        assert await client.lookup("job-1", lookup_job) == {"id": "job-1"}

    assert calls == ["job-1"]


@pytest.mark.asyncio
async def test_multiple_clients(server, config):
    """Test multiple clients polling simultaneously."""
    server_instance, port = server

    async with HttpJobTransport(BASE_URL_TEMPLATE.format(port)) as transport:

        async def run_client():
            client = JobClient(transport, config)
            return await client.submit_and_wait({})

        results = await asyncio.gather(*[run_client() for _ in range(3)])

    assert len(set(results)) == 3
    assert all(job_id in server_instance.jobs for job_id in results)
