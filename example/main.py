import asyncio

from job_server import JobServer
from job_client.client import JobClient
from job_client.models import ClientConfig, PollingConfig
from job_client.transport import HttpJobTransport


async def status_changed(status):
    print(f"Status changed to: {status.state.value}")
    print(f"Elapsed time: {status.elapsed_time:.6f}s")


async def main():
    PORT = 8000
    server = JobServer(completion_time=5.0, error_rate=0.05, result_count=7)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    config = ClientConfig(polling=PollingConfig(timeout=60.0, check_interval=1.0))

    async with HttpJobTransport(f"http://localhost:{PORT}") as transport:
        client = JobClient(transport, config, on_status_change=status_changed)

        try:
            async for row in client.stream_results({"query": "SELECT * FROM rows"}):
                print(f"Row: {row}")
        except TimeoutError as e:
            print(f"Polling timed out: {e}")
        except Exception as e:
            print(f"Error occurred: {e}")

        batch = client.new_batch()
        for i in range(3):
            batch.add_entry(f"record-{i}", partition_key="example")
        ack = await client.submit_batch(batch)
        print(f"Batch accepted: {ack.accepted}, failed: {ack.failed}")

    await asyncio.sleep(1)


if __name__ == "__main__":
    asyncio.run(main())
