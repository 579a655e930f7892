from datetime import timedelta
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from job_client.batch import Data, RecordsBuilder, split_into_batches
from job_client.cache import Supplier, TTLCache
from job_client.errors import EmptyBatchError
from job_client.models import BatchAck, ClientConfig, RecordEntry
from job_client.poller import OperationPoller, StatusCallback
from job_client.results import stream_results
from job_client.transport import JobTransport


class JobClient:
    """Convenience layer wiring the poller, result stream, batches and cache
    to one transport, with the defaults from ClientConfig."""

    def __init__(
        self,
        transport: JobTransport,
        config: Optional[ClientConfig] = None,
        on_status_change: Optional[StatusCallback] = None,
    ):
        self.transport = transport
        self.config = config or ClientConfig()
        self.poller = OperationPoller(transport, on_status_change=on_status_change)
        self.cache: TTLCache = TTLCache(timedelta(seconds=self.config.cache_ttl))
        self.logger = logger

    async def submit_and_wait(
        self,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
        check_interval: Optional[float] = None,
    ) -> str:
        polling = self.config.polling
        return await self.poller.submit_and_wait(
            params,
            timeout if timeout is not None else polling.timeout,
            check_interval if check_interval is not None else polling.check_interval,
        )

    def stream_results(
        self,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
        check_interval: Optional[float] = None,
    ) -> AsyncIterator[Any]:
        polling = self.config.polling
        return stream_results(
            self.poller,
            params,
            timeout if timeout is not None else polling.timeout,
            check_interval if check_interval is not None else polling.check_interval,
        )

    def new_batch(self) -> RecordsBuilder:
        return RecordsBuilder.from_limits(self.config.batch_limits)

    async def submit_batch(self, builder: RecordsBuilder) -> BatchAck:
        """Finalizes the builder and sends its entries in one call"""
        if builder.is_empty():
            raise EmptyBatchError("Batch cannot be empty")
        entries = builder.build()
        return await self._send(entries)

    async def submit_records(self, records: Iterable[Tuple[Data, Optional[str]]]) -> List[BatchAck]:
        """Splits records into batches within the configured limits and sends each.

        Limits are checked for every record before the first batch is sent.
        """
        batches = split_into_batches(records, self.config.batch_limits)
        return [await self._send(entries) for entries in batches]

    async def _send(self, entries: List[RecordEntry]) -> BatchAck:
        self.logger.debug(f"Submitting batch of {len(entries)} records")
        ack = await self.transport.submit_batch(entries)
        if ack.failed:
            self.logger.warning(f"{ack.failed} of {len(entries)} records were rejected")
        return ack

    async def lookup(self, key: Any, supplier: Supplier) -> Any:
        return await self.cache.get(key, supplier)
