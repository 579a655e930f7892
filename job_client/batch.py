import uuid
from typing import Iterable, List, Optional, Tuple, Union

from loguru import logger

from job_client.errors import BatchConsumedError, BatchFullError, EntryTooLargeError
from job_client.models import BatchLimits, RecordEntry

Data = Union[bytes, str]


class RecordsBuilder:
    """Collects record entries into one batch bounded by size and count.

    An entry is rejected when its own size reaches ``single_limit`` or when
    accepting it would bring the running total to ``total_limit`` or the
    entry count past ``record_limit``. A rejected entry leaves the builder
    untouched.
    """

    def __init__(self, single_limit: int, total_limit: int, record_limit: int):
        self.single_limit = single_limit
        self.total_limit = total_limit
        self.record_limit = record_limit
        self._entries: List[RecordEntry] = []
        self._total_size = 0
        self._built = False

    @classmethod
    def from_limits(cls, limits: BatchLimits) -> "RecordsBuilder":
        return cls(limits.single_limit, limits.total_limit, limits.record_limit)

    @property
    def total_size(self) -> int:
        return self._total_size

    def __len__(self) -> int:
        return len(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    def add_entry_data(self, data: Data) -> None:
        self.add_entry(data)

    def add_entry(
        self,
        data: Data,
        partition_key: Optional[str] = None,
        explicit_hash_key: Optional[str] = None,
    ) -> None:
        self._ensure_open()

        if partition_key is None:
            partition_key = str(uuid.uuid4())
        if isinstance(data, str):
            data = data.encode("utf-8")

        size = len(data) + len(partition_key.encode("utf-8"))
        if size >= self.single_limit:
            raise EntryTooLargeError(size, self.single_limit)

        if (
            self._total_size + size >= self.total_limit
            or len(self._entries) >= self.record_limit
        ):
            raise BatchFullError(
                self._total_size + size,
                self.total_limit,
                len(self._entries) + 1,
                self.record_limit,
            )

        self._entries.append(
            RecordEntry(
                data=data,
                partition_key=partition_key,
                explicit_hash_key=explicit_hash_key,
            )
        )
        self._total_size += size

    def build(self) -> List[RecordEntry]:
        """Finalizes the batch; the builder cannot be used afterwards"""
        self._ensure_open()
        self._built = True
        entries, self._entries = self._entries, []
        return entries

    def _ensure_open(self) -> None:
        if self._built:
            raise BatchConsumedError("RecordsBuilder was already built")


def split_into_batches(
    records: Iterable[Tuple[Data, Optional[str]]], limits: BatchLimits
) -> List[List[RecordEntry]]:
    """Packs (data, partition_key) pairs into as few consecutive batches as the limits allow.

    An entry that is too large for any batch raises EntryTooLargeError.
    """
    batches = []
    builder = RecordsBuilder.from_limits(limits)

    for data, partition_key in records:
        try:
            builder.add_entry(data, partition_key)
        except BatchFullError:
            logger.debug(
                f"Batch full at {len(builder)} entries / {builder.total_size} bytes, starting a new one"
            )
            batches.append(builder.build())
            builder = RecordsBuilder.from_limits(limits)
            builder.add_entry(data, partition_key)

    if not builder.is_empty():
        batches.append(builder.build())
    return batches
