from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator


class JobState(str, Enum):
    submitted = "submitted"
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"
    unknown = "unknown"

    @classmethod
    def from_remote(cls, value: str) -> "JobState":
        """Maps a remote state string onto a JobState, falling back to unknown"""
        normalized = value.strip().lower()
        normalized = _STATE_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return cls.unknown

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.succeeded, JobState.failed, JobState.cancelled)


_STATE_ALIASES = {
    "pending": "queued",
    "in_progress": "running",
    "completed": "succeeded",
    "success": "succeeded",
    "error": "failed",
    "canceled": "cancelled",
}


class JobStatus(BaseModel):
    state: JobState
    raw_response: dict
    elapsed_time: float = 0.0


class Job(BaseModel):
    job_id: str
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state: JobState = JobState.submitted


class CursorPosition(str, Enum):
    not_started = "not_started"
    more = "more"
    exhausted = "exhausted"


class Cursor(BaseModel):
    """Where to resume a paged listing.

    An absent or empty token after a page means the listing is done; only a
    fresh cursor is not_started.
    """

    model_config = {"frozen": True}

    position: CursorPosition
    token: Optional[str] = None

    @classmethod
    def not_started(cls) -> "Cursor":
        return cls(position=CursorPosition.not_started)

    @classmethod
    def continue_from(cls, token: str) -> "Cursor":
        if not token:
            raise ValueError("continuation token must be non-empty")
        return cls(position=CursorPosition.more, token=token)

    @classmethod
    def exhausted(cls) -> "Cursor":
        return cls(position=CursorPosition.exhausted)

    @classmethod
    def from_token(cls, token: Optional[str]) -> "Cursor":
        """Builds the cursor that follows a page carrying `token`"""
        if token:
            return cls.continue_from(token)
        return cls.exhausted()

    @property
    def is_exhausted(self) -> bool:
        return self.position == CursorPosition.exhausted


class Page(BaseModel):
    items: Optional[List[Any]] = None
    next_token: Optional[str] = None


class RecordEntry(BaseModel):
    data: bytes
    partition_key: str
    explicit_hash_key: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data) + len(self.partition_key.encode("utf-8"))


class BatchAck(BaseModel):
    accepted: int
    failed: int = 0
    raw_response: dict = Field(default_factory=dict)


class PollingConfig(BaseModel):
    timeout: float = Field(default=300.0, gt=0)  # 5 minutes
    check_interval: float = Field(default=1.0, gt=0)


class BatchLimits(BaseModel):
    single_limit: int = Field(default=1_000_000, gt=0)
    total_limit: int = Field(default=5_000_000, gt=0)
    record_limit: int = Field(default=500, gt=0)

    @model_validator(mode="after")
    def _check_single_within_total(self) -> "BatchLimits":
        if self.single_limit > self.total_limit:
            raise ValueError("single_limit cannot exceed total_limit")
        return self


class ClientConfig(BaseModel):
    polling: PollingConfig = Field(default_factory=PollingConfig)
    batch_limits: BatchLimits = Field(default_factory=BatchLimits)
    cache_ttl: float = Field(default=60.0, gt=0)
