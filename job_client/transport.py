import asyncio
import base64
from typing import Any, Dict, List, Optional, Protocol

import aiohttp
from loguru import logger

from job_client.errors import InvalidResponseError, TransportError
from job_client.models import BatchAck, Cursor, JobState, JobStatus, Page, RecordEntry


class JobTransport(Protocol):
    """The async capabilities the core needs from a remote job service"""

    async def submit(self, params: Dict[str, Any]) -> str: ...

    async def poll_status(self, job_id: str) -> JobStatus: ...

    async def fetch_page(self, job_id: str, cursor: Cursor) -> Page: ...

    async def submit_batch(self, entries: List[RecordEntry]) -> BatchAck: ...


class HttpJobTransport:
    """JSON over HTTP adapter for a remote job service.

    Credentials and any other per-service headers are passed in explicitly;
    nothing is read from or written to the process environment.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self._session = session
        self._owns_session = session is None
        self.logger = logger

    async def __aenter__(self) -> "HttpJobTransport":
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("HttpJobTransport must be used as an async context manager")
        return self._session

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self.session.request(
                method, url, headers=self.headers, **kwargs
            ) as response:
                response.raise_for_status()
                data = await response.json()
        except aiohttp.ContentTypeError as e:
            raise InvalidResponseError(f"response from {url} is not JSON") from e
        except aiohttp.ClientResponseError as e:
            self.logger.error(f"HTTP error {e.status} at {url}: {e.message}")
            raise TransportError(f"HTTP {e.status} at {url}: {e.message}", e.status) from e
        except aiohttp.ClientError as e:
            self.logger.error(f"Request to {url} failed: {e}")
            raise TransportError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise InvalidResponseError(f"response from {url} is not valid JSON") from e

        if not isinstance(data, dict):
            raise InvalidResponseError(f"response from {url} is not a JSON object")
        return data

    async def submit(self, params: Dict[str, Any]) -> str:
        data = await self._request("POST", "/jobs", json=params)
        job_id = data.get("job_id")
        if not isinstance(job_id, str) or not job_id:
            raise InvalidResponseError("job ID is missing")
        return job_id

    async def poll_status(self, job_id: str) -> JobStatus:
        """Fetches the status of a job from the server"""
        start_time = asyncio.get_running_loop().time()
        data = await self._request("GET", f"/jobs/{job_id}")

        job = data.get("job")
        if not isinstance(job, dict):
            raise InvalidResponseError("job record is invalid")
        state = job.get("status")
        if not isinstance(state, str):
            raise InvalidResponseError("job state is invalid")

        return JobStatus(
            state=JobState.from_remote(state),
            raw_response=data,
            elapsed_time=asyncio.get_running_loop().time() - start_time,
        )

    async def fetch_page(self, job_id: str, cursor: Cursor) -> Page:
        params = {"next_token": cursor.token} if cursor.token else {}
        data = await self._request("GET", f"/jobs/{job_id}/results", params=params)
        items = data.get("items")
        if items is not None and not isinstance(items, list):
            raise InvalidResponseError("result set is invalid")
        next_token = data.get("next_token")
        if next_token is not None and not isinstance(next_token, str):
            raise InvalidResponseError("next token is invalid")
        return Page(items=items, next_token=next_token)

    async def submit_batch(self, entries: List[RecordEntry]) -> BatchAck:
        payload = {
            "records": [
                {
                    "data": base64.b64encode(entry.data).decode("ascii"),
                    "partition_key": entry.partition_key,
                    "explicit_hash_key": entry.explicit_hash_key,
                }
                for entry in entries
            ]
        }
        data = await self._request("POST", "/batches", json=payload)
        accepted = data.get("accepted")
        failed = data.get("failed", 0)
        if not isinstance(accepted, int) or not isinstance(failed, int):
            raise InvalidResponseError("batch acknowledgement is invalid")
        return BatchAck(accepted=accepted, failed=failed, raw_response=data)
