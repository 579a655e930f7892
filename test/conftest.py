from typing import Dict, List, Optional

import pytest

from job_client.models import BatchAck, Cursor, JobState, JobStatus, Page


class FakeTransport:
    """Scripted transport; the last status in `states` repeats forever"""

    def __init__(
        self,
        states: Optional[List] = None,
        pages: Optional[Dict[Optional[str], Page]] = None,
        job_id: str = "job-1",
    ):
        self.states = list(states or ["succeeded"])
        self.pages = pages or {}
        self.job_id = job_id
        self.submissions = []
        self.status_calls = 0
        self.fetched_cursors: List[Cursor] = []
        self.batches = []

    async def submit(self, params):
        self.submissions.append(params)
        return self.job_id

    async def poll_status(self, job_id):
        self.status_calls += 1
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        if isinstance(state, Exception):
            raise state
        if state is None:
            return None
        return JobStatus(
            state=JobState.from_remote(state),
            raw_response={"job": {"id": job_id, "status": state}},
        )

    async def fetch_page(self, job_id, cursor):
        self.fetched_cursors.append(cursor)
        page = self.pages[cursor.token]
        if isinstance(page, Exception):
            raise page
        return page

    async def submit_batch(self, entries):
        self.batches.append(entries)
        return BatchAck(accepted=len(entries))


@pytest.fixture
def three_pages() -> Dict[Optional[str], Page]:
    return {
        None: Page(items=[1, 2], next_token="A"),
        "A": Page(items=[3], next_token="B"),
        "B": Page(items=[4, 5], next_token=None),
    }
