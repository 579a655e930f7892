from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

from loguru import logger

from job_client.errors import InvalidResponseError
from job_client.models import Cursor, Page

PageFetcher = Callable[[Cursor], Awaitable[Page]]


class CursorStream:
    """Turns a paged listing into a forward-only async iterator of pages.

    Every pull that is not past the end issues exactly one fetch. A failed
    or malformed page is raised once and ends the stream, so later pulls
    stop instead of asking for the same page again.
    """

    def __init__(self, fetch: PageFetcher, cursor: Optional[Cursor] = None):
        self.fetch = fetch
        self.cursor = cursor or Cursor.not_started()
        self.pages_fetched = 0
        self.logger = logger

    def __aiter__(self) -> "CursorStream":
        return self

    async def __anext__(self) -> Page:
        if self.cursor.is_exhausted:
            raise StopAsyncIteration

        try:
            page = await self.fetch(self.cursor)
        except Exception:
            self.cursor = Cursor.exhausted()
            raise
        self.pages_fetched += 1

        if page.items is None:
            self.logger.error(f"Page {self.pages_fetched} has no result set, ending stream")
            self.cursor = Cursor.exhausted()
            raise InvalidResponseError("result set is missing from page")

        self.cursor = Cursor.from_token(page.next_token)
        self.logger.debug(
            f"Fetched page {self.pages_fetched} with {len(page.items)} items, "
            f"cursor now {self.cursor.position.value}"
        )
        return page

    async def items(self) -> AsyncIterator[Any]:
        """Yields the items of every page, in order"""
        async for page in self:
            for item in page.items:
                yield item

    async def collect(self) -> List[Any]:
        return [item async for item in self.items()]
