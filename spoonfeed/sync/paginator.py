"""
Client-side infinite feed.

    IDLE ──load_initial──▶ LOADING_INITIAL ──▶ READY ⇄ LOADING_MORE
                                   │                      │
                                   └────────▶ EXHAUSTED ◀─┘

The view calls on_sentinel_visible() whenever the bottom of the list scrolls
into view; at most one load-more is in flight at any time. A page shorter
than page_size, or one the server marks has_more = false, is the last one.
"""
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from spoonfeed.config import settings
from spoonfeed.schemas import FeedPage, ReviewResponse

logger = logging.getLogger(__name__)

FetchPage = Callable[[Optional[str], int], Awaitable[FeedPage]]


class FeedState(str, Enum):
    IDLE = "idle"
    LOADING_INITIAL = "loading_initial"
    READY = "ready"
    LOADING_MORE = "loading_more"
    EXHAUSTED = "exhausted"


class FeedPaginator:
    def __init__(self, fetch_page: FetchPage, page_size: int = settings.feed_page_size) -> None:
        self._fetch_page = fetch_page
        self.page_size = page_size
        self.state = FeedState.IDLE
        self.items: list[ReviewResponse] = []
        self.requests_issued = 0
        self.last_error: Optional[Exception] = None
        self._cursor: Optional[str] = None

    @classmethod
    def for_client(cls, client, following_only: bool = False, page_size: int = settings.feed_page_size):
        async def fetch(cursor: Optional[str], size: int) -> FeedPage:
            return await client.get_feed_page(cursor=cursor, page_size=size, following_only=following_only)

        return cls(fetch, page_size=page_size)

    @property
    def is_loading_more(self) -> bool:
        return self.state is FeedState.LOADING_MORE

    @property
    def exhausted(self) -> bool:
        return self.state is FeedState.EXHAUSTED

    async def load_initial(self) -> bool:
        """Fetch the first page, discarding anything loaded before. Returns success."""
        if self.state in (FeedState.LOADING_INITIAL, FeedState.LOADING_MORE):
            return False
        previous = self.state
        self.state = FeedState.LOADING_INITIAL
        return await self._load(previous, cursor=None, replace=True)

    async def load_more(self) -> bool:
        """Fetch the next page if there is one and nothing else is loading."""
        if self.state is FeedState.IDLE:
            return await self.load_initial()
        if self.state is not FeedState.READY:
            return False
        self.state = FeedState.LOADING_MORE
        return await self._load(FeedState.READY, cursor=self._cursor)

    async def on_sentinel_visible(self) -> bool:
        return await self.load_more()

    async def _load(self, resting_state: FeedState, cursor: Optional[str], replace: bool = False) -> bool:
        self.requests_issued += 1
        try:
            page = await self._fetch_page(cursor, self.page_size)
        except Exception as exc:
            logger.warning("Feed page fetch failed: %s", exc)
            self.last_error = exc
            self.state = resting_state
            return False

        self.last_error = None
        if replace:
            self.items = []
        self.items.extend(page.items)
        self._cursor = page.next_cursor
        if len(page.items) < self.page_size or not page.has_more or not page.next_cursor:
            self.state = FeedState.EXHAUSTED
        else:
            self.state = FeedState.READY
        return True
