"""Debounced, superseding registry search with incremental pagination.

DebouncedSearchClient drives the "pick an existing company/customer" box:

- set_query() restarts a fixed delay window; only the last query typed within
  the window reaches the backend.
- Every query bumps a generation counter. A response is applied only if its
  generation is still current on arrival, so a slow response for an old query
  never overwrites newer results. Requests are never cancelled, only ignored.
- has_more is "the last page was full". At the true end this costs one extra
  near-empty request, which is expected.
- Results are filtered locally by substring because the remote search ignores
  the query for some fields.
- A candidate pool (e.g. a selected company's customers) can replace the
  remote registry; queries then filter the pool without network calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from src.dealdesk.backend.errors import BackendError
from src.dealdesk.wizard.schemas import EntitySummary, SearchPage

logger = structlog.get_logger(__name__)

SearchFn = Callable[[str, int, int], Awaitable[SearchPage]]


def filter_hits(items: list[EntitySummary], query: str) -> list[EntitySummary]:
    """Keep items whose name, mobile, tax id or code contains the query."""
    needle = query.strip().lower()
    if not needle:
        return list(items)
    return [
        item
        for item in items
        if any(
            needle in (value or "").lower()
            for value in (item.name, item.mobile, item.tax_id, item.code)
        )
    ]


class DebouncedSearchClient:
    """Debounced text search over one registry.

    Args:
        search: Coroutine `(query, page, page_size) -> SearchPage`.
        debounce_seconds: Delay window restarted by every set_query().
        page_size: Items requested per page.
        name: Registry name used in log events.
    """

    def __init__(
        self,
        search: SearchFn,
        *,
        debounce_seconds: float = 0.3,
        page_size: int = 50,
        name: str = "registry",
    ) -> None:
        self._search = search
        self._debounce = debounce_seconds
        self._page_size = page_size
        self._name = name

        self._generation = 0
        self._timer: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._pool: list[EntitySummary] | None = None

        self.query = ""
        self.page = 0
        self.results: list[EntitySummary] = []
        self.has_more = False
        self.is_loading = False
        self.request_count = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def uses_pool(self) -> bool:
        return self._pool is not None

    # ── Candidate pool ─────────────────────────────────────────────────────

    def set_pool(self, items: list[EntitySummary]) -> None:
        """Search a fixed candidate list instead of the remote registry."""
        self._generation += 1
        self._pool = list(items)
        self.page = 1
        self.has_more = False
        self.is_loading = False
        self.results = filter_hits(self._pool, self.query)

    def clear_pool(self) -> None:
        """Return to remote registry search."""
        self._generation += 1
        self._pool = None
        self.page = 0
        self.results = []
        self.has_more = False
        self.is_loading = False

    # ── Querying ───────────────────────────────────────────────────────────

    def set_query(self, text: str) -> None:
        """Record a keystroke and (re)start the debounce window.

        Must be called from within a running event loop.
        """
        self.query = text
        self._generation += 1

        if self._pool is not None:
            self.results = filter_hits(self._pool, text)
            return

        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

        self.is_loading = True
        task = asyncio.get_running_loop().create_task(
            self._debounced(self._generation, text)
        )
        self._timer = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _debounced(self, generation: int, query: str) -> None:
        await asyncio.sleep(self._debounce)
        if generation != self._generation:
            return
        self._timer = None
        await self._fetch(generation, query, page=1, append=False)

    async def load_more(self) -> None:
        """Fetch the next page for the current query and append it."""
        if self._pool is not None or not self.has_more or self.is_loading:
            return
        self.is_loading = True
        await self._fetch(self._generation, self.query, page=self.page + 1, append=True)

    async def refresh(self) -> None:
        """Run the current query immediately, bypassing the debounce window."""
        if self._pool is not None:
            self.results = filter_hits(self._pool, self.query)
            return
        self._generation += 1
        self.is_loading = True
        await self._fetch(self._generation, self.query, page=1, append=False)

    async def _fetch(self, generation: int, query: str, *, page: int, append: bool) -> None:
        self.request_count += 1
        try:
            result = await self._search(query, page, self._page_size)
        except BackendError as exc:
            # Non-fatal: the next keystroke retries.
            logger.warning(
                "search.failed",
                registry=self._name,
                query=query,
                page=page,
                error=str(exc),
            )
            result = SearchPage()

        if generation != self._generation:
            logger.debug(
                "search.superseded",
                registry=self._name,
                query=query,
                generation=generation,
                current=self._generation,
            )
            return

        items = filter_hits(result.items, query)
        self.results = self.results + items if append else items
        self.page = page
        self.has_more = result.has_more
        self.is_loading = False

    async def settle(self) -> None:
        """Wait until every scheduled debounce/fetch task has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
