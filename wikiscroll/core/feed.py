"""Feed state machine: incremental loading of article pages for the active query.

Provides:
- FeedState, an immutable snapshot handed to readers
- FeedStateMachine, the single writer of feed state

Every request is tagged with the filter generation it was issued for.
Results arriving after the filter changed are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from wikiscroll.core.article_source import ArticleSource
from wikiscroll.core.categories import ALL_CATEGORY
from wikiscroll.providers.content_types import Article, FeedQuery

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 15


@dataclass(frozen=True)
class FeedState:
    """Snapshot of a feed. Replaced, never mutated, by the state machine."""

    items: tuple[Article, ...] = ()
    cursor: int = 1
    loading: bool = False
    preloading: bool = False
    has_more: bool = True
    is_searching: bool = False
    query: FeedQuery = field(default_factory=lambda: FeedQuery.for_category(ALL_CATEGORY))
    generation: int = 0

    def keyed_items(self) -> Iterator[tuple[str, Article]]:
        """Yield (render key, article); ids may repeat so keys include the position."""
        for index, article in enumerate(self.items):
            yield f"{article.id}-{index}", article

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "items": [{"key": key, **a.to_dict()} for key, a in self.keyed_items()],
            "cursor": self.cursor,
            "loading": self.loading,
            "preloading": self.preloading,
            "has_more": self.has_more,
            "is_searching": self.is_searching,
            "query": self.query.to_dict(),
            "generation": self.generation,
        }


StateListener = Callable[[FeedState], None]


class FeedStateMachine:
    """Owns one feed's state and the operations that change it.

    States: idle or loading (foreground), with preloading running
    independently. `has_more=False` sticks until the next `set_filter`.

    Prefetched pages are held aside rather than appended; the next
    `load_more()` for that page promotes them (awaiting the prefetch if it
    is still in flight), so each page is fetched once.
    """

    def __init__(self, source: ArticleSource, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._source = source
        self._page_size = page_size
        self._state = FeedState()
        self._category = ALL_CATEGORY
        self._held: dict[int, asyncio.Future[list[Article]]] = {}
        self._listeners: list[StateListener] = []
        self._closed = False

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def closed(self) -> bool:
        return self._closed

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    # --- Operations ---

    async def mount(self) -> None:
        """Initial unfiltered load when the view appears."""
        await self.set_filter(FeedQuery.for_category(ALL_CATEGORY))

    async def set_filter(self, query: FeedQuery) -> None:
        """Switch to a new query: reset the list and cursor, then load page 1.

        A blank search falls back to the selected category. Selecting a
        category replaces any search; searching keeps the category so
        clearing the search returns to it.
        """
        if self._closed:
            return
        if query.category is not None:
            self._category = query.category
        elif not query.is_search:
            query = FeedQuery.for_category(self._category)

        logger.debug(f"Filter -> {query.to_dict()} (generation {self._state.generation + 1})")
        self._held = {}
        # In-flight work of the old generation is ignored, so its flags go too
        self._update(
            items=(),
            cursor=1,
            has_more=True,
            loading=False,
            preloading=False,
            is_searching=query.is_search,
            query=query,
            generation=self._state.generation + 1,
        )
        await self.load_page(1)

    async def reset_to_home(self) -> None:
        """Back to the unfiltered random feed with no search."""
        self._category = ALL_CATEGORY
        await self.set_filter(FeedQuery.for_category(ALL_CATEGORY))

    async def load_more(self) -> None:
        """Advance the cursor and load the next page, unless busy or exhausted."""
        state = self._state
        if self._closed or state.loading or not state.has_more:
            return
        next_page = state.cursor + 1
        self._update(cursor=next_page)
        await self.load_page(next_page)

    async def preload_more(self) -> None:
        """Fetch the page after the cursor ahead of need, without advancing the cursor."""
        state = self._state
        if self._closed or state.preloading or not state.has_more or not state.items:
            return
        if state.cursor + 1 in self._held:
            return
        await self.load_page(state.cursor + 1, is_preload=True)

    async def load_page(self, page: int, is_preload: bool = False) -> None:
        """Load one page for the active query.

        Foreground loads replace the items (page 1) or append (later pages);
        preloads hold their result for the next `load_more()`. An empty page
        ends the feed. Failures leave the items untouched.
        """
        state = self._state
        if self._closed:
            return
        if is_preload:
            if state.preloading:
                return
            flag = "preloading"
        else:
            if state.loading:
                return
            flag = "loading"

        generation = state.generation
        query = state.query
        self._update(**{flag: True})

        try:
            if is_preload:
                articles = await self._prefetch(page, query)
            else:
                held = self._held.pop(page, None)
                if held is not None:
                    logger.debug(f"Promoting prefetched page {page}")
                    articles = await held
                else:
                    articles = await self._fetch(page, query)

            if self._closed or generation != self._state.generation:
                logger.debug(
                    f"Discarding page {page} of generation {generation} "
                    f"(now {self._state.generation})"
                )
                return

            if is_preload:
                if not articles:
                    self._update(has_more=False)
            elif page == 1:
                self._update(items=tuple(articles), has_more=len(articles) > 0)
            else:
                self._update(items=self._state.items + tuple(articles), has_more=len(articles) > 0)

        except Exception:
            logger.exception(f"Failed to load page {page} for {query.to_dict()}")

        finally:
            if not self._closed and generation == self._state.generation:
                self._update(**{flag: False})

    def close(self) -> None:
        """Tear down: later results are ignored and listeners dropped."""
        self._closed = True
        self._held = {}
        self._listeners.clear()

    # --- Helpers ---

    async def _fetch(self, page: int, query: FeedQuery) -> list[Article]:
        if query.is_search:
            return await self._source.search_by_text(query.search_text or "", page, self._page_size)
        return await self._source.fetch_by_category(
            query.category or ALL_CATEGORY, page, self._page_size
        )

    async def _prefetch(self, page: int, query: FeedQuery) -> list[Article]:
        task = asyncio.ensure_future(self._fetch(page, query))
        held = self._held
        held[page] = task
        try:
            return await task
        except Exception:
            if held.get(page) is task:
                del held[page]
            raise
