"""Shared fixtures: an in-memory article source with controllable timing."""

import asyncio

import pytest

from wikiscroll.core.article_source import ArticleSource
from wikiscroll.providers.content_types import Article


def make_articles(count, start=0):
    return [
        Article(id=start + i, title=f"Article {start + i}", extract=f"Extract {start + i}")
        for i in range(count)
    ]


class FakeSource(ArticleSource):
    """Returns `page_size` articles per page unless told otherwise.

    - results[(kind, key, page)] overrides a page ("category"/"search")
    - gates[(kind, key, page)] holds a request until the Event is set
    - errors[(kind, key, page)] raises instead of returning
    """

    def __init__(self):
        self.calls = []
        self.results = {}
        self.gates = {}
        self.errors = {}

    def gate(self, kind, key, page):
        event = asyncio.Event()
        self.gates[(kind, key, page)] = event
        return event

    def count(self, kind, key, page):
        return self.calls.count((kind, key, page))

    async def _respond(self, kind, key, page, page_size):
        self.calls.append((kind, key, page))
        gate = self.gates.get((kind, key, page))
        if gate is not None:
            await gate.wait()
        if (kind, key, page) in self.errors:
            raise self.errors[(kind, key, page)]
        if (kind, key, page) in self.results:
            return list(self.results[(kind, key, page)])
        offset = 1000 if kind == "search" else 0
        return make_articles(page_size, start=offset + page * 100)

    async def fetch_by_category(self, category, page, page_size):
        return await self._respond("category", category, page, page_size)

    async def search_by_text(self, query, page, page_size):
        if not query.strip():
            return []
        return await self._respond("search", query, page, page_size)


@pytest.fixture
def source():
    return FakeSource()
