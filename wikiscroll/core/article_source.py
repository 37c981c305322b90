"""Article source adapter: normalized article lists for categories, searches and random sampling.

All upstream shapes (REST summaries, search hits, page-detail entries) are
mapped into `Article` here and nowhere else. Upstream failures never reach
the caller: they are absorbed by returning the fixed sample set.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from wikiscroll.core.categories import ALL_CATEGORY, category_search_query
from wikiscroll.core.settings import Settings
from wikiscroll.providers.content_types import (
    NO_SUMMARY,
    Article,
    Coordinates,
    article_url,
)
from wikiscroll.providers.wikipedia import (
    WikipediaClient,
    WikipediaError,
    WikipediaUnavailableError,
)

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_CATEGORY_PREFIX = "Category:"

SAMPLE_ARTICLES: tuple[Article, ...] = (
    Article(
        id=1,
        title="Economics",
        extract=(
            "Economics is the social science that studies the production, distribution, "
            "and consumption of goods and services. Economics focuses on the behavior and "
            "interactions of economic agents and how economies work."
        ),
        description="Social science studying production, distribution, and consumption",
        url="https://en.wikipedia.org/wiki/Economics",
        categories=("Economics", "Social sciences"),
    ),
    Article(
        id=2,
        title="Physics",
        extract=(
            "Physics is the natural science that studies matter, its motion and behavior "
            "through space and time, and the related entities of energy and force. Physics "
            "is one of the most fundamental scientific disciplines."
        ),
        description="Natural science studying matter and energy",
        url="https://en.wikipedia.org/wiki/Physics",
        categories=("Physics", "Natural sciences"),
    ),
    Article(
        id=3,
        title="Mathematics",
        extract=(
            "Mathematics is the science that deals with the logic of shape, quantity and "
            "arrangement. Math is all around us, in everything we do. It is the building "
            "block for everything in our daily lives."
        ),
        description="Science of numbers, shapes, and patterns",
        url="https://en.wikipedia.org/wiki/Mathematics",
        categories=("Mathematics", "Formal sciences"),
    ),
)


def fallback_articles(query: str | None = None, limit: int = 10) -> list[Article]:
    """Sample articles used when Wikipedia cannot be reached.

    With a query, keeps samples whose title or extract contains it
    (case-insensitive); without one, returns them verbatim. Truncated to
    `limit` either way.
    """
    articles = list(SAMPLE_ARTICLES)
    if query is not None:
        needle = query.strip().lower()
        articles = [
            a for a in articles if needle in a.title.lower() or needle in a.extract.lower()
        ]
    return articles[: max(limit, 0)]


def strip_html(text: str) -> str:
    """Remove markup from a search snippet and unescape entities."""
    return html.unescape(_TAG_RE.sub("", text)).strip()


def _image_url(raw: Mapping[str, Any]) -> str | None:
    for key in ("thumbnail", "originalimage", "original"):
        image = raw.get(key)
        if isinstance(image, Mapping) and image.get("source"):
            return str(image["source"])
    return None


def _page_url(raw: Mapping[str, Any], title: str) -> str:
    content_urls = raw.get("content_urls")
    if isinstance(content_urls, Mapping):
        desktop = content_urls.get("desktop")
        if isinstance(desktop, Mapping) and desktop.get("page"):
            return str(desktop["page"])
    if raw.get("fullurl"):
        return str(raw["fullurl"])
    return article_url(title)


def _categories(raw: Mapping[str, Any]) -> tuple[str, ...]:
    cats = raw.get("categories")
    if not isinstance(cats, list):
        return ()
    labels: list[str] = []
    for cat in cats:
        if isinstance(cat, Mapping):
            cat = cat.get("title")
        if isinstance(cat, str) and cat:
            labels.append(cat[len(_CATEGORY_PREFIX):] if cat.startswith(_CATEGORY_PREFIX) else cat)
    return tuple(labels)


def _coordinates(raw: Mapping[str, Any]) -> Coordinates | None:
    coords = raw.get("coordinates")
    # REST summaries carry one object, the action API a list
    if isinstance(coords, list):
        coords = coords[0] if coords else None
    if not isinstance(coords, Mapping):
        return None
    try:
        return Coordinates(lat=float(coords["lat"]), lon=float(coords["lon"]))
    except (KeyError, TypeError, ValueError):
        return None


def normalize_article(raw: Any) -> Article | None:
    """Map any upstream article shape into an Article.

    Every optional field gets its default when absent. Entries without a
    usable page id or title are dropped (None).
    """
    if not isinstance(raw, Mapping):
        return None
    try:
        page_id = int(raw.get("pageid"))
    except (TypeError, ValueError):
        return None
    title = raw.get("title")
    if not isinstance(title, str) or not title:
        return None

    extract = raw.get("extract")
    if not isinstance(extract, str) or not extract.strip():
        snippet = raw.get("snippet")
        extract = strip_html(snippet) if isinstance(snippet, str) else ""
    description = raw.get("description")

    return Article(
        id=page_id,
        title=title,
        extract=extract.strip() or NO_SUMMARY,
        description=description if isinstance(description, str) and description else None,
        image_url=_image_url(raw),
        url=_page_url(raw, title),
        categories=_categories(raw),
        coordinates=_coordinates(raw),
    )


class ArticleSource(ABC):
    """Abstract source of feed articles."""

    @abstractmethod
    async def fetch_by_category(self, category: str, page: int, page_size: int) -> list[Article]:
        """Articles for a category; "all" means a random sample.

        Returns up to `page_size` articles offset by `(page - 1) * page_size`.
        Random sampling has no offset: every page is a fresh batch.
        """
        ...

    @abstractmethod
    async def search_by_text(self, query: str, page: int, page_size: int) -> list[Article]:
        """Articles matching a free-text query, paged like categories.

        A blank query yields an empty list.
        """
        ...

    async def get_article(self, page_id: int) -> Article | None:
        """Single article by page id. Sources without lookups return None."""
        return None


class WikipediaArticleSource(ArticleSource):
    """Article source backed by the Wikipedia search and REST APIs."""

    def __init__(
        self,
        client: WikipediaClient,
        settings: Settings | None = None,
        *,
        category_queries: Mapping[str, str] | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or Settings()
        self._category_queries = category_queries

    def _check_paging(self, page: int, page_size: int) -> tuple[int, int]:
        if page >= 1 and page_size >= 1:
            return page, page_size
        if self._settings.strict_preconditions:
            raise ValueError(f"page and page_size must be >= 1 (got {page}, {page_size})")
        logger.warning(f"Clamping invalid paging page={page} page_size={page_size}")
        return max(page, 1), max(page_size, 1)

    async def _ensure_access(self) -> None:
        if self._settings.probe_access and not await self._client.check_access():
            raise WikipediaUnavailableError("Wikipedia access probe failed")

    async def fetch_by_category(self, category: str, page: int = 1, page_size: int = 10) -> list[Article]:
        page, page_size = self._check_paging(page, page_size)
        try:
            await self._ensure_access()
            if category == ALL_CATEGORY:
                articles = await self._fetch_random(page_size)
            else:
                query = category_search_query(category, self._category_queries)
                logger.debug(f"Category {category!r} expands to {query!r}")
                articles = await self._search(query, page, page_size)
        except WikipediaError as e:
            logger.warning(f"Using sample articles for category {category!r}: {e}")
            return fallback_articles(limit=page_size)
        logger.debug(f"Category {category!r} page {page}: {len(articles)} articles")
        return articles

    async def search_by_text(self, query: str, page: int = 1, page_size: int = 10) -> list[Article]:
        page, page_size = self._check_paging(page, page_size)
        if not query.strip():
            return []
        try:
            await self._ensure_access()
            articles = await self._search(query.strip(), page, page_size)
        except WikipediaError as e:
            logger.warning(f"Using sample articles for search {query!r}: {e}")
            return fallback_articles(query, limit=page_size)
        logger.debug(f"Search {query!r} page {page}: {len(articles)} articles")
        return articles

    async def get_article(self, page_id: int) -> Article | None:
        """Details for a single page, or None if missing or unreachable."""
        try:
            details = await self._client.page_details([page_id])
        except WikipediaError as e:
            logger.warning(f"Could not fetch details for page {page_id}: {e}")
            return None
        return normalize_article(details.get(page_id))

    async def _fetch_random(self, count: int) -> list[Article]:
        """`count` independent random summaries; individual failures are dropped."""
        results = await asyncio.gather(
            *(self._client.random_summary() for _ in range(count)),
            return_exceptions=True,
        )
        summaries = [r for r in results if not isinstance(r, BaseException)]
        failures = len(results) - len(summaries)
        if count and not summaries:
            raise WikipediaUnavailableError(f"All {count} random article requests failed")
        if failures:
            logger.debug(f"{failures}/{count} random article requests failed")
        return [a for a in (normalize_article(s) for s in summaries) if a is not None]

    async def _search(self, query: str, page: int, page_size: int) -> list[Article]:
        hits = await self._client.search(query, limit=page_size, offset=(page - 1) * page_size)
        if not hits:
            return []

        details: dict[int, dict[str, Any]] = {}
        if self._settings.enrich_results:
            page_ids = [h["pageid"] for h in hits if isinstance(h, dict) and "pageid" in h]
            try:
                details = await self._client.page_details(page_ids)
            except WikipediaError as e:
                logger.debug(f"Details lookup failed, keeping snippets: {e}")

        articles: list[Article] = []
        for hit in hits:
            if not isinstance(hit, dict):
                continue
            merged = dict(hit)
            extra = details.get(hit.get("pageid"))  # type: ignore[arg-type]
            if extra:
                merged.update({k: v for k, v in extra.items() if v not in (None, "")})
            article = normalize_article(merged)
            if article is not None:
                articles.append(article)
        return articles
