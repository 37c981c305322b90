"""Provider-agnostic content types for feed articles and queries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

WIKI_PAGE_BASE_URL = "https://en.wikipedia.org/wiki/"
NO_SUMMARY = "No summary available."


def article_url(title: str) -> str:
    """Canonical desktop URL for an article title."""
    return WIKI_PAGE_BASE_URL + quote(title.replace(" ", "_"), safe="_()',")


@dataclass(frozen=True)
class Coordinates:
    """A single lat/lon pair."""

    lat: float
    lon: float


@dataclass(frozen=True)
class Article:
    """A Wikipedia article as shown on a feed card."""

    id: int
    title: str
    extract: str = NO_SUMMARY
    description: str | None = None
    image_url: str | None = None
    url: str = ""
    categories: tuple[str, ...] = ()
    coordinates: Coordinates | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "extract": self.extract,
            "description": self.description,
            "image_url": self.image_url,
            "url": self.url or article_url(self.title),
            "categories": list(self.categories),
            "coordinates": (
                {"lat": self.coordinates.lat, "lon": self.coordinates.lon}
                if self.coordinates
                else None
            ),
        }


@dataclass(frozen=True)
class FeedQuery:
    """The active retrieval intent: a category or a free-text search, never both."""

    category: str | None = None
    search_text: str | None = None

    def __post_init__(self) -> None:
        if (self.category is None) == (self.search_text is None):
            raise ValueError("FeedQuery needs exactly one of category or search_text")

    @classmethod
    def for_category(cls, category: str) -> FeedQuery:
        return cls(category=category)

    @classmethod
    def for_search(cls, text: str) -> FeedQuery:
        return cls(search_text=text)

    @property
    def is_search(self) -> bool:
        """True for a non-blank search; blank text counts as no query."""
        return self.search_text is not None and bool(self.search_text.strip())

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category, "search_text": self.search_text}
