"""Wikipedia action API and REST API client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from wikiscroll.core.settings import Settings

logger = logging.getLogger(__name__)

# Thumbnail width requested from the pageimages prop
THUMBNAIL_SIZE = 200


class WikipediaError(Exception):
    """Base exception for Wikipedia API errors."""


class WikipediaUnavailableError(WikipediaError):
    """Upstream unreachable, timed out or answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WikipediaResponseError(WikipediaError):
    """Upstream answered but the payload could not be understood."""


class WikipediaClient:
    """Async client for the endpoints the feed needs.

    Returns raw upstream dicts; shaping them into articles happens in
    the article source.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.request_timeout),
                follow_redirects=True,
                limits=httpx.Limits(max_connections=20),
                headers={
                    "User-Agent": self._settings.user_agent,
                    "Accept": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "WikipediaClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a URL and decode its JSON body, mapping failures to WikipediaError."""
        client = await self._get_client()
        try:
            resp = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise WikipediaUnavailableError(
                f"Request timed out after {self._settings.request_timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise WikipediaUnavailableError(f"Connection error: {e}") from e

        if resp.status_code >= 400:
            raise WikipediaUnavailableError(
                f"Wikipedia returned HTTP {resp.status_code} for {url}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise WikipediaResponseError(f"Invalid JSON from {url}") from e

    async def _action(self, params: dict[str, Any]) -> dict[str, Any]:
        """Call the action API and check the envelope."""
        data = await self._get_json(
            self._settings.wikipedia_api_url,
            {"action": "query", "format": "json", **params},
        )
        if not isinstance(data, dict):
            raise WikipediaResponseError("Action API response is not an object")
        if "error" in data:
            info = data["error"].get("info") if isinstance(data["error"], dict) else data["error"]
            raise WikipediaResponseError(f"Action API error: {info}")
        if "query" in data and not isinstance(data["query"], dict):
            raise WikipediaResponseError("Action API query result is not an object")
        return data

    async def check_access(self) -> bool:
        """Probe the search endpoint with a one-result query."""
        try:
            await self._action({"list": "search", "srsearch": "test", "srlimit": 1})
        except WikipediaError as e:
            logger.debug(f"Wikipedia access probe failed: {e}")
            return False
        return True

    async def search(self, query: str, *, limit: int, offset: int = 0) -> list[dict[str, Any]]:
        """Full-text search returning raw hits (pageid, title, snippet).

        Raises:
            WikipediaUnavailableError: transport or HTTP failure
            WikipediaResponseError: payload without a search list
        """
        logger.debug(f"Search {query!r} limit={limit} offset={offset}")
        data = await self._action(
            {
                "list": "search",
                "srsearch": query,
                "srlimit": limit,
                "sroffset": offset,
                "srprop": "snippet",
            }
        )
        # A valid empty result still carries query.search = []
        if "query" not in data:
            raise WikipediaResponseError("Search response has no query result")
        hits = data["query"].get("search")
        if not isinstance(hits, list):
            raise WikipediaResponseError("Search response has no result list")
        return hits

    async def page_details(self, page_ids: list[int]) -> dict[int, dict[str, Any]]:
        """Fetch intro extract, thumbnail, description and coordinates for pages.

        Returns:
            Dict mapping page id to the raw page entry (missing pages omitted)
        """
        if not page_ids:
            return {}
        data = await self._action(
            {
                "pageids": "|".join(str(pid) for pid in page_ids),
                "prop": "extracts|pageimages|description|coordinates|info",
                "inprop": "url",
                "exintro": "true",
                "explaintext": "true",
                "exlimit": "max",
                "pithumbsize": THUMBNAIL_SIZE,
            }
        )
        pages = data.get("query", {}).get("pages", {})
        if not isinstance(pages, dict):
            raise WikipediaResponseError("Details response pages is not an object")

        details: dict[int, dict[str, Any]] = {}
        for key, page in pages.items():
            if not isinstance(page, dict) or "missing" in page:
                continue
            try:
                details[int(page.get("pageid", key))] = page
            except (TypeError, ValueError):
                continue
        return details

    async def random_summary(self) -> dict[str, Any]:
        """One random article summary from the REST API."""
        data = await self._get_json(f"{self._settings.wikipedia_rest_url}/page/random/summary")
        if not isinstance(data, dict):
            raise WikipediaResponseError("Random summary is not an object")
        return data
