# downloader_bot/services/subproviders/base.py

from __future__ import annotations

import html as html_lib
import json
from abc import ABC, abstractmethod
from typing import Any

import httpx
from bs4 import BeautifulSoup

from ...config import ADAPTER_CACHE_TTL_SECONDS, HTTP_TIMEOUT_SECONDS, logger
from ..errors import NotFound, UpstreamError
from ..media_data import IndirectionDetails, Metadata, SearchDirective
from ..ttl_cache import TTLCache

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
MISSING_FIELDS_ERROR = "Unable to find title or artist name on the provided URL"


def build_queries(title: str, author: str) -> tuple[str, ...]:
    """Search queries in significance order, as sent to the search backend."""
    return (
        f"{title} - {author}".strip(),
        f"{author} - {title}".strip(),
        f"{author} {title}".strip(),
    )


def load_serialized_server_data(soup: BeautifulSoup) -> Any:
    """Returns the first object of the page's serialized-server-data script, if any."""
    script = soup.find("script", attrs={"id": "serialized-server-data"})
    if script is None or not script.string:
        return None
    try:
        data = json.loads(script.string)
    except json.JSONDecodeError as e:
        logger.debug(f"[SUBPROVIDER] serialized-server-data is not valid JSON: {e}")
        return None
    if isinstance(data, list):
        return data[0] if data else None
    return data


class IndirectionAdapter(ABC):
    """
    Abstract base class for subproviders: catalogs that can be described but
    not downloaded from. Each one proposes search queries to find a
    downloadable equivalent on a search backend.
    """

    adapter_id: str = ""
    hosts: tuple[str, ...] = ()
    search_backend_id = "youtube"
    search_backend_display_name = "YouTube"

    def __init__(self, cache: TTLCache | None = None) -> None:
        self._cache = cache or TTLCache(ttl=ADAPTER_CACHE_TTL_SECONDS, max_entries=500)

    async def get_metadata(
        self, url: str
    ) -> tuple[str | None, IndirectionDetails | None]:
        """
        Describes the resource behind `url`.

        Returns:
            (None, details) on success, or (error_message, None) when the page
            was reachable but the title or artist could not be read.

        Raises:
            NotFound: The page returned a not-found status.
            UpstreamError: Any other transport failure.
        """
        cached = self._cache.get(url)
        if cached is not TTLCache.MISS:
            return None, cached

        error, details = await self._fetch_details(url)
        if details is not None:
            self._cache.set(url, details)
        else:
            logger.warning(f"[{self.adapter_id.upper()}] Content extraction failed for {url}: {error}")
        return error, details

    @abstractmethod
    async def _fetch_details(
        self, url: str
    ) -> tuple[str | None, IndirectionDetails | None]:
        """Fetch and parse the upstream page; no caching."""

    def _build_details(
        self, title: str | None, author: str | None, duration: float | None = None
    ) -> tuple[str | None, IndirectionDetails | None]:
        title = html_lib.unescape(title or "").strip()
        author = html_lib.unescape(author or "").strip()
        if not title or not author:
            return MISSING_FIELDS_ERROR, None

        metadata = Metadata(
            title=title,
            author=author,
            duration_seconds=duration if duration else None,
        )
        directive = SearchDirective(
            backend_id=self.search_backend_id,
            backend_display_name=self.search_backend_display_name,
            queries=build_queries(title, author),
        )
        return None, IndirectionDetails(metadata=metadata, directive=directive)

    async def _fetch_page(self, url: str) -> str:
        """GETs a page, mapping HTTP failures onto the error taxonomy."""
        try:
            async with httpx.AsyncClient(
                timeout=HTTP_TIMEOUT_SECONDS, follow_redirects=True
            ) as client:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
        except httpx.HTTPError as e:
            raise UpstreamError(
                f"Failed to check if URL can be accessed: {url} ({e})"
            ) from e

        if response.status_code == 404:
            raise NotFound(
                "404: The URL was not found and the server returned a 404 status code"
            )
        if response.status_code >= 400:
            raise UpstreamError(
                f"Server returned status {response.status_code} for {url}"
            )
        if not response.text or not response.text.strip():
            raise UpstreamError("The webpage content is empty or invalid")
        return response.text
