# downloader_bot/services/search/youtube.py

from __future__ import annotations

import asyncio
from typing import Any, Callable

import yt_dlp
from thefuzz import fuzz
from yt_dlp.utils import DownloadError

from ...config import ADAPTER_CACHE_TTL_SECONDS, logger
from ..errors import UpstreamError
from ..media_data import SearchOutcome
from ..ttl_cache import TTLCache
from .base import SearchBackend

# Extra candidates requested so filtering still leaves enough to rank.
SEARCH_HEADROOM = 5
NO_RESULTS_ERROR = "No results found for this query"
_EXCLUDED_LIVE_STATUSES = {"is_live", "is_upcoming", "post_live"}

YDL_OPTIONS: dict[str, Any] = {
    "extract_flat": "in_playlist",
    "skip_download": True,
    "noplaylist": True,
    "quiet": True,
    "no_warnings": True,
    "cachedir": False,
}


def _extract_with_ytdlp(expression: str) -> dict[str, Any]:
    with yt_dlp.YoutubeDL(YDL_OPTIONS) as ydl:
        return ydl.extract_info(expression, download=False) or {}


def is_downloadable_video(entry: Any) -> bool:
    """Drops channels, playlists, live streams and premieres."""
    if not isinstance(entry, dict) or not entry.get("id"):
        return False
    if entry.get("ie_key") not in (None, "Youtube"):
        return False
    if entry.get("live_status") in _EXCLUDED_LIVE_STATUSES or entry.get("is_live"):
        return False
    return True


def rank_entries(query: str, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Orders candidates by fuzzy title similarity; ties keep catalog order."""
    return sorted(
        entries,
        key=lambda entry: -fuzz.token_set_ratio(query, entry.get("title") or ""),
    )


class YouTubeSearch(SearchBackend):
    backend_id = "youtube"
    display_name = "YouTube"

    def __init__(
        self,
        *,
        cache: TTLCache | None = None,
        extractor: Callable[[str], dict[str, Any]] = _extract_with_ytdlp,
    ) -> None:
        self._cache = cache or TTLCache(ttl=ADAPTER_CACHE_TTL_SECONDS, max_entries=1000)
        self._extractor = extractor

    async def search(self, query: str, max_results: int = 1) -> SearchOutcome:
        if not query or not isinstance(query, str):
            raise ValueError("Invalid query provided")

        cache_key = (query, max_results)
        cached = self._cache.get(cache_key)
        if cached is not TTLCache.MISS:
            logger.debug(f"[SEARCH] Cache hit for '{query}'")
            return cached

        expression = f"ytsearch{max_results + SEARCH_HEADROOM}:{query}"
        try:
            # yt-dlp is blocking; keep it off the event loop.
            raw_result = await asyncio.to_thread(self._extractor, expression)
        except DownloadError as e:
            raise UpstreamError(f"Failed to search for the query: {query} ({e})") from e

        entries = [e for e in (raw_result.get("entries") or []) if is_downloadable_video(e)]
        ranked = rank_entries(query, entries)[:max_results]
        if not ranked:
            logger.info(f"[SEARCH] No results for '{query}'")
            return SearchOutcome(found=False, error=NO_RESULTS_ERROR)

        outcome = SearchOutcome(
            found=True, url=f"https://youtube.com/watch?v={ranked[0]['id']}"
        )
        logger.info(f"[SEARCH] '{query}' -> {outcome.url}")
        self._cache.set(cache_key, outcome)
        return outcome
