# downloader_bot/services/resolution.py

from __future__ import annotations

from typing import Any, Awaitable, Callable

from ..config import logger
from .canonical import canonicalize_url, host_of
from .errors import (
    ContentExtractionFailed,
    DownloaderError,
    InvalidUrl,
    NoSearchMatch,
    UpstreamError,
    failure_result,
    unexpected_failure_result,
)
from .media_data import IndirectionDetails
from .registry import AdapterRegistry

ProgressCallback = Callable[[str, IndirectionDetails], Awaitable[None]]


class ResolutionPipeline:
    """
    Turns an untrusted URL into (final URL, provider, metadata).

    Catalog URLs are first described by their subprovider and replaced by the
    first search hit; the final URL is then described by its provider.
    """

    def __init__(self, registry: AdapterRegistry, *, max_search_results: int = 1) -> None:
        self.registry = registry
        self.max_search_results = max_search_results

    async def resolve(
        self, raw_url: Any, *, on_progress: ProgressCallback | None = None
    ) -> dict[str, Any]:
        """
        Resolves `raw_url`.

        `on_progress` is awaited with ("searching", details) before the search
        loop and ("found", details) once a match was picked.

        Returns:
            {"success": True, "final_url", "adapter_id", "metadata",
            "indirection"} or a failure result with a "kind".
        """
        try:
            return await self._resolve(raw_url, on_progress)
        except DownloaderError as e:
            logger.warning(f"[RESOLVE] {e.kind}: {e.message}")
            return failure_result(e)
        except Exception as e:
            logger.error(f"[RESOLVE] Unexpected error while resolving {raw_url!r}: {e}", exc_info=True)
            return unexpected_failure_result(e)

    async def _resolve(
        self, raw_url: Any, on_progress: ProgressCallback | None
    ) -> dict[str, Any]:
        url = canonicalize_url(raw_url)
        host = host_of(url)
        logger.info(f"[RESOLVE] Canonical URL: {url} (host: {host})")

        indirection: IndirectionDetails | None = None
        subprovider = self.registry.subprovider_for(host)
        if subprovider is not None:
            logger.info(f"[RESOLVE] Using subprovider {subprovider.adapter_id}")
            error, indirection = await subprovider.get_metadata(url)
            if indirection is None:
                raise ContentExtractionFailed(error or "Unable to read details from this page")

            if on_progress:
                await on_progress("searching", indirection)
            url = await self._search(indirection)
            # Search results are untrusted as well.
            url = canonicalize_url(url)
            host = host_of(url)
            if on_progress:
                await on_progress("found", indirection)

        provider = self.registry.provider_for(host)
        logger.info(f"[RESOLVE] Getting details for {url} using provider {provider.adapter_id}")
        metadata = await provider.get_metadata(url)

        return {
            "success": True,
            "final_url": url,
            "adapter_id": provider.adapter_id,
            "metadata": metadata,
            "indirection": indirection,
        }

    async def _search(self, details: IndirectionDetails) -> str:
        """Tries each query in order; the first hit wins."""
        directive = details.directive
        attempts: list[str] = []

        for query in directive.queries:
            backend = self.registry.search_backend(directive.backend_id)
            if backend is None:
                reason = (
                    f"Search platform with id {directive.backend_id} is not supported, skipping..."
                )
                logger.warning(f"[RESOLVE] {reason}")
                attempts.append(reason)
                continue

            logger.info(f"[RESOLVE] Searching on {directive.backend_id} with query: {query}")
            try:
                outcome = await backend.search(query, self.max_search_results)
            except (UpstreamError, InvalidUrl, ValueError) as e:
                reason = f'Failed to search "{query}" on {directive.backend_id}: {e}'
                logger.error(f"[RESOLVE] {reason}")
                attempts.append(reason)
                continue

            if outcome.found and outcome.url:
                logger.info(f'[RESOLVE] Found {outcome.url} for "{query}"')
                return outcome.url

            attempts.append(f'No results found for "{query}"')

        logger.error(f"[RESOLVE] No match after {len(attempts)} attempt(s).")
        raise NoSearchMatch(attempts)
