# downloader_bot/services/artifact_pipeline.py

from __future__ import annotations

import asyncio
import os
from typing import Any, Awaitable, Callable

from ..config import MAX_ARTIFACT_SIZE_BYTES, logger
from .artifact_cache import ArtifactCache, CacheEntry, CacheKey
from .converter import convert_file
from .errors import (
    DownloaderError,
    TooLarge,
    UpstreamError,
    failure_result,
    unexpected_failure_result,
)
from .registry import AdapterRegistry

Converter = Callable[[str, str], Awaitable[str]]


class ArtifactPipeline:
    """
    Produces the artifact for (format, final URL): cache lookup, download,
    optional conversion, size check and registration, strictly in that order.
    """

    def __init__(
        self,
        cache: ArtifactCache,
        registry: AdapterRegistry,
        *,
        single_flight: bool = False,
        max_size_bytes: int = MAX_ARTIFACT_SIZE_BYTES,
        converter: Converter = convert_file,
    ) -> None:
        self.cache = cache
        self.registry = registry
        self.single_flight = single_flight
        self.max_size_bytes = max_size_bytes
        self._convert = converter
        self._key_locks: dict[CacheKey, tuple[asyncio.Lock, int]] = {}

    async def fetch(self, fmt: str, final_url: str, adapter_id: str) -> dict[str, Any]:
        """
        Returns:
            {"success": True, "file_path", "display_name_fallback", "cached"}
            or a failure result with a "kind".
        """
        key = self.cache.key(fmt, final_url)
        try:
            if not self.single_flight:
                return await self._fetch(key, fmt, final_url, adapter_id)
            lock, users = self._key_locks.get(key, (asyncio.Lock(), 0))
            self._key_locks[key] = (lock, users + 1)
            try:
                async with lock:
                    return await self._fetch(key, fmt, final_url, adapter_id)
            finally:
                lock, users = self._key_locks[key]
                if users <= 1:
                    del self._key_locks[key]
                else:
                    self._key_locks[key] = (lock, users - 1)
        except DownloaderError as e:
            logger.error(f"[PIPELINE] {fmt} for {final_url} failed ({e.kind}): {e.message}")
            return failure_result(e)
        except Exception as e:
            logger.error(f"[PIPELINE] Unexpected error for {final_url}: {e}", exc_info=True)
            return unexpected_failure_result(e)

    def lookup(self, key: CacheKey) -> CacheEntry | None:
        """A cache hit whose file vanished is dropped and reported as a miss."""
        entry = self.cache.get(key)
        if entry is None:
            return None
        if not os.path.exists(entry.file_path):
            logger.warning(
                f"[PIPELINE] Cached file for {key} does not exist anymore, dropping the entry."
            )
            self.cache.delete(key)
            return None
        return entry

    async def _fetch(
        self, key: CacheKey, fmt: str, final_url: str, adapter_id: str
    ) -> dict[str, Any]:
        entry = self.lookup(key)
        if entry is not None:
            logger.info(f"[PIPELINE] {key} is already cached, skipping download.")
            return {
                "success": True,
                "file_path": entry.file_path,
                "display_name_fallback": entry.display_name_fallback,
                "cached": True,
            }

        provider = self.registry.provider_by_id(adapter_id)
        if provider is None:
            raise UpstreamError(f"The provider '{adapter_id}' is not available.")

        # Everything produced before registration stays in the staging
        # directory, which is removed with its contents on every exit path.
        with self.cache.staging_dir() as staging:
            downloaded = await provider.download(
                final_url, audio_only=fmt == "mp3", output_dir=staging
            )
            file_path = downloaded.file_path
            if not file_path.endswith(f".{fmt}"):
                logger.info(f"[PIPELINE] {file_path} is not {fmt}, converting.")
                file_path = await self._convert(file_path, fmt)

            size = os.path.getsize(file_path)
            logger.info(f"[PIPELINE] {file_path} is {size / (1024 * 1024):.2f} MB ({size} bytes)")
            if size > self.max_size_bytes:
                raise TooLarge(size, self.max_size_bytes)

            entry = self.cache.register(
                key,
                file_path,
                display_name_fallback=os.path.basename(file_path) or f"downloaded_file.{fmt}",
            )

        return {
            "success": True,
            "file_path": entry.file_path,
            "display_name_fallback": entry.display_name_fallback,
            "cached": False,
        }
