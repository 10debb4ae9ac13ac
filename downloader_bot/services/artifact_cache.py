# downloader_bot/services/artifact_cache.py

from __future__ import annotations

import asyncio
import os
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterator

from ..config import DEFAULT_CACHE_TTL_HOURS, logger
from ..utils import random_string
from .ttl_cache import TTLCache

if TYPE_CHECKING:
    from .request_ledger import RequestLedger

CacheKey = tuple[str, str]
STAGING_PREFIX = "inflight-"


@dataclass(frozen=True)
class CacheEntry:
    file_path: str
    display_name_fallback: str


@dataclass(frozen=True)
class SweepReport:
    purged_entries: int
    deleted_files: int


class ArtifactCache:
    """
    Finished artifacts keyed by (format, canonical URL).

    The cache owns every file it references. `sweep()` enforces that an entry
    exists only while its file does, and removes files in the working
    directory that no live entry references.

    Files that are still being produced live in a staging directory handed
    out by `staging_dir()`. Sweeps leave reserved staging directories alone;
    `register()` moves the finished file into the working directory.
    """

    def __init__(
        self,
        work_dir: str,
        *,
        ttl: float = DEFAULT_CACHE_TTL_HOURS * 60 * 60,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.work_dir = work_dir
        self._entries = TTLCache(ttl=ttl, clock=clock)
        # Guards the working directory: sweeps, registrations and reservations.
        self._lock = threading.Lock()
        self._reserved: set[str] = set()

    @staticmethod
    def key(fmt: str, canonical_url: str) -> CacheKey:
        return (fmt, canonical_url)

    def get(self, key: CacheKey) -> CacheEntry | None:
        entry = self._entries.get(key)
        return None if entry is TTLCache.MISS else entry

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        previous = self.get(key)
        if previous is not None and previous.file_path != entry.file_path:
            # The overwritten file becomes unreferenced; the next sweep removes it.
            logger.info(f"[CACHE] Replacing entry for {key} ({previous.file_path})")
        self._entries.set(key, entry)

    def delete(self, key: CacheKey) -> bool:
        return self._entries.delete(key)

    def __len__(self) -> int:
        return len(self._entries)

    def is_reserved(self, name: str) -> bool:
        with self._lock:
            return name in self._reserved

    @contextmanager
    def staging_dir(self) -> Iterator[str]:
        """
        Yields a fresh directory under the working directory for one pipeline
        run. The directory is reserved against sweeps until the block exits,
        and is removed together with anything left inside it.
        """
        name = f"{STAGING_PREFIX}{random_string()}"
        path = os.path.join(self.work_dir, name)
        with self._lock:
            self._reserved.add(name)
        try:
            os.makedirs(path, exist_ok=True)
            yield path
        finally:
            try:
                _remove_tree(path)
            finally:
                with self._lock:
                    self._reserved.discard(name)

    def register(
        self, key: CacheKey, file_path: str, display_name_fallback: str
    ) -> CacheEntry:
        """Moves a finished file into the working directory and caches it."""
        target = os.path.join(self.work_dir, os.path.basename(file_path))
        with self._lock:
            if os.path.abspath(file_path) != os.path.abspath(target):
                os.replace(file_path, target)
            entry = CacheEntry(file_path=target, display_name_fallback=display_name_fallback)
            self.put(key, entry)
        logger.info(f"[CACHE] Registered {target} for {key}")
        return entry

    def sweep(self) -> SweepReport:
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> SweepReport:
        before = len(self._entries)
        live = self._entries.items()
        purged = before - len(live)

        referenced: set[str] = set()
        for key, entry in live:
            if os.path.exists(entry.file_path):
                referenced.add(os.path.abspath(entry.file_path))
            else:
                logger.info(f"[CACHE] File for {key} vanished, dropping the entry.")
                self._entries.delete(key)
                purged += 1

        logger.info(f"[CACHE] Purged {purged} entries, {len(referenced)} files still cached.")

        if not os.path.isdir(self.work_dir):
            logger.warning(f"[CACHE] Working directory '{self.work_dir}' does not exist, skipping cleanup.")
            return SweepReport(purged_entries=purged, deleted_files=0)

        deleted = 0
        for name in os.listdir(self.work_dir):
            path = os.path.join(self.work_dir, name)
            if name in self._reserved:
                continue
            if os.path.isdir(path):
                # A staging directory nobody holds was left behind by a crash.
                if name.startswith(STAGING_PREFIX):
                    _remove_tree(path)
                continue
            if not os.path.isfile(path) or os.path.abspath(path) in referenced:
                continue
            try:
                os.remove(path)
                deleted += 1
                logger.info(f"[CACHE] Deleted unreferenced file: {path}")
            except OSError as e:
                logger.warning(f"[CACHE] Could not delete {path}: {e}")

        logger.info(f"[CACHE] Cleaned up {deleted} files on disk that were not cached anymore.")
        return SweepReport(purged_entries=purged, deleted_files=deleted)


def _remove_tree(path: str) -> None:
    if not os.path.exists(path):
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning(f"[CACHE] Could not remove {path}: {e}")


async def run_periodic_sweep(
    cache: ArtifactCache, ledger: RequestLedger | None, interval: float
) -> None:
    """Background task: sweeps the cache and purges stale requests every `interval` seconds."""
    logger.info(f"[CACHE] Periodic sweep scheduled every {interval:.0f}s.")
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(cache.sweep)
            if ledger is not None:
                ledger.purge_expired()
        except Exception as e:
            # One bad sweep must not stop the schedule.
            logger.error(f"[CACHE] Sweep failed: {e}", exc_info=True)
