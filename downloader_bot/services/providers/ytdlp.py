# downloader_bot/services/providers/ytdlp.py

from __future__ import annotations

import json
import os
import re

import httpx

from ...config import (
    ADAPTER_CACHE_TTL_SECONDS,
    DEFAULT_MAX_FILE_SIZE_MB,
    DOWNLOAD_TIMEOUT_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    PROBE_TIMEOUT_SECONDS,
    logger,
)
from ...utils import random_string
from ..errors import DownloadFailed, NotFound, UpstreamError, excerpt
from ..media_data import DownloadedFile, Metadata
from ..process_runner import run_tool
from ..sanitizer import (
    validate_command_argument,
    validate_output_directory,
    validate_url,
)
from ..ttl_cache import TTLCache
from .base import SourceAdapter

MEDIA_EXTENSIONS = (".mp4", ".mp3", ".webm", ".m4a", ".mkv", ".opus", ".ogg")
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
_UNAVAILABLE_MARKERS = (
    "404 Not Found",
    "This video is unavailable",
    "<title> - YouTube</title>",
)


def _page_title(html: str) -> str | None:
    match = re.search(r"<title>(.*?)</title>", html, re.IGNORECASE | re.DOTALL)
    if not match:
        return None
    title = match.group(1).strip()
    return title or None


class YtDlpProvider(SourceAdapter):
    """
    The universal provider. yt-dlp understands most media sites, so it is
    used for every host without a dedicated adapter.
    """

    adapter_id = "ytdlp"
    hosts = ("youtube.com", "music.youtube.com")

    def __init__(
        self,
        *,
        max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB,
        executable: str = "yt-dlp",
        metadata_cache: TTLCache | None = None,
    ) -> None:
        self.max_file_size_mb = max_file_size_mb
        self.executable = executable
        self._metadata_cache = metadata_cache or TTLCache(
            ttl=ADAPTER_CACHE_TTL_SECONDS, max_entries=500
        )

    async def get_metadata(self, url: str) -> Metadata:
        cached = self._metadata_cache.get(url)
        if cached is not TTLCache.MISS:
            return cached

        # The sanitizer encodes every "&", so a query with several parameters
        # reaches the page check and yt-dlp as a single parameter. Known
        # families only need one (YouTube keeps just "v" after canonicalization).
        sanitized_url = validate_url(url)
        fallback_title = await self._check_page(sanitized_url)

        args = [
            self.executable,
            "--dump-json",
            "--no-download",
            "--no-playlist",
            sanitized_url,
        ]
        output = await run_tool(args, timeout=PROBE_TIMEOUT_SECONDS)
        if not output.ok:
            logger.error(
                f"[YTDLP] Metadata probe failed for {sanitized_url} "
                f"(code {output.exit_code}): {output.diagnostic()}"
            )
            if "Video unavailable" in output.stderr or "HTTP Error 404" in output.stderr:
                raise NotFound(f"404: The media could not be found: {sanitized_url}")
            raise UpstreamError(
                f"Failed to read metadata (code {output.exit_code}): {output.diagnostic()}"
            )

        try:
            # With --no-playlist there is one record, but be lenient about
            # extra lines some extractors print.
            info = json.loads(output.stdout.strip().splitlines()[0])
        except (json.JSONDecodeError, IndexError) as e:
            raise UpstreamError(f"Failed to parse metadata: {e}") from e

        metadata = Metadata(
            title=info.get("title") or fallback_title or "Unknown Title",
            author=info.get("uploader") or info.get("channel") or None,
            duration_seconds=info.get("duration"),
            view_count=info.get("view_count"),
            creation_date=info.get("upload_date"),
        )
        self._metadata_cache.set(url, metadata)
        return metadata

    async def _check_page(self, url: str) -> str | None:
        """
        Verifies that the page can be reached before spending a probe on it.
        Returns the page title, used when yt-dlp does not report one.
        """
        try:
            async with httpx.AsyncClient(
                timeout=HTTP_TIMEOUT_SECONDS, follow_redirects=True
            ) as client:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to check if URL can be accessed: {url} ({e})") from e

        if response.status_code == 404:
            raise NotFound(f"404: The URL was not found: {url}")
        if response.status_code >= 400:
            raise UpstreamError(
                f"Server returned status {response.status_code} for {url}"
            )

        html = response.text
        if not html or any(marker in html for marker in _UNAVAILABLE_MARKERS):
            raise NotFound(
                f"404: The URL is not accessible or the video could not be found: {url}"
            )
        return _page_title(html)

    def build_download_args(
        self,
        url: str,
        *,
        audio_only: bool,
        output_template: str,
        fmt: str = "best",
        quality: str = "best",
    ) -> list[str]:
        """Builds the yt-dlp argument vector from sanitized values only."""
        sanitized_format = validate_command_argument(fmt) or "best"
        sanitized_quality = validate_command_argument(quality) or "best"

        args = [self.executable]
        if audio_only or sanitized_format == "mp3":
            args += ["-x", "--audio-format", "mp3"]
        elif sanitized_format == "mp4":
            args += ["-f", "best[ext=mp4]/best"]
        else:
            args += ["-f", sanitized_format]

        if sanitized_quality != "best" and not audio_only:
            height = sanitized_quality.lower().rstrip("p")
            if height.isdigit():
                args += ["-f", f"best[height<={height}]"]

        if self.max_file_size_mb:
            args += ["--max-filesize", f"{int(self.max_file_size_mb)}m"]

        args += [
            "-o",
            output_template,
            "--no-playlist",
            "--embed-thumbnail",
            "--add-metadata",
            url,
        ]
        return args

    async def download(
        self, url: str, *, audio_only: bool, output_dir: str
    ) -> DownloadedFile:
        try:
            sanitized_url = validate_url(url)
            sanitized_dir = validate_output_directory(output_dir)
        except ValueError as e:
            raise DownloadFailed(f"Sanitization failed: {e}") from e

        os.makedirs(sanitized_dir, exist_ok=True)
        base_name = random_string()
        output_template = os.path.join(sanitized_dir, f"{base_name}.%(ext)s")
        args = self.build_download_args(
            sanitized_url,
            audio_only=audio_only,
            output_template=output_template,
            fmt="mp3" if audio_only else "mp4",
        )

        logger.info(f"[YTDLP] Starting download: {sanitized_url}")
        logger.info(f"[YTDLP] Will execute: {' '.join(args)}")
        output = await run_tool(args, timeout=DOWNLOAD_TIMEOUT_SECONDS)

        if not output.ok:
            self._remove_partial_files(sanitized_dir, base_name)
            logger.error(
                f"[YTDLP] Command failed with code {output.exit_code}: {output.diagnostic()}"
            )
            raise DownloadFailed(
                f"Failed to download (code {output.exit_code}): {output.diagnostic()}",
                exit_code=output.exit_code,
                stderr_excerpt=excerpt(output.stderr),
            )

        file_path = find_newest_file(sanitized_dir, base_name)
        if not file_path:
            self._remove_partial_files(sanitized_dir, base_name)
            raise DownloadFailed(
                "Unable to find the downloaded file",
                exit_code=output.exit_code,
                stderr_excerpt=excerpt(output.stderr),
            )

        logger.info(f"[YTDLP] Finished downloading: {file_path}")
        return DownloadedFile(file_path=file_path, file_name=os.path.basename(file_path))

    @staticmethod
    def _remove_partial_files(directory: str, base_name: str) -> None:
        if not os.path.isdir(directory):
            return
        for name in os.listdir(directory):
            if name.startswith(base_name):
                path = os.path.join(directory, name)
                try:
                    os.remove(path)
                    logger.info(f"[YTDLP] Removed partial file: {path}")
                except OSError as e:
                    logger.warning(f"[YTDLP] Could not remove partial file {path}: {e}")


def find_newest_file(directory: str, base_name: str) -> str | None:
    """
    Locates the newest media file produced for `base_name`. yt-dlp's own
    naming is not trusted, so the directory is scanned instead.
    """
    candidates = []
    for name in os.listdir(directory):
        if not name.startswith(base_name) or not name.lower().endswith(MEDIA_EXTENSIONS):
            continue
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            candidates.append((os.path.getmtime(path), path))
    if not candidates:
        return None
    return max(candidates)[1]
