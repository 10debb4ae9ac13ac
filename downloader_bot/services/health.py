# downloader_bot/services/health.py

from __future__ import annotations

import datetime
import re

from ..config import logger
from .process_runner import run_tool

VERSION_CHECK_TIMEOUT_SECONDS = 15
_YTDLP_VERSION = re.compile(r"^(\d{4})\.(\d{2})\.(\d{2})")
_FFMPEG_VERSION = re.compile(r"ffmpeg version (\S+)")


class ToolCheckFailed(RuntimeError):
    """A required external tool is missing or reported an unexpected version."""


async def check_ytdlp(executable: str = "yt-dlp") -> str:
    output = await run_tool([executable, "--version"], timeout=VERSION_CHECK_TIMEOUT_SECONDS)
    if not output.ok:
        raise ToolCheckFailed(
            f"yt-dlp is not working (code {output.exit_code}): {output.diagnostic()}"
        )

    version = output.stdout.strip()
    match = _YTDLP_VERSION.match(version)
    if not match:
        raise ToolCheckFailed(f"Unable to parse the yt-dlp version: '{version}'")

    if int(match.group(1)) != datetime.date.today().year:
        logger.warning(
            f"[HEALTH] yt-dlp {version} looks outdated. Extractors break often; "
            "update it if downloads start failing."
        )
    logger.info(f"[HEALTH] yt-dlp version: {version}")
    return version


async def check_ffmpeg(executable: str = "ffmpeg") -> str:
    output = await run_tool([executable, "-version"], timeout=VERSION_CHECK_TIMEOUT_SECONDS)
    if not output.ok:
        raise ToolCheckFailed(
            f"ffmpeg is not working (code {output.exit_code}): {output.diagnostic()}"
        )

    match = _FFMPEG_VERSION.search(output.stdout)
    if not match:
        raise ToolCheckFailed("Unable to parse the ffmpeg version from its output")
    logger.info(f"[HEALTH] ffmpeg version: {match.group(1)}")
    return match.group(1)


async def check_external_tools() -> dict[str, str]:
    """Verifies yt-dlp and ffmpeg. Raises ToolCheckFailed on the first problem."""
    return {"yt-dlp": await check_ytdlp(), "ffmpeg": await check_ffmpeg()}
