# downloader_bot/services/errors.py

from __future__ import annotations

from typing import Any

EXCERPT_LIMIT = 500


def excerpt(text: str | bytes | None, limit: int = EXCERPT_LIMIT) -> str:
    """Returns the tail of a tool's diagnostic output, bounded to `limit` characters."""
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    text = text.strip()
    if len(text) <= limit:
        return text
    # The end of stderr is where tools print the actual failure.
    return "..." + text[-limit:]


class DownloaderError(Exception):
    """Base class for every expected failure of the core pipeline."""

    kind = "upstream_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """Extra diagnostic fields added to the caller-facing result."""
        return {}


class InvalidUrl(DownloaderError, ValueError):
    kind = "invalid_url"


class NotFound(DownloaderError):
    """The remote resource is confirmed absent, private or region locked."""

    kind = "not_found"


class UpstreamError(DownloaderError):
    kind = "upstream_error"


class ContentExtractionFailed(DownloaderError):
    """The page was reachable but the expected fields could not be read."""

    kind = "content_extraction_failed"


class NoSearchMatch(DownloaderError):
    kind = "no_match"

    def __init__(self, attempts: list[str]) -> None:
        super().__init__(
            "No downloadable match was found:\n- " + "\n- ".join(attempts)
            if attempts
            else "No downloadable match was found."
        )
        self.attempts = list(attempts)

    def details(self) -> dict[str, Any]:
        return {"attempts": list(self.attempts)}


class DownloadFailed(DownloaderError):
    kind = "download_failed"

    def __init__(
        self, message: str, exit_code: int | None = None, stderr_excerpt: str = ""
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr_excerpt = stderr_excerpt

    def details(self) -> dict[str, Any]:
        return {"exit_code": self.exit_code, "stderr": self.stderr_excerpt}


class ConvertFailed(DownloaderError):
    kind = "convert_failed"

    def __init__(
        self,
        source_format: str,
        target_format: str,
        exit_code: int | None = None,
        stderr_excerpt: str = "",
    ) -> None:
        super().__init__(
            f"Conversion from {source_format.upper()} to {target_format.upper()} "
            f"failed (exit code {exit_code}): {stderr_excerpt}"
        )
        self.source_format = source_format
        self.target_format = target_format
        self.exit_code = exit_code
        self.stderr_excerpt = stderr_excerpt

    def details(self) -> dict[str, Any]:
        return {
            "source_format": self.source_format,
            "target_format": self.target_format,
            "exit_code": self.exit_code,
            "stderr": self.stderr_excerpt,
        }


class TooLarge(DownloaderError):
    kind = "too_large"

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(
            f"The file is {size_bytes} bytes, which exceeds the {limit_bytes} byte limit."
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes

    def details(self) -> dict[str, Any]:
        return {"size_bytes": self.size_bytes, "limit_bytes": self.limit_bytes}


def failure_result(exc: DownloaderError) -> dict[str, Any]:
    """Converts an expected failure into the caller-facing result shape."""
    return {"success": False, "error": exc.message, "kind": exc.kind, **exc.details()}


def unexpected_failure_result(exc: BaseException) -> dict[str, Any]:
    return {
        "success": False,
        "error": f"Unexpected error: {exc}",
        "kind": UpstreamError.kind,
    }
