# downloader_bot/services/sanitizer.py

"""
Validation for untrusted strings before they reach a subprocess argument
vector or a filesystem call.

Every external-tool invocation in this package builds its arguments only from
values returned by these functions.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import quote, urlsplit, urlunsplit

from .errors import InvalidUrl

SHELL_METACHARACTERS = ";&|`$(){}[]\\<>"
_METACHARACTER_PATTERN = re.compile(r"[;&|`$(){}\[\]\\<>]")
# Control characters except newline and tab, which `strip` handles at the edges.
_CONTROL_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_ALL_CONTROL_PATTERN = re.compile(r"[\x00-\x1f\x7f]")
_HOST_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.\-]*$")

# Characters kept literally when re-encoding a URL component. Everything else,
# including every shell metacharacter, is percent-encoded.
_PATH_SAFE = "/:@!*+,=-._~%'"
_QUERY_SAFE = "=/:@!*+,?-._~%'"

_DANGEROUS_PATTERNS = (
    _METACHARACTER_PATTERN,
    re.compile(r"\x00"),
    _CONTROL_PATTERN,
    re.compile(r"\.\./"),
    re.compile(r"\.\.\\"),
    re.compile(r"^-"),
)


def validate_url(raw: Any) -> str:
    """
    Validates an untrusted URL and rebuilds it from its parsed parts.

    The raw string is never passed through: scheme, host and port are
    re-serialized, while path, query and fragment are percent-encoded so that
    no shell- or path-control character can survive. This includes '&', so a
    query such as ``a=1&b=2`` comes back as ``a=1%26b=2``.

    Raises:
        InvalidUrl: On non-string input, parse failure or a scheme other than
            http/https.
    """
    if not isinstance(raw, str):
        raise InvalidUrl("URL must be a string")

    candidate = raw.strip()
    if not candidate:
        raise InvalidUrl("URL is empty")
    if _ALL_CONTROL_PATTERN.search(candidate):
        raise InvalidUrl("URL contains control characters")

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as e:
        raise InvalidUrl(f"Invalid URL: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        raise InvalidUrl("Only HTTP and HTTPS URLs are allowed")

    host = (parts.hostname or "").lower()
    if not host or not _HOST_PATTERN.match(host) or ".." in host:
        raise InvalidUrl(f"Invalid host in URL: {host or '(empty)'}")

    netloc = f"{host}:{port}" if port else host
    path = quote(parts.path, safe=_PATH_SAFE)
    query = quote(parts.query, safe=_QUERY_SAFE)
    fragment = quote(parts.fragment, safe=_QUERY_SAFE)

    return urlunsplit((scheme, netloc, path, query, fragment))


def validate_command_argument(raw: str) -> str:
    """
    Strips null bytes, shell metacharacters and control characters from a
    value that will be interpolated into a subprocess argument. Never raises
    for string input; an empty result is left for the caller to judge.
    """
    if not isinstance(raw, str):
        raise TypeError("Input must be a string")
    cleaned = raw.replace("\x00", "")
    cleaned = _METACHARACTER_PATTERN.sub("", cleaned)
    cleaned = _CONTROL_PATTERN.sub("", cleaned)
    return cleaned.strip()


def validate_output_directory(raw: str) -> str:
    """
    Sanitizes a directory path handed to an external tool.

    Raises:
        ValueError: If the result would be read as a flag, or a relative path
            escapes the current directory.
    """
    if not isinstance(raw, str):
        raise ValueError("Output directory must be a string")

    # Backslashes become '/' before metacharacters are stripped so that
    # Windows-style separators survive.
    cleaned = raw.replace("\x00", "").replace("\\", "/")
    cleaned = _METACHARACTER_PATTERN.sub("", cleaned)
    cleaned = _ALL_CONTROL_PATTERN.sub("", cleaned)
    cleaned = re.sub(r"/+", "/", cleaned).strip()

    if not cleaned:
        raise ValueError("Output directory is empty")
    if cleaned.startswith("-"):
        raise ValueError("Output directory path cannot start with a dash")

    is_absolute = cleaned.startswith("/") or bool(re.match(r"^[A-Za-z]:", cleaned))
    if not is_absolute and ".." in cleaned.split("/"):
        raise ValueError("Output directory cannot be outside the current directory")
    return cleaned


def is_safe_for_terminal(raw: Any) -> bool:
    """Returns True if the value contains none of the dangerous patterns."""
    if not isinstance(raw, str):
        return False
    return not any(pattern.search(raw) for pattern in _DANGEROUS_PATTERNS)
