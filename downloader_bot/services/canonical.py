# downloader_bot/services/canonical.py

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

from .errors import InvalidUrl
from .sanitizer import validate_url

# Query parameters dropped per source family. Parameters starting with one of
# the tracking prefixes are dropped for every known family.
_YOUTUBE_PARAMS = {"list", "start_radio", "index", "pp", "si", "feature", "t", "ab_channel"}
_CATALOG_PARAMS = {"si", "fbclid", "gclid", "ref", "referral", "context"}
_TRACKING_PREFIXES = ("utm_",)

TRACKING_PARAMS: dict[str, set[str]] = {
    "youtube.com": _YOUTUBE_PARAMS,
    "music.youtube.com": _YOUTUBE_PARAMS,
    "open.spotify.com": _CATALOG_PARAMS,
    "deezer.com": _CATALOG_PARAMS,
    "tidal.com": _CATALOG_PARAMS,
    "music.apple.com": _CATALOG_PARAMS,
    "music.amazon.com": _CATALOG_PARAMS,
    "song.link": _CATALOG_PARAMS,
}

_URL_IN_TEXT = re.compile(r"\bhttps?://\S+", re.IGNORECASE)


def _split_query(query: str) -> list[tuple[str, str | None]]:
    """
    Splits a query into raw (key, value) pairs without percent-decoding, so
    an already canonical query (whose separators are encoded as %26) comes
    back unchanged.
    """
    pairs = []
    for chunk in query.split("&"):
        if chunk:
            key, sep, value = chunk.partition("=")
            pairs.append((key, value if sep else None))
    return pairs


def _join_query(pairs: list[tuple[str, str | None]]) -> str:
    return "&".join(key if value is None else f"{key}={value}" for key, value in pairs)


def normalize_host(host: str) -> str:
    """Lowercases a host and strips the 'www.' and mobile 'm.' prefixes."""
    host = host.lower()
    for prefix in ("www.", "m."):
        if host.startswith(prefix):
            host = host[len(prefix) :]
    return host


def host_of(url: str) -> str:
    return normalize_host(urlsplit(url).hostname or "")


def extract_url_from_text(text: str) -> str | None:
    """Returns the first http(s) URL found in free text, if any."""
    if not text:
        return None
    match = _URL_IN_TEXT.search(text.strip())
    return match.group(0) if match else None


def canonicalize_url(raw: object) -> str:
    """
    Turns untrusted input into a CanonicalUrl.

    The scheme is upgraded to https, short-link hosts are rewritten to their
    canonical form, tracking parameters are dropped for known families, and
    the result is rebuilt by `validate_url`.

    Raises:
        InvalidUrl: If the input is not a valid http(s) URL.
    """
    if not isinstance(raw, str):
        raise InvalidUrl("URL must be a string")
    # Validate first so that garbage never reaches the rewriting below.
    validate_url(raw)

    parts = urlsplit(raw.strip())
    original_host = (parts.hostname or "").lower()
    host = normalize_host(original_host)
    if host not in TRACKING_PARAMS and host != "youtu.be":
        # Unknown families keep their host exactly as given.
        host = original_host
    path = parts.path
    query_pairs = _split_query(parts.query)

    if host == "youtu.be":
        video_id = path.strip("/").split("/")[0]
        if not video_id:
            raise InvalidUrl("Short link does not contain a video id")
        host, path = "youtube.com", "/watch"
        query_pairs = [("v", video_id)] + [(k, v) for k, v in query_pairs if k != "v"]

    dropped = TRACKING_PARAMS.get(host)
    if dropped is not None:
        query_pairs = [
            (k, v)
            for k, v in query_pairs
            if k not in dropped and not k.startswith(_TRACKING_PREFIXES)
        ]

    netloc = f"{host}:{parts.port}" if parts.port else host
    rebuilt = urlunsplit(("https", netloc, path, _join_query(query_pairs), parts.fragment))
    return validate_url(rebuilt)
