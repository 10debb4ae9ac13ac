from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Metadata:
    """Descriptive information about a media resource.

    Attributes:
        title: Display title; always present.
        author: Uploader, channel or artist name.
        duration_seconds: Length of the media in seconds.
        view_count: Number of views reported by the source.
        creation_date: Upload or release date as reported by the source.
    """

    title: str
    author: Optional[str] = None
    duration_seconds: Optional[float] = None
    view_count: Optional[int] = None
    creation_date: Optional[str] = None


@dataclass(frozen=True)
class SearchDirective:
    """Where and how to look for a downloadable equivalent.

    `queries` is in significance order: the first entry is the best guess.
    """

    backend_id: str
    backend_display_name: str
    queries: tuple[str, ...]


@dataclass(frozen=True)
class IndirectionDetails:
    metadata: Metadata
    directive: SearchDirective


@dataclass(frozen=True)
class SearchOutcome:
    found: bool
    url: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class DownloadedFile:
    file_path: str
    file_name: str
