from .base import SourceAdapter
from .ytdlp import YtDlpProvider, find_newest_file

__all__ = [
    "SourceAdapter",
    "YtDlpProvider",
    "find_newest_file",
]
