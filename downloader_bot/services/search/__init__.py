from .base import SearchBackend
from .youtube import YouTubeSearch

__all__ = ["SearchBackend", "YouTubeSearch"]
