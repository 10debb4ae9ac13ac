from .amazonmusic import AmazonMusicAdapter
from .applemusic import AppleMusicAdapter
from .base import IndirectionAdapter, build_queries
from .deezer import DeezerAdapter
from .songlink import SongLinkAdapter
from .tidal import TidalAdapter

ALL_SUBPROVIDERS: tuple[type[IndirectionAdapter], ...] = (
    SongLinkAdapter,
    DeezerAdapter,
    TidalAdapter,
    AppleMusicAdapter,
    AmazonMusicAdapter,
)

__all__ = [
    "ALL_SUBPROVIDERS",
    "AmazonMusicAdapter",
    "AppleMusicAdapter",
    "DeezerAdapter",
    "IndirectionAdapter",
    "SongLinkAdapter",
    "TidalAdapter",
    "build_queries",
]
