# downloader_bot/services/subproviders/applemusic.py

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from ..media_data import IndirectionDetails
from .base import IndirectionAdapter, load_serialized_server_data

_COMPOSITION_NAME = re.compile(r'"@type":"MusicComposition","name":"(.*?)","')
_ARTIST_GROUP = re.compile(r'"byArtist":\[\{"@type":"MusicGroup","name":"(.*?)","')
_TERTIARY_DURATION = re.compile(r'"tertiaryLinks":null,"duration":(\d+(?:\.\d+)?)')
_JSONLD_DURATION = re.compile(r',"duration":"?(\d+(?:\.\d+)?)')


class AppleMusicAdapter(IndirectionAdapter):
    """
    Apple Music song and album pages. Album URLs describe a whole record, so
    the duration is looked up in the track list by title when possible.
    """

    adapter_id = "applemusic"
    hosts = ("music.apple.com",)

    async def _fetch_details(
        self, url: str
    ) -> tuple[str | None, IndirectionDetails | None]:
        webpage = await self._fetch_page(url)
        return self.parse(webpage)

    def parse(self, webpage: str) -> tuple[str | None, IndirectionDetails | None]:
        soup = BeautifulSoup(webpage, "lxml")

        title = None
        meta = soup.find("meta", attrs={"name": "apple:title"})
        if meta is not None and isinstance(meta.get("content"), str):
            title = meta["content"]
        if not title:
            match = _COMPOSITION_NAME.search(webpage)
            title = match.group(1) if match else None

        match = _ARTIST_GROUP.search(webpage)
        author = match.group(1) if match else None

        compact = re.sub(r"\s", "", webpage)
        match = _TERTIARY_DURATION.search(compact) or _JSONLD_DURATION.search(webpage)
        duration = float(match.group(1)) / 1000 if match else None

        server_data = load_serialized_server_data(soup)
        if title and isinstance(server_data, dict):
            track_duration = _track_duration(server_data, title)
            if track_duration:
                duration = track_duration

        return self._build_details(title, author, duration)


def _track_duration(server_data: dict, title: str) -> float | None:
    sections = (server_data.get("data") or {}).get("sections") or []
    for section in sections:
        if not isinstance(section, dict) or "track-list" not in str(section.get("id", "")):
            continue
        for item in section.get("items") or []:
            if isinstance(item, dict) and item.get("title") == title:
                duration_ms = item.get("duration")
                if isinstance(duration_ms, (int, float)) and duration_ms > 0:
                    return duration_ms / 1000
    return None
