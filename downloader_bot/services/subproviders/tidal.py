# downloader_bot/services/subproviders/tidal.py

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from ...utils import parse_iso8601_duration
from ..media_data import IndirectionDetails
from .base import IndirectionAdapter, load_serialized_server_data

_RECORDING_NAME = re.compile(r'","name":"(.*?)","')
_INLINE_DURATION = re.compile(r",duration:(\d+(?:\.\d+)?),")


class TidalAdapter(IndirectionAdapter):
    adapter_id = "tidal"
    hosts = ("tidal.com", "listen.tidal.com")

    async def _fetch_details(
        self, url: str
    ) -> tuple[str | None, IndirectionDetails | None]:
        webpage = await self._fetch_page(url)
        return self.parse(webpage)

    def parse(self, webpage: str) -> tuple[str | None, IndirectionDetails | None]:
        soup = BeautifulSoup(webpage, "lxml")

        # og:title reads "Author - Title"
        og_author = og_title = None
        og_tag = soup.find("meta", attrs={"property": "og:title"})
        og_content = og_tag.get("content") if og_tag is not None else None
        if isinstance(og_content, str) and " - " in og_content:
            og_author, _, og_title = og_content.partition(" - ")

        match = _RECORDING_NAME.search(webpage)
        title = (match.group(1) if match else None) or og_title
        author = og_author

        duration = None
        match = _INLINE_DURATION.search(webpage)
        if match:
            duration = float(match.group(1))

        # The MusicRecording record is authoritative when present.
        recording = load_serialized_server_data(soup)
        if isinstance(recording, dict):
            title = recording.get("name") or title
            artists = recording.get("byArtist") or []
            if artists and isinstance(artists[0], dict):
                author = artists[0].get("name") or author
            duration = parse_iso8601_duration(recording.get("duration")) or duration

        return self._build_details(title, author, duration)
