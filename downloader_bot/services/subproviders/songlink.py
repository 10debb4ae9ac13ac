# downloader_bot/services/subproviders/songlink.py

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from ..media_data import IndirectionDetails
from .base import IndirectionAdapter

_SECTION_TITLE = re.compile(r'"sections":\[\{"title":"(.*?)","')
_ARTIST_NAME = re.compile(r'","artistName":"(.*?)","')
_DURATION_MS = re.compile(r',"duration":(\d+(?:\.\d+)?)')


class SongLinkAdapter(IndirectionAdapter):
    """song.link pages embed their track data as JSON in a script tag."""

    adapter_id = "songlink"
    hosts = ("song.link",)

    async def _fetch_details(
        self, url: str
    ) -> tuple[str | None, IndirectionDetails | None]:
        webpage = await self._fetch_page(url)
        return self.parse(webpage)

    def parse(self, webpage: str) -> tuple[str | None, IndirectionDetails | None]:
        title = _first_group(_SECTION_TITLE, webpage)
        author = _first_group(_ARTIST_NAME, webpage)

        # <title>Song by Artist</title>
        if not title or not author:
            soup = BeautifulSoup(webpage, "lxml")
            page_title = soup.title.get_text() if soup.title else ""
            if " by " in page_title:
                fallback_title, _, fallback_author = page_title.partition(" by ")
                title = title or fallback_title
                author = author or fallback_author

        duration_ms = _first_group(_DURATION_MS, webpage)
        duration = float(duration_ms) / 1000 if duration_ms else None
        return self._build_details(title, author, duration)


def _first_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None
