# downloader_bot/services/subproviders/deezer.py

from __future__ import annotations

import re

from bs4 import BeautifulSoup

from ..media_data import IndirectionDetails
from .base import IndirectionAdapter

_DURATION_JSON = re.compile(r',"DURATION":"(\d+(?:\.\d+)?)"')


def _meta_content(soup: BeautifulSoup, name: str) -> str | None:
    tag = soup.find("meta", attrs={"name": name}) or soup.find(
        "meta", attrs={"property": name}
    )
    if tag is None:
        return None
    content = tag.get("content")
    return content.strip() if isinstance(content, str) and content.strip() else None


class DeezerAdapter(IndirectionAdapter):
    adapter_id = "deezer"
    hosts = ("deezer.com",)

    async def _fetch_details(
        self, url: str
    ) -> tuple[str | None, IndirectionDetails | None]:
        webpage = await self._fetch_page(url)
        return self.parse(webpage)

    def parse(self, webpage: str) -> tuple[str | None, IndirectionDetails | None]:
        soup = BeautifulSoup(webpage, "lxml")

        # <title>Author - Title | Deezer</title>
        title_author = title_name = None
        page_title = soup.title.get_text() if soup.title else ""
        if " - " in page_title:
            title_author, _, rest = page_title.partition(" - ")
            title_name = rest.split(" | Deezer")[0]

        title = (
            title_name
            or _meta_content(soup, "og:title")
            or _meta_content(soup, "twitter:title")
        )
        author = (
            _meta_content(soup, "twitter:audio:artist_name")
            or _meta_content(soup, "twitter:creator")
            or title_author
        )

        duration = None
        raw_duration = _meta_content(soup, "music:duration")
        if raw_duration is None:
            match = _DURATION_JSON.search(webpage)
            raw_duration = match.group(1) if match else None
        if raw_duration:
            try:
                duration = float(raw_duration)
            except ValueError:
                duration = None

        return self._build_details(title, author, duration)
