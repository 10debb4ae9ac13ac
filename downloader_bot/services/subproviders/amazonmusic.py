# downloader_bot/services/subproviders/amazonmusic.py

from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlsplit

import httpx

from ...config import HTTP_TIMEOUT_SECONDS, logger
from ..errors import NotFound, UpstreamError
from ..media_data import IndirectionDetails
from ..ttl_cache import TTLCache
from .base import USER_AGENT, IndirectionAdapter

CONFIG_URL = "https://music.amazon.com/config.json"
TRACK_ENDPOINT = (
    "https://eu.mesk.skill.music.a2z.com/api/cosmicTrack/displayCatalogTrack"
)
DEVICE_ID_TTL_SECONDS = 12 * 60 * 60
NOTIFICATION_INTERFACE = (
    "Web.TemplatesInterface.v1_0.Touch.ChromeTemplateInterface.ShowNotificationMethod"
)
INVALID_URL_ERROR = (
    "Invalid Amazon Music URL. It should look like: https://music.amazon.com/tracks/ID"
)


def extract_track_id(url: str) -> str | None:
    """Returns the ID from /tracks/<id> (or /track/<id>) paths."""
    parts = [p for p in urlsplit(url).path.split("/") if p]
    if len(parts) >= 2 and parts[0] in ("tracks", "track"):
        return parts[1].strip() or None
    return None


class AmazonMusicAdapter(IndirectionAdapter):
    """
    Amazon Music renders client-side, so the catalog API used by the web
    player is queried instead of scraping the page.
    """

    adapter_id = "amazonmusic"
    hosts = ("music.amazon.com",)

    def __init__(self, cache: TTLCache | None = None) -> None:
        super().__init__(cache)
        self._device_cache = TTLCache(ttl=DEVICE_ID_TTL_SECONDS, max_entries=1)

    async def _fetch_details(
        self, url: str
    ) -> tuple[str | None, IndirectionDetails | None]:
        track_id = extract_track_id(url)
        if not track_id:
            return INVALID_URL_ERROR, None

        device_id = await self._get_device_id()
        payload = self.build_track_request(track_id, device_id)
        response = await self._post_json(TRACK_ENDPOINT, payload)
        return self.parse(response)

    def build_track_request(self, track_id: str, device_id: str) -> dict[str, str]:
        # The endpoint expects the headers object serialized as a string.
        headers = {
            "x-amzn-authentication": json.dumps(
                {
                    "interface": "ClientAuthenticationInterface.v1_0.ClientTokenElement",
                    "accessToken": "",
                }
            ),
            "x-amzn-device-width": "1920",
            "x-amzn-device-family": "WebPlayer",
            "x-amzn-device-id": device_id,
            "x-amzn-device-height": "1080",
            "x-amzn-page-url": f"https://music.amazon.com/tracks/{track_id}",
        }
        return {"id": track_id, "headers": json.dumps(headers)}

    def parse(
        self, response: dict[str, Any]
    ) -> tuple[str | None, IndirectionDetails | None]:
        methods = response.get("methods") or []

        for method in methods:
            if isinstance(method, dict) and method.get("interface") == NOTIFICATION_INTERFACE:
                text = (
                    ((method.get("notification") or {}).get("message") or {}).get("text")
                )
                return (
                    text
                    or "Amazon Music returned an unknown error when getting the track details"
                ), None

        template: dict[str, Any] = {}
        if methods and isinstance(methods[0], dict):
            template = methods[0].get("template") or {}

        title = ((template.get("headerText") or {}).get("text") or "").replace(
            " [Explicit]", ""
        ) or template.get("headerImageAltText")

        author = template.get("headerPrimaryText")
        if not author:
            try:
                options = template["contextMenu"]["options"]
                author = options[0]["onItemSelected"][2]["template"]["headerText"]["text"]
            except (KeyError, IndexError, TypeError):
                author = None

        return self._build_details(title, author)

    async def _get_device_id(self) -> str:
        cached = self._device_cache.get("deviceId")
        if cached is not TTLCache.MISS:
            return cached

        config = await self._get_json(CONFIG_URL)
        device_id = config.get("deviceId") if isinstance(config, dict) else None
        if not device_id:
            raise UpstreamError("Failed to retrieve device ID from Amazon Music config.json")
        self._device_cache.set("deviceId", device_id)
        logger.info("[AMAZONMUSIC] Refreshed web player device ID.")
        return device_id

    async def _get_json(self, url: str) -> Any:
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                response = await client.get(url, headers={"User-Agent": USER_AGENT})
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch Amazon Music config.json: {e}") from e
        if response.status_code >= 400:
            raise UpstreamError(
                f"{response.status_code}: Cannot get Amazon Music config.json file"
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Amazon Music config.json is not valid JSON: {e}") from e

    async def _post_json(self, url: str, payload: dict[str, str]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    url, json=payload, headers={"User-Agent": USER_AGENT}
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to check if URL can be accessed: {url} ({e})") from e

        if response.status_code == 404:
            raise NotFound("404: The track was not found on Amazon Music")
        if response.status_code >= 400:
            raise UpstreamError(
                f"{response.status_code}: Cannot get track details from Amazon Music"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Amazon Music returned invalid JSON: {e}") from e
        return data if isinstance(data, dict) else {}
