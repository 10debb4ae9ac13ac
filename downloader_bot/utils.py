# downloader_bot/utils.py

import asyncio
from datetime import timedelta
import math
import os
import re
import secrets
import time
from typing import Any
from urllib.parse import urlparse

from telegram import Bot, Message
from telegram.error import BadRequest, NetworkError, RetryAfter, TimedOut

# Flood-control windows per (chat_id, message_id) for status edits.
_edit_suppression_until: dict[tuple[int, int], float] = {}

_ISO8601_DURATION = re.compile(
    r"P(?:(\d+)Y)?(?:(\d+)M)?(?:(\d+)D)?"
    r"(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?"
)
_UNSAFE_FILE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_\- ]")
FILE_NAME_MAX_LENGTH = 100
_RANDOM_ALPHABET = "abcdefghiklnoqrstuvyz123456789"


def random_string(length: int = 14) -> str:
    """Opaque identifier built from an alphabet without look-alike characters."""
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))


def get_site_name_from_url(url: str) -> str:
    """
    Extracts a short, readable site name from a URL.

    Examples:
        - "https://youtube.com/watch?v=x" -> "YOUTUBE"
        - "https://music.apple.com/..." -> "MUSIC"
        - "https://www.deezer.com/track/1" -> "DEEZER"
    """
    if not url:
        return "Unknown"
    netloc = urlparse(url).netloc.lower()
    if not netloc:
        return "Unknown"
    if netloc.startswith("www."):
        netloc = netloc[4:]
    return netloc.partition(".")[0].upper()


def format_bytes(size_bytes: int) -> str:
    """Converts bytes into a human-readable string (e.g., KB, MB, GB)."""
    if size_bytes <= 0:
        return "0B"
    size_name = ("B", "KB", "MB", "GB", "TB")
    i = min(int(math.floor(math.log(size_bytes, 1024))), len(size_name) - 1)
    s = round(size_bytes / math.pow(1024, i), 2)
    return f"{s} {size_name[i]}"


def format_duration(seconds: float | None) -> str | None:
    """Renders a duration as H:MM:SS or M:SS; None when unknown."""
    if seconds is None or seconds <= 0:
        return None
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_views(count: int | None) -> str | None:
    """Groups thousands with a space, e.g. 1234567 -> '1 234 567'."""
    if count is None:
        return None
    return f"{int(count):,}".replace(",", " ")


def format_upload_date(value: str | None) -> str | None:
    """yt-dlp reports YYYYMMDD; anything else is shown as-is."""
    if not value:
        return None
    if len(value) == 8 and value.isdigit():
        return f"{value[6:8]}/{value[4:6]}/{value[0:4]}"
    return value


def safe_file_name(
    title: str | None, author: str | None, fallback: str, extension: str
) -> str:
    """
    Builds the file name shown to the user from the media's title and author,
    or from `fallback` when neither is known. Characters outside
    [A-Za-z0-9_- ] become underscores and the stem is capped at 100 characters.
    """
    label = " - ".join(part for part in (title, author) if part)
    if not label:
        label = os.path.splitext(fallback)[0] or "downloaded_file"
    cleaned = _UNSAFE_FILE_NAME_CHARS.sub("_", label)[:FILE_NAME_MAX_LENGTH]
    return f"{cleaned}.{extension}" if extension else cleaned


def parse_iso8601_duration(value: str | None) -> float | None:
    """
    Parses an ISO-8601 duration such as "PT3M25S" into seconds.

    Only the hour, minute and second components contribute; tracks never
    span days.
    """
    if not value or not isinstance(value, str):
        return None
    match = _ISO8601_DURATION.search(value)
    if not match or not any(match.groups()):
        return None
    hours = int(match.group(4) or 0)
    minutes = int(match.group(5) or 0)
    seconds = float(match.group(6) or 0)
    return hours * 3600 + minutes * 60 + seconds


def _retry_after_seconds(exc: RetryAfter, default: float) -> float:
    ra = getattr(exc, "retry_after", None)
    if isinstance(ra, timedelta):
        return ra.total_seconds()
    try:
        return float(ra) if ra is not None else default
    except (TypeError, ValueError):
        return default


async def safe_edit_message(
    bot_or_message: Bot | Message,
    text: str,
    *,
    max_attempts: int = 3,
    base_delay: float = 0.6,
    max_retry_after: float = 10.0,
    **kwargs,
) -> None:
    """
    Safely edits a message, ignoring 'message is not modified' errors.
    This function can be called in two ways:
    1. safe_edit_message(message_object, "new text")
    2. safe_edit_message(bot_object, "new text", chat_id=123, message_id=456)
    When the message can no longer be edited, the text is sent as a new one.
    """
    key: tuple[int, int] | None = None
    if isinstance(bot_or_message, Message):
        key = (bot_or_message.chat_id, bot_or_message.message_id)
    elif kwargs.get("chat_id") is not None and kwargs.get("message_id") is not None:
        key = (int(kwargs["chat_id"]), int(kwargs["message_id"]))

    if key is not None and time.monotonic() < _edit_suppression_until.get(key, 0.0):
        return

    attempt = 0
    delay = base_delay
    last_exc: Exception | None = None

    while attempt < max_attempts:
        try:
            if isinstance(bot_or_message, Message):
                await bot_or_message.edit_text(text=text, **kwargs)
            else:
                await bot_or_message.edit_message_text(text=text, **kwargs)
            if key is not None:
                _edit_suppression_until.pop(key, None)
            return

        except BadRequest as e:
            msg = str(e).lower()
            if "message is not modified" in msg:
                return

            gone = (
                "message to edit not found" in msg
                or "message can't be edited" in msg
                or "message not found" in msg
            )
            if not gone:
                raise
            send_kwargs = dict(kwargs)
            send_kwargs.pop("message_id", None)
            if isinstance(bot_or_message, Message):
                await safe_send_message(
                    bot_or_message.get_bot(),
                    chat_id=bot_or_message.chat_id,
                    text=text,
                    **send_kwargs,
                )
                return
            if "chat_id" in send_kwargs:
                await safe_send_message(bot_or_message, text=text, **send_kwargs)
                return
            raise

        except RetryAfter as e:
            wait = _retry_after_seconds(e, delay)
            if wait > max_retry_after:
                if key is not None:
                    _edit_suppression_until[key] = time.monotonic() + wait
                return
            await asyncio.sleep(wait + 0.1)
            last_exc = e

        except (TimedOut, NetworkError) as e:
            await asyncio.sleep(delay)
            delay *= 2
            last_exc = e

        attempt += 1

    if last_exc is not None:
        raise last_exc


async def safe_send_message(
    bot_or_message: Bot | Message | Any,
    /,
    chat_id: int | None = None,
    text: str | None = None,
    *,
    max_attempts: int = 3,
    base_delay: float = 0.6,
    **kwargs: Any,
) -> Message:
    """
    Sends a message with retries on transient Telegram/network errors.
    Returns the sent Message on success, or raises the last exception.
    """
    if text is None:
        raise ValueError("safe_send_message requires 'text'.")

    if isinstance(bot_or_message, Message):
        bot: Bot = bot_or_message.get_bot()
        if chat_id is None:
            chat_id = bot_or_message.chat_id
    else:
        bot = bot_or_message

    if chat_id is None:
        raise ValueError("safe_send_message requires 'chat_id'.")

    attempt = 0
    delay = base_delay
    last_exc: Exception | None = None

    while attempt < max_attempts:
        try:
            return await bot.send_message(chat_id=chat_id, text=text, **kwargs)
        except RetryAfter as e:
            await asyncio.sleep(_retry_after_seconds(e, delay) + 0.1)
            last_exc = e
        except (TimedOut, NetworkError) as e:
            await asyncio.sleep(delay)
            delay *= 2
            last_exc = e
        attempt += 1

    assert last_exc is not None
    raise last_exc
