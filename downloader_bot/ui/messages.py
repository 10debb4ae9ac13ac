# downloader_bot/ui/messages.py

from __future__ import annotations

from typing import Any

from telegram.helpers import escape_markdown

from ..services.media_data import Metadata
from ..utils import format_bytes, format_duration, format_upload_date, format_views


def _escape(text: str) -> str:
    return escape_markdown(text, version=2)


def format_metadata_lines(metadata: Metadata) -> list[str]:
    """Title, author, duration, views and date lines; absent fields are skipped."""
    lines = [f"*Title:* {_escape(metadata.title)}"]
    if metadata.author:
        lines.append(f"*Author:* {_escape(metadata.author)}")
    duration = format_duration(metadata.duration_seconds)
    if duration:
        lines.append(f"*Duration:* {_escape(duration)}")
    views = format_views(metadata.view_count)
    if views:
        lines.append(f"*Views:* {_escape(views)}")
    date = format_upload_date(metadata.creation_date)
    if date:
        lines.append(f"*Published:* {_escape(date)}")
    return lines


def format_metadata_summary(prefix: str, metadata: Metadata, footer: str | None = None) -> str:
    """
    Builds a MarkdownV2-safe block describing a media item.

    `prefix` and `footer` must already be MarkdownV2 formatted.
    """
    parts = [prefix, "", *format_metadata_lines(metadata)]
    if footer:
        parts += ["", footer]
    return "\n".join(parts)


SEARCHING_TEXT = "🔍 *Searching details about this link*\n\nPlease wait, this may take a few seconds\\.\\.\\."
DOWNLOAD_STARTED_TEXT = "⏳ *We're starting to download your file, it may take a few minutes\\.*"
FINALIZING_TEXT = "⏳ *Finalizing your download\\.\\.\\.*"
REQUEST_EXPIRED_TEXT = "This request is no longer available. Please send a new link to the bot."
REQUEST_NOT_YOURS_TEXT = "❌ This request was not sent to you."
INVALID_MESSAGE_TEXT = "⚠️ Invalid message. Please use /start to get more details about this bot."
INVALID_COMMAND_TEXT = "⚠️ Invalid command. Please use /start to get more details about this bot."


def indirection_searching_text(metadata: Metadata, backend_name: str) -> str:
    return format_metadata_summary(
        f"🔍 *Searching on {_escape(backend_name)}\\.\\.\\.*",
        metadata,
        "_We can't directly download from this service, we will try to search it on another platform\\._",
    )


def indirection_found_text(metadata: Metadata) -> str:
    return format_metadata_summary(
        "🔍 *We found something, gathering data about it\\.\\.\\.*", metadata
    )


def format_choice_text(metadata: Metadata) -> str:
    return format_metadata_summary(
        "🔍 *Is that what you were looking for?*",
        metadata,
        "_Select the format you need to start the download, or send another link\\._",
    )


def delivery_caption(metadata: Metadata | None) -> str:
    if metadata is None:
        return "📥 *Here is your download\\!*"
    return format_metadata_summary("📥 *Here is your download\\!*", metadata)


def _code_block(text: str) -> str:
    return "```\n" + escape_markdown(text, version=2, entity_type="pre") + "\n```"


def format_failure(result: dict[str, Any]) -> str:
    """Maps a failure result from the core onto the text shown to the user."""
    kind = result.get("kind")
    error = str(result.get("error") or "Unknown error")

    if kind == "invalid_url":
        return (
            "⚠️ Invalid URL\\. To download something, you should send a valid link "
            "starting with `https://`\\."
        )
    if kind == "not_found":
        return (
            "🔴 It seems we couldn't access the page you entered\\. You may have typed it "
            "wrong, or it is in private mode / region locked\\."
        )
    if kind == "content_extraction_failed":
        return f"🔴 {_escape(error)}"
    if kind == "no_match":
        attempts = result.get("attempts") or []
        listing = "- " + "\n- ".join(attempts) if attempts else error
        return (
            "🔴 *We couldn't find any valid URL to download from\\.*\n\n"
            f"{_code_block(listing)}\n\nPlease try again with another link\\."
        )
    if kind == "download_failed":
        return (
            "🔴 *An error occurred while downloading the file\\.*\n\n"
            f"Please try again later\\. More details:\n\n{_code_block(error[:500])}"
        )
    if kind == "convert_failed":
        source = str(result.get("source_format") or "?").upper()
        target = str(result.get("target_format") or "?").upper()
        return (
            f"🔴 *An error occurred while converting the file from {_escape(source)} "
            f"to {_escape(target)}\\.*\n\n{_code_block(error[:500])}"
        )
    if kind == "too_large":
        size = format_bytes(int(result.get("size_bytes") or 0))
        limit = format_bytes(int(result.get("limit_bytes") or 0))
        return (
            f"🔴 *Your download exceeds the Telegram file size limit "
            f"\\({_escape(size)} / {_escape(limit)}\\)\\.*\n\nPlease try again with another link\\."
        )
    return "🔴 An error occurred while getting details for this link\\. Please try again later\\."
