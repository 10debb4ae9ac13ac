# downloader_bot/handlers/message_handlers.py

import datetime

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from ..config import MESSAGE_MAX_AGE_SECONDS, logger
from ..services.canonical import extract_url_from_text
from ..services.media_data import IndirectionDetails
from ..services.request_ledger import RequestLedger
from ..services.resolution import ResolutionPipeline
from ..ui.messages import (
    INVALID_MESSAGE_TEXT,
    SEARCHING_TEXT,
    format_choice_text,
    format_failure,
    indirection_found_text,
    indirection_searching_text,
)
from ..utils import get_site_name_from_url, safe_edit_message


def is_stale(message: Message, now: datetime.datetime | None = None) -> bool:
    """Messages queued while the bot was offline are not answered."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    sent_at = message.date
    if sent_at.tzinfo is None:
        sent_at = sent_at.replace(tzinfo=datetime.timezone.utc)
    return (now - sent_at).total_seconds() > MESSAGE_MAX_AGE_SECONDS


def build_format_keyboard(request_id: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("🎵 MP3 - Audio", callback_data=f"download_mp3_{request_id}"),
                InlineKeyboardButton("🎬 MP4 - Video", callback_data=f"download_mp4_{request_id}"),
            ]
        ]
    )


async def handle_link_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handles any plain text message. Text containing a link starts the
    resolution; anything else gets the 'invalid message' reply.
    """
    user = update.effective_user
    message = update.message
    chat = update.effective_chat
    if not user or not chat or not isinstance(message, Message) or not message.text:
        logger.warning("handle_link_message: Update received without a user or valid message text. Ignoring.")
        return

    if is_stale(message):
        logger.info(f"Ignoring message {message.message_id}: it was sent at {message.date.isoformat()}.")
        return

    text = message.text.strip()
    url = extract_url_from_text(text)
    if not url:
        await message.reply_text(INVALID_MESSAGE_TEXT)
        return

    logger.info(f"User {user.id} sent a link from {get_site_name_from_url(url)}: {url[:100]}")
    status_message = await message.reply_text(SEARCHING_TEXT, parse_mode=ParseMode.MARKDOWN_V2)

    async def report_progress(stage: str, details: IndirectionDetails) -> None:
        if stage == "searching":
            text = indirection_searching_text(
                details.metadata, details.directive.backend_display_name
            )
        else:
            text = indirection_found_text(details.metadata)
        await safe_edit_message(status_message, text, parse_mode=ParseMode.MARKDOWN_V2)

    resolver: ResolutionPipeline = context.bot_data["resolver"]
    result = await resolver.resolve(url, on_progress=report_progress)

    if not result["success"]:
        await safe_edit_message(
            status_message, format_failure(result), parse_mode=ParseMode.MARKDOWN_V2
        )
        return

    ledger: RequestLedger = context.bot_data["request_ledger"]
    request_id = ledger.create(
        chat.id,
        status_message.message_id,
        result["final_url"],
        result["adapter_id"],
        result["metadata"],
    )
    await safe_edit_message(
        status_message,
        format_choice_text(result["metadata"]),
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=build_format_keyboard(request_id),
    )
