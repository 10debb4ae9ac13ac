# downloader_bot/handlers/callback_handlers.py

import re

from telegram import Update
from telegram.constants import ChatAction, ParseMode
from telegram.error import BadRequest
from telegram.ext import ContextTypes

from ..config import logger
from ..services.artifact_pipeline import ArtifactPipeline
from ..services.request_ledger import PendingRequest, RequestLedger
from ..ui.messages import (
    DOWNLOAD_STARTED_TEXT,
    FINALIZING_TEXT,
    REQUEST_EXPIRED_TEXT,
    REQUEST_NOT_YOURS_TEXT,
    delivery_caption,
    format_failure,
)
from ..utils import safe_edit_message, safe_file_name

DOWNLOAD_ACTION = re.compile(r"^download_(mp3|mp4)_(.+)$")


async def button_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Routes callback queries from inline buttons."""
    query = update.callback_query
    if not query or not query.data:
        return

    match = DOWNLOAD_ACTION.match(query.data)
    if match:
        await handle_format_selection(update, context, match.group(1), match.group(2))
    else:
        logger.warning(f"Received an unhandled callback query action: {query.data}")
        await query.answer()


async def handle_format_selection(
    update: Update, context: ContextTypes.DEFAULT_TYPE, fmt: str, request_id: str
) -> None:
    """
    Runs the download pipeline for a pending request and delivers the file.
    The request is consumed on the first press, whatever the outcome.
    """
    query = update.callback_query
    chat = update.effective_chat
    if not query or not chat:
        return
    logger.info(
        f"User {query.from_user.id} asked for {fmt} on request {request_id}"
    )

    try:
        await query.edit_message_reply_markup(reply_markup=None)
    except BadRequest as e:
        logger.warning(f"Failed to remove the inline keyboard for request {request_id}: {e}")

    ledger: RequestLedger = context.bot_data["request_ledger"]
    request = ledger.consume(request_id)
    if request is None:
        await query.answer(REQUEST_EXPIRED_TEXT)
        return
    if request.chat_id != chat.id:
        logger.warning(f"Request {request_id} was pressed from chat {chat.id}, not {request.chat_id}.")
        await query.answer(REQUEST_NOT_YOURS_TEXT)
        return
    await query.answer()

    status = {"chat_id": request.chat_id, "message_id": request.origin_message_id}
    await safe_edit_message(
        context.bot, DOWNLOAD_STARTED_TEXT, parse_mode=ParseMode.MARKDOWN_V2, **status
    )

    pipeline: ArtifactPipeline = context.bot_data["artifact_pipeline"]
    result = await pipeline.fetch(fmt, request.canonical_url, request.adapter_id)
    if not result["success"]:
        await safe_edit_message(
            context.bot, format_failure(result), parse_mode=ParseMode.MARKDOWN_V2, **status
        )
        return

    if not result["cached"]:
        await safe_edit_message(
            context.bot, FINALIZING_TEXT, parse_mode=ParseMode.MARKDOWN_V2, **status
        )

    await send_artifact(context, request, fmt, result["file_path"], result["display_name_fallback"])

    try:
        await context.bot.delete_message(**status)
    except BadRequest as e:
        logger.warning(f"Failed to delete the status message for request {request_id}: {e}")
    logger.info(f"Request {request_id} completed, file sent to chat {request.chat_id}.")


async def send_artifact(
    context: ContextTypes.DEFAULT_TYPE,
    request: PendingRequest,
    fmt: str,
    file_path: str,
    fallback_name: str,
) -> None:
    """Sends the file as audio, video or document depending on its format."""
    metadata = request.metadata
    file_name = safe_file_name(metadata.title, metadata.author, fallback_name, fmt)
    caption = delivery_caption(metadata)
    logger.info(f"Sending {file_path} as '{file_name}'")

    with open(file_path, "rb") as f:
        if fmt == "mp3":
            await context.bot.send_chat_action(request.chat_id, ChatAction.UPLOAD_VOICE)
            await context.bot.send_audio(
                chat_id=request.chat_id,
                audio=f,
                filename=file_name,
                title=metadata.title or "Your downloaded file",
                performer=metadata.author,
                caption=caption,
                parse_mode=ParseMode.MARKDOWN_V2,
            )
        elif fmt == "mp4":
            await context.bot.send_chat_action(request.chat_id, ChatAction.UPLOAD_VIDEO)
            await context.bot.send_video(
                chat_id=request.chat_id,
                video=f,
                filename=file_name,
                caption=caption,
                parse_mode=ParseMode.MARKDOWN_V2,
                supports_streaming=True,
            )
        else:
            await context.bot.send_chat_action(request.chat_id, ChatAction.UPLOAD_DOCUMENT)
            await context.bot.send_document(
                chat_id=request.chat_id,
                document=f,
                filename=file_name,
                caption=caption,
                parse_mode=ParseMode.MARKDOWN_V2,
            )
