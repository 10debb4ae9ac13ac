# downloader_bot/handlers/command_handlers.py

import platform
import time

from telegram import Message, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes
from telegram.helpers import escape_markdown

from ..config import VERSION, logger
from ..ui.messages import INVALID_COMMAND_TEXT
from ..utils import format_duration
from .message_handlers import is_stale


def get_help_message_text() -> str:
    """Returns the formatted help message string."""
    return r"""*YourDownloader* 👨‍🍳

*1\.* Send any link here and we will check if we can download it\.
*2\.* Select the file format you need \(Video / Audio\)\.
*3\.* The file will be sent here when available\.
"""


def _usable_message(update: Update) -> Message | None:
    message = update.message
    if not isinstance(message, Message) or is_stale(message):
        return None
    return message


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Answers /start and /help with usage instructions."""
    message = _usable_message(update)
    if message is None:
        return
    await message.reply_text(get_help_message_text(), parse_mode=ParseMode.MARKDOWN_V2)


async def debug_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reports the bot version, interpreter version and uptime."""
    message = _usable_message(update)
    if message is None:
        return

    started_at = context.bot_data.get("started_at", time.monotonic())
    uptime = format_duration(time.monotonic() - started_at) or "0:00"
    text = (
        "*YourDownloader* 👨‍🍳📡\n\n"
        f"Bot Version: `{escape_markdown(VERSION, version=2, entity_type='code')}`\n"
        f"Python version: `{escape_markdown(platform.python_version(), version=2, entity_type='code')}`\n"
        f"Uptime: `{escape_markdown(uptime, version=2, entity_type='code')}`"
    )
    await message.reply_text(text, parse_mode=ParseMode.MARKDOWN_V2)


async def invalid_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = _usable_message(update)
    if message is None:
        return
    logger.info(f"Unknown command received: {(message.text or '')[:50]}")
    await message.reply_text(INVALID_COMMAND_TEXT)
