# downloader_bot/handlers/error_handler.py

import secrets
import time

from telegram import Update
from telegram.error import NetworkError, TimedOut
from telegram.ext import ContextTypes

from ..config import logger

NETWORK_WARNING_INTERVAL_SECONDS = 60
_last_network_warning = float("-inf")


def new_incident_code() -> str:
    return secrets.token_hex(3).upper()


async def global_error_handler(
    update: object, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """
    Catches all unhandled exceptions and logs them with their traceback.
    The user only sees a generic message with an incident code that can be
    matched against the log.
    """
    global _last_network_warning

    if not context.error:
        logger.warning("Error handler was called but context.error is None.")
        return

    # Polling hiccups are frequent and harmless; log them at most once a minute.
    if isinstance(context.error, (NetworkError, TimedOut)) and not isinstance(update, Update):
        now = time.monotonic()
        if now - _last_network_warning >= NETWORK_WARNING_INTERVAL_SECONDS:
            _last_network_warning = now
            logger.warning(f"Transient network error: {context.error}")
        return

    incident = new_incident_code()
    logger.error(f"[INCIDENT {incident}] An unhandled exception occurred:", exc_info=context.error)
    if isinstance(update, Update):
        logger.error(f"[INCIDENT {incident}] Update: {update.to_dict()}")

    if isinstance(update, Update) and update.effective_message:
        error_text = (
            "❌ An unexpected error occurred while processing your request. "
            f"Please try again later.\n\nIncident code: {incident}"
        )
        try:
            await update.effective_message.reply_text(text=error_text)
        except Exception as e:
            logger.error(f"Failed to send the user-facing error message: {e}")
