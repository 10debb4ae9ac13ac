# downloader_bot/__main__.py

import asyncio
import re
import sys

# Ensure PTB env flags are set before importing python-telegram-bot
from downloader_bot import _ptb_env  # noqa: F401
from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    MessageHandler,
    filters,
)

from downloader_bot.config import VERSION, get_configuration, logger
from downloader_bot.handlers.callback_handlers import button_handler
from downloader_bot.handlers.command_handlers import (
    debug_command,
    help_command,
    invalid_command,
)
from downloader_bot.handlers.error_handler import global_error_handler
from downloader_bot.handlers.message_handlers import handle_link_message
from downloader_bot.services.health import ToolCheckFailed, check_external_tools
from downloader_bot.state import build_services, post_init, post_shutdown


def register_handlers(application: Application) -> None:
    """
    Registers all the command, message, and callback handlers for the bot.
    Order matters: known commands first, then any other command, then text.
    """
    application.add_handler(
        MessageHandler(
            filters.Regex(re.compile(r"^/(start|help)(@\w+)?$", re.IGNORECASE)),
            help_command,
        )
    )
    application.add_handler(
        MessageHandler(
            filters.Regex(re.compile(r"^/debug(@\w+)?$", re.IGNORECASE)),
            debug_command,
        )
    )
    application.add_handler(MessageHandler(filters.COMMAND, invalid_command))

    application.add_handler(CallbackQueryHandler(button_handler, pattern=r"^download_"))

    application.add_handler(
        MessageHandler(filters.TEXT & ~filters.COMMAND, handle_link_message)
    )

    application.add_error_handler(global_error_handler)

    logger.info("All handlers have been registered.")


def main() -> None:
    """
    Main function to initialize and run the Telegram bot.
    """
    logger.info(f"Starting YourDownloader {VERSION}...")

    config = get_configuration()

    try:
        asyncio.run(check_external_tools())
    except ToolCheckFailed as e:
        logger.critical(f"[HEALTH] {e}")
        sys.exit(1)

    try:
        services = build_services(config)
    except ValueError as e:
        logger.critical(f"[REGISTRY] Invalid adapter configuration: {e}")
        sys.exit(1)

    builder = (
        ApplicationBuilder()
        .token(config.token)
        .concurrent_updates(True)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
    )
    if config.api_root:
        # A local Bot API server lifts the upload limit to 2 GB.
        api_root = config.api_root.rstrip("/")
        builder = builder.base_url(f"{api_root}/bot").base_file_url(f"{api_root}/file/bot").local_mode(True)
        logger.info(f"Telegram API root: {api_root}")

    application = builder.build()
    application.bot_data.update(services)
    application.bot_data.setdefault("is_shutting_down", False)

    register_handlers(application)

    logger.info("Bot startup complete. Starting polling...")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
