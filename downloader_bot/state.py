# downloader_bot/state.py

import asyncio
import time
from typing import Any

from telegram.ext import Application

from .config import BotConfig, logger
from .services.artifact_cache import ArtifactCache, run_periodic_sweep
from .services.artifact_pipeline import ArtifactPipeline
from .services.providers import YtDlpProvider
from .services.registry import AdapterRegistry
from .services.request_ledger import RequestLedger
from .services.resolution import ResolutionPipeline
from .services.search import YouTubeSearch
from .services.subproviders import ALL_SUBPROVIDERS


def build_services(config: BotConfig) -> dict[str, Any]:
    """
    Creates the long-lived components shared by every handler. The returned
    mapping is merged into `application.bot_data`.

    Raises:
        ValueError: The adapter registry is inconsistent.
    """
    registry = AdapterRegistry(
        universal=YtDlpProvider(max_file_size_mb=config.max_file_size_mb),
        subproviders=[subprovider() for subprovider in ALL_SUBPROVIDERS],
        search_backends=[YouTubeSearch()],
    )
    cache = ArtifactCache(config.work_dir, ttl=config.cache_ttl_seconds)
    return {
        "CONFIG": config,
        "registry": registry,
        "resolver": ResolutionPipeline(registry),
        "artifact_cache": cache,
        "artifact_pipeline": ArtifactPipeline(
            cache,
            registry,
            single_flight=config.single_flight,
        ),
        "request_ledger": RequestLedger(max_age=config.request_max_age_seconds),
        "started_at": time.monotonic(),
    }


async def post_init(application: Application) -> None:
    """
    Starts the periodic cache sweep once the bot has been initialized.
    This function is called by the ApplicationBuilder.
    """
    config: BotConfig = application.bot_data["CONFIG"]
    cache: ArtifactCache = application.bot_data["artifact_cache"]
    ledger: RequestLedger = application.bot_data["request_ledger"]

    # Files left by a previous run are not referenced by the fresh cache.
    report = await asyncio.to_thread(cache.sweep)
    logger.info(f"Startup cleanup removed {report.deleted_files} leftover file(s).")

    application.bot_data["sweep_task"] = asyncio.create_task(
        run_periodic_sweep(cache, ledger, config.sweep_interval_seconds)
    )
    logger.info("--- Background cache sweep started ---")


async def post_shutdown(application: Application) -> None:
    """
    Stops the background sweep before the bot shuts down.
    This function is called by the ApplicationBuilder.
    """
    logger.info("--- Shutting down: stopping background tasks ---")
    application.bot_data["is_shutting_down"] = True

    task = application.bot_data.get("sweep_task")
    if task is None or task.done():
        logger.info("No background tasks to stop.")
        return

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    logger.info("--- All background tasks stopped. Shutdown complete. ---")
