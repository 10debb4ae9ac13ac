# downloader_bot/config.py

import configparser
import logging
import os
import sys
from dataclasses import dataclass

# --- Constants ---
VERSION = "1.2.0"
MAX_ARTIFACT_SIZE_BYTES = 2 * (1024**3)  # Telegram's ceiling with a local Bot API server
DOWNLOAD_TIMEOUT_SECONDS = 10 * 60
PROBE_TIMEOUT_SECONDS = 15
CONVERT_TIMEOUT_SECONDS = 3 * 60
HTTP_TIMEOUT_SECONDS = 30
ADAPTER_CACHE_TTL_SECONDS = 4 * 60 * 60
DEFAULT_CACHE_TTL_HOURS = 48
DEFAULT_SWEEP_INTERVAL_MINUTES = 60
DEFAULT_REQUEST_MAX_AGE_HOURS = 24
DEFAULT_MAX_FILE_SIZE_MB = 5000
DEFAULT_WORK_DIR = "./temp"
MESSAGE_MAX_AGE_SECONDS = 120
SUPPORTED_FORMATS = ("mp3", "mp4")

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass(frozen=True)
class BotConfig:
    """Everything read from config.ini, with defaults already applied."""

    token: str
    api_root: str | None
    work_dir: str
    cache_ttl_seconds: float
    sweep_interval_seconds: float
    request_max_age_seconds: float
    max_file_size_mb: int
    single_flight: bool


def get_configuration(config_path: str = "config.ini") -> BotConfig:
    """
    Reads the bot token, working directory, cache and download settings from
    the config.ini file. The TELEGRAM_BOT_TOKEN environment variable takes
    precedence over the token stored in the file.
    """
    if not os.path.exists(config_path):
        logger.critical(
            f"Configuration file '{config_path}' not found. Please create it."
        )
        sys.exit(1)

    parser = configparser.ConfigParser(inline_comment_prefixes=(";", "#"))
    with open(config_path, encoding="utf-8") as f:
        parser.read_string(f.read())

    token = os.environ.get("TELEGRAM_BOT_TOKEN") or parser.get(
        "telegram", "bot_token", fallback=None
    )
    if not token or token == "PLACE_TOKEN_HERE":
        logger.critical(f"Bot token not found or not set in '{config_path}'.")
        sys.exit(1)

    api_root = parser.get("telegram", "api_root", fallback=None) or None
    work_dir = _load_and_validate_work_dir(parser)

    try:
        cache_ttl_hours = parser.getfloat(
            "cache", "ttl_hours", fallback=DEFAULT_CACHE_TTL_HOURS
        )
        sweep_minutes = parser.getfloat(
            "cache", "sweep_interval_minutes", fallback=DEFAULT_SWEEP_INTERVAL_MINUTES
        )
        request_max_age_hours = parser.getfloat(
            "cache", "request_max_age_hours", fallback=DEFAULT_REQUEST_MAX_AGE_HOURS
        )
        max_file_size_mb = parser.getint(
            "download", "max_file_size_mb", fallback=DEFAULT_MAX_FILE_SIZE_MB
        )
        single_flight = parser.getboolean("download", "single_flight", fallback=False)
    except ValueError as e:
        logger.critical(f"Invalid numeric or boolean value in '{config_path}': {e}")
        sys.exit(1)

    if cache_ttl_hours <= 0 or sweep_minutes <= 0 or request_max_age_hours <= 0:
        logger.critical("Cache lifetimes and the sweep interval must be positive.")
        sys.exit(1)

    logger.info(
        f"[CONFIG] Cache TTL: {cache_ttl_hours}h, sweep every {sweep_minutes}min, "
        f"single-flight downloads: {'on' if single_flight else 'off'}."
    )

    return BotConfig(
        token=token.strip(),
        api_root=api_root.strip() if api_root else None,
        work_dir=work_dir,
        cache_ttl_seconds=cache_ttl_hours * 60 * 60,
        sweep_interval_seconds=sweep_minutes * 60,
        request_max_age_seconds=request_max_age_hours * 60 * 60,
        max_file_size_mb=max_file_size_mb,
        single_flight=single_flight,
    )


def _load_and_validate_work_dir(config: configparser.ConfigParser) -> str:
    """Resolves the working directory for artifacts and creates it if needed."""
    raw = config.get("host", "work_dir", fallback=DEFAULT_WORK_DIR) or DEFAULT_WORK_DIR
    work_dir = os.path.expanduser(raw.strip())
    logger.info(f"[CONFIG] Resolved working directory: {work_dir}")
    if not os.path.exists(work_dir):
        logger.info(f"Path '{work_dir}' not found. Creating it.")
        os.makedirs(work_dir)
    return work_dir
