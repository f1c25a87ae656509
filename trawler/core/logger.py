import sys

from loguru import logger

from trawler.core.log_levels import CUSTOM_LOG_LEVELS, STANDARD_LOG_LEVELS
from trawler.core.models import settings


def setupLogger(level: str):
    # Configure custom log levels
    for level_name, level_config in CUSTOM_LOG_LEVELS.items():
        logger.level(
            level_name,
            no=level_config["no"],
            icon=level_config["icon"],
            color=level_config["loguru_color"],
        )

    # Configure standard log levels (override defaults)
    for level_name, level_config in STANDARD_LOG_LEVELS.items():
        logger.level(
            level_name, icon=level_config["icon"], color=level_config["loguru_color"]
        )

    log_format = (
        "<white>{time:YYYY-MM-DD}</white> <magenta>{time:HH:mm:ss}</magenta> | "
        "<level>{level.icon}</level> <level>{level}</level> | "
        "<cyan>{module}</cyan>.<cyan>{function}</cyan> - <level>{message}</level>"
    )

    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": level,
                "format": log_format,
                "backtrace": False,
                "diagnose": False,
                "enqueue": True,
            }
        ]
    )


setupLogger(settings.LOG_LEVEL)


def log_collaborator_error(collaborator: str, action: str, error: Exception):
    logger.warning(
        f"{collaborator} unavailable while trying to {action}, retrying next cycle: {error}"
    )


def log_startup_info(settings):
    logger.log(
        "TRAWLER",
        f"Database ({settings.DATABASE_TYPE}): {settings.DATABASE_PATH if settings.DATABASE_TYPE == 'sqlite' else settings.DATABASE_URL if settings.DATABASE_TYPE == 'postgresql' else 'in-memory'}",
    )
    logger.log(
        "TRAWLER",
        f"Sweeps: search={settings.SEARCH_SWEEP_INTERVAL}s (batch {settings.SEARCH_BATCH_SIZE}), downloads={settings.DOWNLOAD_POLL_INTERVAL}s, tv={settings.TV_GAP_SWEEP_INTERVAL}s, expiry={settings.EXPIRY_SWEEP_INTERVAL}s",
    )

    indexers = (
        ", ".join(settings.INDEXER_MANAGER_INDEXERS)
        if settings.INDEXER_MANAGER_INDEXERS
        else "all"
    )
    logger.log(
        "TRAWLER",
        f"Indexer Manager: {settings.INDEXER_MANAGER_URL} - Indexers: {indexers} - Timeout: {settings.INDEXER_MANAGER_TIMEOUT}s",
    )
    logger.log(
        "TRAWLER",
        f"Catalog: TMDB {'configured' if settings.TMDB_READ_ACCESS_TOKEN else 'not configured'} - Release Buffer: {settings.RELEASE_BUFFER_HOURS}h - Cache TTL: {settings.RELEASE_CACHE_TTL}s",
    )
    logger.log(
        "TRAWLER",
        f"Download Engine: {settings.ARIA2_RPC_URL} - Path: {settings.DOWNLOAD_PATH}",
    )
    logger.log(
        "TRAWLER",
        f"Request Defaults: min seeders={settings.DEFAULT_MIN_SEEDERS}, max size={settings.DEFAULT_MAX_SIZE_GB}GB (tv {settings.DEFAULT_TV_MAX_SIZE_GB}GB), qualities={settings.DEFAULT_PREFERRED_QUALITIES}, formats={settings.DEFAULT_PREFERRED_FORMATS}",
    )
    logger.log("TRAWLER", f"Trusted Indexers: {', '.join(settings.TRUSTED_INDEXERS)}")
    logger.log("TRAWLER", f"Remove Adult Content: {bool(settings.REMOVE_ADULT_CONTENT)}")
