from typing import List, Optional

from databases import Database
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    LOG_LEVEL: Optional[str] = "DEBUG"
    DATABASE_TYPE: Optional[str] = "sqlite"
    DATABASE_URL: Optional[str] = "username:password@hostname:port"
    DATABASE_PATH: Optional[str] = "data/trawler.db"

    SEARCH_SWEEP_INTERVAL: Optional[int] = 30
    DOWNLOAD_POLL_INTERVAL: Optional[int] = 30
    TV_GAP_SWEEP_INTERVAL: Optional[int] = 300  # 5 minutes
    EXPIRY_SWEEP_INTERVAL: Optional[int] = 3600  # 1 hour
    SEARCH_BATCH_SIZE: Optional[int] = 3
    SEARCH_BATCH_DELAY: Optional[float] = 2.0

    INDEXER_MANAGER_URL: Optional[str] = "http://127.0.0.1:9117"
    INDEXER_MANAGER_API_KEY: Optional[str] = None
    INDEXER_MANAGER_TIMEOUT: Optional[int] = 30
    INDEXER_MANAGER_INDEXERS: List[str] = []

    TMDB_READ_ACCESS_TOKEN: Optional[str] = None
    CATALOG_TIMEOUT: Optional[int] = 10
    RELEASE_BUFFER_HOURS: Optional[int] = 24
    RELEASE_CACHE_TTL: Optional[int] = 3600  # 1 hour
    RELEASE_CACHE_SIZE: Optional[int] = 2048

    ARIA2_RPC_URL: Optional[str] = "http://127.0.0.1:6800/jsonrpc"
    ARIA2_RPC_SECRET: Optional[str] = None
    DOWNLOAD_ENGINE_TIMEOUT: Optional[int] = 10
    DOWNLOAD_PATH: Optional[str] = "downloads"

    HTTP_CLIENT_LIMIT: Optional[int] = 100
    HTTP_CLIENT_LIMIT_PER_HOST: Optional[int] = 20
    HTTP_CLIENT_TIMEOUT_TOTAL: Optional[int] = 60

    DEFAULT_MIN_SEEDERS: Optional[int] = 5
    DEFAULT_MAX_SIZE_GB: Optional[float] = 20.0
    DEFAULT_TV_MAX_SIZE_GB: Optional[float] = 15.0
    DEFAULT_SEARCH_INTERVAL_MINUTES: Optional[int] = 30
    DEFAULT_MAX_SEARCH_ATTEMPTS: Optional[int] = 50
    ONGOING_MAX_SEARCH_ATTEMPTS: Optional[int] = 1000
    REQUEST_TTL_DAYS: Optional[int] = 30
    ONGOING_REQUEST_TTL_DAYS: Optional[int] = 365
    DEFAULT_PREFERRED_QUALITIES: List[str] = ["1080p"]
    DEFAULT_PREFERRED_FORMATS: List[str] = ["x265"]
    TRUSTED_INDEXERS: List[str] = [
        "1337x",
        "rarbg",
        "the pirate bay",
        "torrentz2",
        "yts",
        "eztv",
    ]
    REMOVE_ADULT_CONTENT: Optional[bool] = False

    @field_validator("INDEXER_MANAGER_URL", "ARIA2_RPC_URL")
    def remove_trailing_slash(cls, v):
        if v and v.endswith("/"):
            return v[:-1]
        return v

    @field_validator("INDEXER_MANAGER_INDEXERS")
    def indexer_manager_indexers_normalization(cls, v):
        return [indexer.replace(" ", "").lower() for indexer in v]

    @field_validator("TRUSTED_INDEXERS")
    def trusted_indexers_normalization(cls, v):
        return [indexer.strip().lower() for indexer in v if indexer.strip()]

    @field_validator("DATABASE_TYPE")
    def check_database_type(cls, v):
        if v not in ("sqlite", "postgresql", "memory"):
            raise ValueError(
                "DATABASE_TYPE must be one of 'sqlite', 'postgresql' or 'memory'"
            )
        return v


settings = AppSettings()

database_url = (
    settings.DATABASE_URL
    if settings.DATABASE_TYPE == "postgresql"
    else settings.DATABASE_PATH
)
database = Database(
    f"{'postgresql+asyncpg' if settings.DATABASE_TYPE == 'postgresql' else 'sqlite'}://{'' if settings.DATABASE_TYPE == 'postgresql' else '/'}{database_url}"
)
