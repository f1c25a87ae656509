import os
import traceback

from trawler.core.logger import logger
from trawler.core.models import database, settings

DATABASE_VERSION = "1.0"


async def setup_database():
    try:
        if settings.DATABASE_TYPE == "sqlite":
            directory = os.path.dirname(settings.DATABASE_PATH)
            if directory:
                os.makedirs(directory, exist_ok=True)

            if not os.path.exists(settings.DATABASE_PATH):
                open(settings.DATABASE_PATH, "a").close()

        await database.connect()

        await database.execute(
            """
                CREATE TABLE IF NOT EXISTS db_version (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    version TEXT
                )
            """
        )

        current_version = await database.fetch_val(
            """
                SELECT version FROM db_version WHERE id = 1
            """
        )

        if current_version != DATABASE_VERSION:
            logger.log(
                "DATABASE",
                f"Migration from {current_version} to {DATABASE_VERSION} version",
            )

            if settings.DATABASE_TYPE == "sqlite":
                tables = await database.fetch_all(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name != 'db_version' AND name != 'sqlite_sequence'
                    """
                )

                for table in tables:
                    await database.execute(f"DROP TABLE IF EXISTS {table['name']}")
            else:
                await database.execute(
                    """
                    DO $$ DECLARE
                        r RECORD;
                    BEGIN
                        FOR r IN (SELECT tablename FROM pg_tables WHERE schemaname = current_schema() AND tablename != 'db_version') LOOP
                            EXECUTE 'DROP TABLE IF EXISTS ' || quote_ident(r.tablename) || ' CASCADE';
                        END LOOP;
                    END $$;
                    """
                )

            await database.execute(
                """
                    INSERT INTO db_version VALUES (1, :version)
                    ON CONFLICT (id) DO UPDATE SET version = :version
                """,
                {"version": DATABASE_VERSION},
            )

            logger.log("DATABASE", f"Migration to version {DATABASE_VERSION} completed")

        await database.execute(
            """
                CREATE TABLE IF NOT EXISTS requests (
                    id TEXT PRIMARY KEY,
                    content_type TEXT,
                    title TEXT,
                    year INTEGER,
                    imdb_id TEXT,
                    tmdb_id INTEGER,
                    platform TEXT,
                    season INTEGER,
                    episode INTEGER,
                    is_ongoing BOOLEAN,
                    total_seasons INTEGER,
                    total_episodes INTEGER,
                    status TEXT,
                    status_reason TEXT,
                    priority INTEGER,
                    search_interval_minutes INTEGER,
                    max_search_attempts INTEGER,
                    search_attempts INTEGER,
                    last_search_at REAL,
                    next_search_at REAL,
                    expires_at REAL,
                    completed_at REAL,
                    preferred_qualities TEXT,
                    preferred_formats TEXT,
                    min_seeders INTEGER,
                    max_size_gb REAL,
                    blacklisted_words TEXT,
                    trusted_indexers TEXT,
                    found_candidate TEXT,
                    active_job_id TEXT,
                    download_progress INTEGER,
                    download_speed TEXT,
                    download_eta TEXT,
                    created_at REAL,
                    updated_at REAL
                )
            """
        )

        await database.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_requests_status_next_search
            ON requests (status, next_search_at)
            """
        )

        await database.execute(
            """
                CREATE TABLE IF NOT EXISTS tv_show_seasons (
                    id TEXT PRIMARY KEY,
                    request_id TEXT,
                    season_number INTEGER,
                    total_episodes INTEGER,
                    status TEXT
                )
            """
        )

        await database.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS unq_seasons_request_number
            ON tv_show_seasons (request_id, season_number)
            """
        )

        await database.execute(
            """
                CREATE TABLE IF NOT EXISTS tv_show_episodes (
                    id TEXT PRIMARY KEY,
                    season_id TEXT,
                    request_id TEXT,
                    episode_number INTEGER,
                    title TEXT,
                    air_date REAL,
                    status TEXT
                )
            """
        )

        await database.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS unq_episodes_season_number
            ON tv_show_episodes (season_id, episode_number)
            """
        )

        await database.execute(
            """
                CREATE TABLE IF NOT EXISTS search_results (
                    id TEXT PRIMARY KEY,
                    request_id TEXT,
                    title TEXT,
                    candidate TEXT,
                    score REAL,
                    seeders INTEGER,
                    is_selected BOOLEAN,
                    auto_selected BOOLEAN,
                    created_at REAL
                )
            """
        )

        await database.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_search_results_request
            ON search_results (request_id, score)
            """
        )

        await database.execute(
            """
                CREATE TABLE IF NOT EXISTS download_jobs (
                    id TEXT PRIMARY KEY,
                    request_id TEXT,
                    engine_job_id TEXT,
                    locator TEXT,
                    title TEXT,
                    coverage TEXT,
                    status TEXT,
                    error_message TEXT,
                    created_at REAL,
                    completed_at REAL
                )
            """
        )

        await database.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_download_jobs_request
            ON download_jobs (request_id)
            """
        )

        if settings.DATABASE_TYPE == "sqlite":
            await database.execute("PRAGMA busy_timeout=30000")  # 30 seconds timeout
            await database.execute("PRAGMA journal_mode=WAL")
            await database.execute("PRAGMA temp_store=MEMORY")
            await database.execute("PRAGMA foreign_keys=OFF")

    except Exception as e:
        logger.error(f"Error setting up the database: {e}")
        logger.exception(traceback.format_exc())


async def teardown_database():
    try:
        await database.disconnect()
    except Exception as e:
        logger.error(f"Error tearing down the database: {e}")
        logger.exception(traceback.format_exc())
