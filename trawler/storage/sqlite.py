from datetime import datetime, timezone
from typing import Iterable, List, Optional

import orjson
from databases import Database

from trawler.models import (ContentStatus, ContentType, DownloadJob, Request,
                            RequestStatus, TorrentSearchResult, TvShowEpisode,
                            TvShowSeason)
from trawler.storage.base import RequestStore

REQUEST_COLUMNS = [
    "id",
    "content_type",
    "title",
    "year",
    "imdb_id",
    "tmdb_id",
    "platform",
    "season",
    "episode",
    "is_ongoing",
    "total_seasons",
    "total_episodes",
    "status",
    "status_reason",
    "priority",
    "search_interval_minutes",
    "max_search_attempts",
    "search_attempts",
    "last_search_at",
    "next_search_at",
    "expires_at",
    "completed_at",
    "preferred_qualities",
    "preferred_formats",
    "min_seeders",
    "max_size_gb",
    "blacklisted_words",
    "trusted_indexers",
    "found_candidate",
    "active_job_id",
    "download_progress",
    "download_speed",
    "download_eta",
    "created_at",
    "updated_at",
]
SEASON_COLUMNS = ["id", "request_id", "season_number", "total_episodes", "status"]
EPISODE_COLUMNS = [
    "id",
    "season_id",
    "request_id",
    "episode_number",
    "title",
    "air_date",
    "status",
]
SEARCH_RESULT_COLUMNS = [
    "id",
    "request_id",
    "title",
    "candidate",
    "score",
    "seeders",
    "is_selected",
    "auto_selected",
    "created_at",
]
DOWNLOAD_JOB_COLUMNS = [
    "id",
    "request_id",
    "engine_job_id",
    "locator",
    "title",
    "coverage",
    "status",
    "error_message",
    "created_at",
    "completed_at",
]

TIME_FIELDS = {
    "last_search_at",
    "next_search_at",
    "expires_at",
    "completed_at",
    "created_at",
    "updated_at",
    "air_date",
}
JSON_FIELDS = {
    "preferred_qualities",
    "preferred_formats",
    "blacklisted_words",
    "trusted_indexers",
    "found_candidate",
    "candidate",
    "coverage",
}


def _upsert_query(table: str, columns: List[str]) -> str:
    names = ", ".join(columns)
    params = ", ".join(f":{column}" for column in columns)
    updates = ", ".join(
        f"{column} = excluded.{column}" for column in columns if column != "id"
    )
    return f"INSERT INTO {table} ({names}) VALUES ({params}) ON CONFLICT (id) DO UPDATE SET {updates}"


def _encode(model, columns: List[str], extra: dict = None) -> dict:
    data = model.model_dump(mode="json")
    data.update(extra or {})

    values = {}
    for column in columns:
        value = data.get(column)
        if column in TIME_FIELDS:
            raw = getattr(model, column, None)
            value = raw.timestamp() if raw is not None else None
        elif column in JSON_FIELDS:
            value = orjson.dumps(value).decode("utf-8") if value is not None else None
        values[column] = value
    return values


def _decode(row, columns: List[str]) -> dict:
    data = {}
    for column in columns:
        value = row[column]
        if column in TIME_FIELDS and value is not None:
            value = datetime.fromtimestamp(value, tz=timezone.utc)
        elif column in JSON_FIELDS and value is not None:
            value = orjson.loads(value)
        data[column] = value
    return data


class DatabaseStore(RequestStore):
    def __init__(self, database: Database):
        self.database = database

    async def get_request(self, request_id: str) -> Optional[Request]:
        row = await self.database.fetch_one(
            "SELECT * FROM requests WHERE id = :id", {"id": request_id}
        )
        return Request.model_validate(_decode(row, REQUEST_COLUMNS)) if row else None

    async def save_request(self, request: Request):
        await self.database.execute(
            _upsert_query("requests", REQUEST_COLUMNS),
            _encode(request, REQUEST_COLUMNS),
        )

    async def delete_request(self, request_id: str):
        async with self.database.transaction():
            for table in (
                "tv_show_episodes",
                "tv_show_seasons",
                "search_results",
                "download_jobs",
            ):
                await self.database.execute(
                    f"DELETE FROM {table} WHERE request_id = :request_id",
                    {"request_id": request_id},
                )
            await self.database.execute(
                "DELETE FROM requests WHERE id = :id", {"id": request_id}
            )

    async def list_requests(
        self,
        statuses: Optional[Iterable[RequestStatus]] = None,
        content_type: Optional[ContentType] = None,
    ) -> List[Request]:
        clauses = []
        params = {}

        if statuses is not None:
            statuses = list(statuses)
            if not statuses:
                return []
            placeholders = []
            for index, status in enumerate(statuses):
                params[f"status_{index}"] = status.value
                placeholders.append(f":status_{index}")
            clauses.append(f"status IN ({', '.join(placeholders)})")

        if content_type is not None:
            params["content_type"] = content_type.value
            clauses.append("content_type = :content_type")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self.database.fetch_all(
            f"SELECT * FROM requests {where} ORDER BY priority DESC, created_at DESC",
            params,
        )
        return [Request.model_validate(_decode(row, REQUEST_COLUMNS)) for row in rows]

    async def get_seasons(self, request_id: str) -> List[TvShowSeason]:
        season_rows = await self.database.fetch_all(
            "SELECT * FROM tv_show_seasons WHERE request_id = :request_id ORDER BY season_number",
            {"request_id": request_id},
        )
        episode_rows = await self.database.fetch_all(
            "SELECT * FROM tv_show_episodes WHERE request_id = :request_id ORDER BY episode_number",
            {"request_id": request_id},
        )

        episodes_by_season = {}
        for row in episode_rows:
            data = _decode(row, EPISODE_COLUMNS)
            episodes_by_season.setdefault(data["season_id"], []).append(
                TvShowEpisode.model_validate(data)
            )

        seasons = []
        for row in season_rows:
            data = _decode(row, SEASON_COLUMNS)
            data["episodes"] = episodes_by_season.get(data["id"], [])
            seasons.append(TvShowSeason.model_validate(data))
        return seasons

    async def save_season(self, season: TvShowSeason):
        await self.database.execute(
            _upsert_query("tv_show_seasons", SEASON_COLUMNS),
            _encode(season, SEASON_COLUMNS),
        )

    async def save_episode(self, episode: TvShowEpisode):
        await self.database.execute(
            _upsert_query("tv_show_episodes", EPISODE_COLUMNS),
            _encode(episode, EPISODE_COLUMNS),
        )

    async def update_season_status(self, season_id: str, status: ContentStatus):
        await self.database.execute(
            "UPDATE tv_show_seasons SET status = :status WHERE id = :id",
            {"status": status.value, "id": season_id},
        )

    async def update_episode_status(self, episode_id: str, status: ContentStatus):
        await self.database.execute(
            "UPDATE tv_show_episodes SET status = :status WHERE id = :id",
            {"status": status.value, "id": episode_id},
        )

    async def replace_search_results(
        self, request_id: str, results: List[TorrentSearchResult]
    ):
        async with self.database.transaction():
            await self.database.execute(
                "DELETE FROM search_results WHERE request_id = :request_id",
                {"request_id": request_id},
            )
            if results:
                await self.database.execute_many(
                    _upsert_query("search_results", SEARCH_RESULT_COLUMNS),
                    [
                        _encode(
                            result,
                            SEARCH_RESULT_COLUMNS,
                            {
                                "title": result.candidate.title,
                                "seeders": result.candidate.seeders,
                            },
                        )
                        for result in results
                    ],
                )

    async def get_search_results(self, request_id: str) -> List[TorrentSearchResult]:
        rows = await self.database.fetch_all(
            """
            SELECT * FROM search_results
            WHERE request_id = :request_id
            ORDER BY score DESC, seeders DESC
            """,
            {"request_id": request_id},
        )
        return [
            TorrentSearchResult.model_validate(_decode(row, SEARCH_RESULT_COLUMNS))
            for row in rows
        ]

    async def select_search_result(
        self, request_id: str, result_id: str, auto_selected: bool = False
    ) -> Optional[TorrentSearchResult]:
        async with self.database.transaction():
            row = await self.database.fetch_one(
                "SELECT * FROM search_results WHERE id = :id AND request_id = :request_id",
                {"id": result_id, "request_id": request_id},
            )
            if row is None:
                return None

            await self.database.execute(
                """
                UPDATE search_results SET is_selected = FALSE, auto_selected = FALSE
                WHERE request_id = :request_id
                """,
                {"request_id": request_id},
            )
            await self.database.execute(
                """
                UPDATE search_results SET is_selected = TRUE, auto_selected = :auto_selected
                WHERE id = :id
                """,
                {"id": result_id, "auto_selected": auto_selected},
            )

        result = TorrentSearchResult.model_validate(_decode(row, SEARCH_RESULT_COLUMNS))
        result.is_selected = True
        result.auto_selected = auto_selected
        return result

    async def save_download_job(self, job: DownloadJob):
        await self.database.execute(
            _upsert_query("download_jobs", DOWNLOAD_JOB_COLUMNS),
            _encode(job, DOWNLOAD_JOB_COLUMNS),
        )

    async def get_download_job(self, job_id: str) -> Optional[DownloadJob]:
        row = await self.database.fetch_one(
            "SELECT * FROM download_jobs WHERE id = :id", {"id": job_id}
        )
        return DownloadJob.model_validate(_decode(row, DOWNLOAD_JOB_COLUMNS)) if row else None

    async def list_download_jobs(self, request_id: str) -> List[DownloadJob]:
        rows = await self.database.fetch_all(
            "SELECT * FROM download_jobs WHERE request_id = :request_id ORDER BY created_at",
            {"request_id": request_id},
        )
        return [DownloadJob.model_validate(_decode(row, DOWNLOAD_JOB_COLUMNS)) for row in rows]
