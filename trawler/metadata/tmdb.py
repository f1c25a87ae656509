from typing import List

import aiohttp

from trawler.core.exceptions import CatalogError
from trawler.core.logger import logger
from trawler.core.models import settings
from trawler.metadata.base import BaseCatalog, EpisodeInfo, SeasonInfo, ShowInfo

CATALOG_TIMEOUT = aiohttp.ClientTimeout(total=settings.CATALOG_TIMEOUT)

ONGOING_STATUSES = {"Returning Series", "In Production", "Planned"}


class TMDBCatalog(BaseCatalog):
    def __init__(self, session: aiohttp.ClientSession, read_access_token: str = None):
        self.session = session
        self.base_url = "https://api.themoviedb.org/3"
        self.headers = {
            "Authorization": f"Bearer {read_access_token or settings.TMDB_READ_ACCESS_TOKEN}",
            "Content-Type": "application/json",
        }

    async def _get(self, path: str):
        try:
            async with self.session.get(
                f"{self.base_url}{path}", headers=self.headers, timeout=CATALOG_TIMEOUT
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    raise CatalogError(f"TMDB returned {response.status} for {path}: {text}")

                return await response.json()
        except CatalogError:
            raise
        except Exception as e:
            raise CatalogError(f"TMDB request {path} failed: {e}")

    async def get_show(self, tmdb_id: int) -> ShowInfo:
        data = await self._get(f"/tv/{tmdb_id}")

        seasons = [
            SeasonInfo(
                season_number=season["season_number"],
                episode_count=season.get("episode_count") or 0,
                title=season.get("name"),
                air_date=season.get("air_date") or None,
            )
            for season in data.get("seasons", [])
            # Season 0 holds specials
            if season.get("season_number", 0) > 0
        ]

        logger.debug(f"TMDB: {data.get('name')} ({tmdb_id}) has {len(seasons)} seasons")

        return ShowInfo(
            tmdb_id=tmdb_id,
            title=data.get("name") or "",
            is_ongoing=data.get("status") in ONGOING_STATUSES,
            seasons=seasons,
        )

    async def get_season_episodes(
        self, tmdb_id: int, season_number: int
    ) -> List[EpisodeInfo]:
        data = await self._get(f"/tv/{tmdb_id}/season/{season_number}")

        return [
            EpisodeInfo(
                episode_number=episode["episode_number"],
                title=episode.get("name"),
                air_date=episode.get("air_date") or None,
            )
            for episode in data.get("episodes", [])
        ]
