from datetime import datetime, time, timedelta, timezone
from typing import List, Optional

from cachetools import TTLCache

from trawler.core.exceptions import CatalogError
from trawler.core.logger import log_collaborator_error, logger
from trawler.core.models import settings
from trawler.metadata.base import BaseCatalog, EpisodeInfo
from trawler.utils.clock import Clock, utcnow


class ReleaseValidator:
    """
    Answers whether an episode has aired (air date plus a buffer has passed).

    Catalog episode lists are cached per (show, season). A failed lookup is
    answered as "not released" so that nothing is searched for too early.
    Requests without a catalog id have nothing to check against and count as
    released.
    """

    def __init__(
        self,
        catalog: Optional[BaseCatalog],
        cache: Optional[TTLCache] = None,
        buffer: Optional[timedelta] = None,
        clock: Clock = utcnow,
    ):
        self.catalog = catalog
        self.clock = clock
        self.cache: TTLCache = cache if cache is not None else TTLCache(
            maxsize=settings.RELEASE_CACHE_SIZE,
            ttl=settings.RELEASE_CACHE_TTL,
            timer=self.timestamp,
        )
        self.buffer = (
            buffer if buffer is not None else timedelta(hours=settings.RELEASE_BUFFER_HOURS)
        )

    def timestamp(self) -> float:
        return self.clock().timestamp()

    async def get_season_episodes(
        self, tmdb_id: int, season_number: int
    ) -> List[EpisodeInfo]:
        key = (tmdb_id, season_number)
        episodes = self.cache.get(key)
        if episodes is None:
            episodes = await self.catalog.get_season_episodes(tmdb_id, season_number)
            self.cache[key] = episodes
        return episodes

    def _has_aired(self, episode: EpisodeInfo) -> bool:
        if episode.air_date is None:
            return False
        aired_at = datetime.combine(episode.air_date, time.min, tzinfo=timezone.utc)
        return aired_at + self.buffer <= self.clock()

    async def is_episode_released(
        self, tmdb_id: Optional[int], season_number: int, episode_number: int
    ) -> bool:
        if tmdb_id is None or self.catalog is None:
            return True

        try:
            episodes = await self.get_season_episodes(tmdb_id, season_number)
        except CatalogError as e:
            log_collaborator_error(
                "Catalog", f"check S{season_number:02d}E{episode_number:02d} of {tmdb_id}", e
            )
            return False

        for episode in episodes:
            if episode.episode_number == episode_number:
                return self._has_aired(episode)

        logger.debug(
            f"S{season_number:02d}E{episode_number:02d} of {tmdb_id} is unknown to the catalog"
        )
        return False

    async def is_season_aired(self, tmdb_id: Optional[int], season_number: int) -> bool:
        if tmdb_id is None or self.catalog is None:
            return True

        try:
            episodes = await self.get_season_episodes(tmdb_id, season_number)
        except CatalogError as e:
            log_collaborator_error("Catalog", f"check season {season_number} of {tmdb_id}", e)
            return False

        return bool(episodes) and all(self._has_aired(e) for e in episodes)
