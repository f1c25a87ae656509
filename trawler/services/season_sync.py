from datetime import datetime, time, timezone
from typing import List

from trawler.core.logger import logger
from trawler.metadata.base import BaseCatalog
from trawler.models import Request, TvShowEpisode, TvShowSeason
from trawler.storage.base import RequestStore


def _air_datetime(value):
    if value is None:
        return None
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class SeasonSync:
    """
    Mirrors the catalog's seasons and episodes into storage for a show request.

    New seasons and episodes are added, episode counts and air dates are
    refreshed, and stored statuses are never touched. Raises CatalogError
    when the catalog cannot be read.
    """

    def __init__(self, store: RequestStore, catalog: BaseCatalog):
        self.store = store
        self.catalog = catalog

    async def sync(self, request: Request) -> List[TvShowSeason]:
        if request.tmdb_id is None:
            return await self.store.get_seasons(request.id)

        show = await self.catalog.get_show(request.tmdb_id)
        existing = {s.season_number: s for s in await self.store.get_seasons(request.id)}

        added_seasons = added_episodes = 0
        for info in show.seasons:
            season = existing.get(info.season_number)
            if season is None:
                season = TvShowSeason(
                    request_id=request.id,
                    season_number=info.season_number,
                    total_episodes=info.episode_count,
                )
                added_seasons += 1
            else:
                season.total_episodes = info.episode_count

            await self.store.save_season(season)

            known = {e.episode_number: e for e in season.episodes}
            for episode_info in await self.catalog.get_season_episodes(
                request.tmdb_id, info.season_number
            ):
                episode = known.get(episode_info.episode_number)
                if episode is None:
                    episode = TvShowEpisode(
                        season_id=season.id,
                        request_id=request.id,
                        episode_number=episode_info.episode_number,
                    )
                    added_episodes += 1

                episode.title = episode_info.title
                episode.air_date = _air_datetime(episode_info.air_date)
                await self.store.save_episode(episode)

        request.total_seasons = len(show.seasons)
        request.total_episodes = sum(s.episode_count for s in show.seasons)

        if added_seasons or added_episodes:
            logger.log(
                "DATABASE",
                f"Synced {request.title}: {added_seasons} new season(s), {added_episodes} new episode(s)",
            )

        return await self.store.get_seasons(request.id)
