from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from pydantic import BaseModel


class EpisodeInfo(BaseModel):
    episode_number: int
    title: Optional[str] = None
    air_date: Optional[date] = None


class SeasonInfo(BaseModel):
    season_number: int
    episode_count: int = 0
    title: Optional[str] = None
    air_date: Optional[date] = None


class ShowInfo(BaseModel):
    tmdb_id: int
    title: str
    is_ongoing: bool = False
    seasons: List[SeasonInfo] = []


class BaseCatalog(ABC):
    """Show metadata source. Implementations raise CatalogError on failure."""

    @abstractmethod
    async def get_show(self, tmdb_id: int) -> ShowInfo:
        pass

    @abstractmethod
    async def get_season_episodes(
        self, tmdb_id: int, season_number: int
    ) -> List[EpisodeInfo]:
        pass
