from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from trawler.core.exceptions import (CatalogError, DownloadEngineError,
                                     IndexerError)
from trawler.downloaders.base import BaseDownloadEngine, EngineStatus
from trawler.indexers.base import BaseIndexer
from trawler.metadata.base import BaseCatalog, EpisodeInfo, SeasonInfo, ShowInfo
from trawler.models import Candidate

GB = 1024**3


class FakeClock:
    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeIndexer(BaseIndexer):
    def __init__(self, results: Optional[List[Candidate]] = None):
        self.results = results or []
        self.queries = []
        self.error = None

    async def search(self, query, categories, indexers=None):
        self.queries.append((query, list(categories)))
        if self.error:
            raise IndexerError(self.error)
        return list(self.results)


class FakeEngine(BaseDownloadEngine):
    def __init__(self):
        self.statuses: Dict[str, EngineStatus] = {}
        self.submitted = []
        self.cancelled = []
        self.fail_submit = False

    async def submit(self, locator, destination=None):
        if self.fail_submit:
            raise DownloadEngineError("connection refused")
        self.submitted.append((locator, destination))
        job_id = f"gid{len(self.submitted)}"
        self.statuses[job_id] = EngineStatus(job_id=job_id, status="active")
        return job_id

    async def get_status(self, job_id):
        if job_id not in self.statuses:
            raise DownloadEngineError(f"unknown job {job_id}")
        return self.statuses[job_id]

    async def cancel(self, job_id):
        self.cancelled.append(job_id)

    def set_status(self, job_id, status, **kwargs):
        self.statuses[job_id] = EngineStatus(job_id=job_id, status=status, **kwargs)


class FakeCatalog(BaseCatalog):
    def __init__(self):
        self.shows: Dict[int, ShowInfo] = {}
        self.episodes: Dict[tuple, List[EpisodeInfo]] = {}
        self.episode_calls = 0
        self.error = None

    def add_season(self, tmdb_id, title, season_number, air_dates):
        show = self.shows.setdefault(
            tmdb_id, ShowInfo(tmdb_id=tmdb_id, title=title, is_ongoing=True)
        )
        show.seasons.append(
            SeasonInfo(season_number=season_number, episode_count=len(air_dates))
        )
        self.episodes[(tmdb_id, season_number)] = [
            EpisodeInfo(episode_number=number, title=f"Episode {number}", air_date=aired)
            for number, aired in enumerate(air_dates, start=1)
        ]

    async def get_show(self, tmdb_id):
        if self.error:
            raise CatalogError(self.error)
        return self.shows[tmdb_id]

    async def get_season_episodes(self, tmdb_id, season_number):
        self.episode_calls += 1
        if self.error:
            raise CatalogError(self.error)
        return self.episodes.get((tmdb_id, season_number), [])


def candidate(title, seeders=50, size_gb=2, indexer="1337x", **kwargs):
    return Candidate(
        title=title,
        magnet_uri=kwargs.pop("magnet_uri", f"magnet:?xt=urn:btih:{abs(hash(title))}"),
        seeders=seeders,
        size_bytes=int(size_gb * GB),
        indexer=indexer,
        **kwargs,
    )


AIRED = [date(2008, 1, 20), date(2008, 1, 27), date(2008, 2, 10)]
