from typing import Dict, Iterable, List, Optional

from trawler.models import (ContentStatus, ContentType, DownloadJob, Request,
                            RequestStatus, TorrentSearchResult, TvShowEpisode,
                            TvShowSeason)
from trawler.storage.base import RequestStore


class MemoryStore(RequestStore):
    def __init__(self):
        self.requests: Dict[str, Request] = {}
        self.seasons: Dict[str, TvShowSeason] = {}
        self.episodes: Dict[str, TvShowEpisode] = {}
        self.search_results: Dict[str, List[TorrentSearchResult]] = {}
        self.download_jobs: Dict[str, DownloadJob] = {}

    async def get_request(self, request_id: str) -> Optional[Request]:
        request = self.requests.get(request_id)
        return request.model_copy(deep=True) if request else None

    async def save_request(self, request: Request):
        self.requests[request.id] = request.model_copy(deep=True)

    async def delete_request(self, request_id: str):
        self.requests.pop(request_id, None)
        self.search_results.pop(request_id, None)
        for store in (self.seasons, self.episodes, self.download_jobs):
            for key in [k for k, v in store.items() if v.request_id == request_id]:
                del store[key]

    async def list_requests(
        self,
        statuses: Optional[Iterable[RequestStatus]] = None,
        content_type: Optional[ContentType] = None,
    ) -> List[Request]:
        statuses = set(statuses) if statuses is not None else None
        requests = [
            request.model_copy(deep=True)
            for request in self.requests.values()
            if (statuses is None or request.status in statuses)
            and (content_type is None or request.content_type == content_type)
        ]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        requests.sort(key=lambda r: r.priority, reverse=True)
        return requests

    async def get_seasons(self, request_id: str) -> List[TvShowSeason]:
        seasons = []
        for season in self.seasons.values():
            if season.request_id != request_id:
                continue
            episodes = sorted(
                (
                    e.model_copy()
                    for e in self.episodes.values()
                    if e.season_id == season.id
                ),
                key=lambda e: e.episode_number,
            )
            seasons.append(season.model_copy(update={"episodes": episodes}))
        return sorted(seasons, key=lambda s: s.season_number)

    async def save_season(self, season: TvShowSeason):
        self.seasons[season.id] = season.model_copy(update={"episodes": []})

    async def save_episode(self, episode: TvShowEpisode):
        self.episodes[episode.id] = episode.model_copy()

    async def update_season_status(self, season_id: str, status: ContentStatus):
        if season_id in self.seasons:
            self.seasons[season_id].status = status

    async def update_episode_status(self, episode_id: str, status: ContentStatus):
        if episode_id in self.episodes:
            self.episodes[episode_id].status = status

    async def replace_search_results(
        self, request_id: str, results: List[TorrentSearchResult]
    ):
        self.search_results[request_id] = [r.model_copy(deep=True) for r in results]

    async def get_search_results(self, request_id: str) -> List[TorrentSearchResult]:
        results = [r.model_copy(deep=True) for r in self.search_results.get(request_id, [])]
        return sorted(results, key=lambda r: (r.score, r.candidate.seeders), reverse=True)

    async def select_search_result(
        self, request_id: str, result_id: str, auto_selected: bool = False
    ) -> Optional[TorrentSearchResult]:
        results = self.search_results.get(request_id, [])
        if not any(r.id == result_id for r in results):
            return None

        selected = None
        for result in results:
            result.is_selected = result.id == result_id
            result.auto_selected = result.is_selected and auto_selected
            if result.is_selected:
                selected = result.model_copy(deep=True)
        return selected

    async def save_download_job(self, job: DownloadJob):
        self.download_jobs[job.id] = job.model_copy(deep=True)

    async def get_download_job(self, job_id: str) -> Optional[DownloadJob]:
        job = self.download_jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_download_jobs(self, request_id: str) -> List[DownloadJob]:
        jobs = [
            job.model_copy(deep=True)
            for job in self.download_jobs.values()
            if job.request_id == request_id
        ]
        return sorted(jobs, key=lambda j: j.created_at)
