from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional

from trawler.models import (ContentStatus, ContentType, DownloadJob, Request,
                            RequestStatus, TERMINAL_STATUSES,
                            TorrentSearchResult, TvShowEpisode, TvShowSeason)

SEARCHABLE_STATUSES = (RequestStatus.PENDING, RequestStatus.FAILED)
EXPIRABLE_STATUSES = (
    RequestStatus.PENDING,
    RequestStatus.SEARCHING,
    RequestStatus.FOUND,
    RequestStatus.FAILED,
)


def _due(value: Optional[datetime], now: datetime) -> bool:
    return value is None or value <= now


def _alive(value: Optional[datetime], now: datetime) -> bool:
    return value is None or value > now


class RequestStore(ABC):
    """
    Persistence for requests, show seasons/episodes, search results and
    download jobs.

    Readers always get fresh copies; mutate and pass them back to save.
    """

    # requests

    @abstractmethod
    async def get_request(self, request_id: str) -> Optional[Request]:
        pass

    @abstractmethod
    async def save_request(self, request: Request):
        pass

    @abstractmethod
    async def delete_request(self, request_id: str):
        pass

    @abstractmethod
    async def list_requests(
        self,
        statuses: Optional[Iterable[RequestStatus]] = None,
        content_type: Optional[ContentType] = None,
    ) -> List[Request]:
        """Ordered by priority (highest first), then newest first."""

    async def list_due_for_search(self, now: datetime) -> List[Request]:
        requests = [
            request
            for request in await self.list_requests(statuses=SEARCHABLE_STATUSES)
            if _due(request.next_search_at, now)
            and _alive(request.expires_at, now)
            and request.search_attempts < request.max_search_attempts
        ]
        return sorted(
            requests,
            key=lambda r: (-r.priority, r.next_search_at or datetime.min.replace(tzinfo=now.tzinfo)),
        )

    async def list_expired(self, now: datetime) -> List[Request]:
        return [
            request
            for request in await self.list_requests(statuses=EXPIRABLE_STATUSES)
            if request.expires_at is not None and request.expires_at <= now
        ]

    async def find_active_duplicate(self, candidate: Request) -> Optional[Request]:
        for request in await self.list_requests(content_type=candidate.content_type):
            if request.status in TERMINAL_STATUSES or request.id == candidate.id:
                continue
            if request.title.lower() != candidate.title.lower():
                continue

            if candidate.content_type == ContentType.TV_SHOW:
                if (
                    request.season == candidate.season
                    and request.episode == candidate.episode
                    and request.is_ongoing == candidate.is_ongoing
                ):
                    return request
            elif request.year == candidate.year and request.platform == candidate.platform:
                return request
        return None

    # seasons and episodes

    @abstractmethod
    async def get_seasons(self, request_id: str) -> List[TvShowSeason]:
        """Seasons with their episodes, ordered by season then episode number."""

    @abstractmethod
    async def save_season(self, season: TvShowSeason):
        """Upsert the season row only; episodes are saved separately."""

    @abstractmethod
    async def save_episode(self, episode: TvShowEpisode):
        pass

    @abstractmethod
    async def update_season_status(self, season_id: str, status: ContentStatus):
        pass

    @abstractmethod
    async def update_episode_status(self, episode_id: str, status: ContentStatus):
        pass

    # search results

    @abstractmethod
    async def replace_search_results(
        self, request_id: str, results: List[TorrentSearchResult]
    ):
        pass

    @abstractmethod
    async def get_search_results(self, request_id: str) -> List[TorrentSearchResult]:
        """Ordered by score, then seeders, best first."""

    @abstractmethod
    async def select_search_result(
        self, request_id: str, result_id: str, auto_selected: bool = False
    ) -> Optional[TorrentSearchResult]:
        """Mark one result selected and clear every other selection of the request."""

    async def get_selected_result(self, request_id: str) -> Optional[TorrentSearchResult]:
        for result in await self.get_search_results(request_id):
            if result.is_selected:
                return result
        return None

    # download jobs

    @abstractmethod
    async def save_download_job(self, job: DownloadJob):
        pass

    @abstractmethod
    async def get_download_job(self, job_id: str) -> Optional[DownloadJob]:
        pass

    @abstractmethod
    async def list_download_jobs(self, request_id: str) -> List[DownloadJob]:
        pass
