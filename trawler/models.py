import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from trawler.utils.clock import utcnow


def new_id() -> str:
    return uuid.uuid4().hex


class ContentType(str, Enum):
    MOVIE = "movie"
    TV_SHOW = "tv_show"
    GAME = "game"


class RequestStatus(str, Enum):
    PENDING = "pending"
    SEARCHING = "searching"
    FOUND = "found"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.COMPLETED, RequestStatus.CANCELLED, RequestStatus.EXPIRED}
)


class ContentStatus(str, Enum):
    """Status of a single season or episode of a show."""

    PENDING = "pending"
    SEARCHING = "searching"
    FOUND = "found"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Candidate(BaseModel):
    title: str
    link: Optional[str] = None
    magnet_uri: Optional[str] = None
    info_hash: Optional[str] = None
    size: Optional[str] = None
    size_bytes: Optional[int] = None
    seeders: int = 0
    leechers: int = 0
    category: Optional[str] = None
    indexer: Optional[str] = None
    publish_date: Optional[str] = None
    # set by indexers that tag releases themselves; title markers otherwise
    quality: Optional[str] = None
    format: Optional[str] = None

    @property
    def locator(self) -> Optional[str]:
        return self.magnet_uri or self.link


class Request(BaseModel):
    id: str = Field(default_factory=new_id)
    content_type: ContentType
    title: str
    year: Optional[int] = None
    imdb_id: Optional[str] = None
    tmdb_id: Optional[int] = None
    platform: Optional[str] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    is_ongoing: bool = False
    total_seasons: Optional[int] = None
    total_episodes: Optional[int] = None

    status: RequestStatus = RequestStatus.PENDING
    status_reason: Optional[str] = None
    priority: int = 5

    search_interval_minutes: int = 30
    max_search_attempts: int = 50
    search_attempts: int = 0
    last_search_at: Optional[datetime] = None
    next_search_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    preferred_qualities: List[str] = []
    preferred_formats: List[str] = []
    min_seeders: int = 5
    max_size_gb: Optional[float] = 20.0
    blacklisted_words: List[str] = []
    trusted_indexers: List[str] = []

    found_candidate: Optional[Candidate] = None
    active_job_id: Optional[str] = None
    download_progress: int = 0
    download_speed: Optional[str] = None
    download_eta: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_tv(self) -> bool:
        return self.content_type == ContentType.TV_SHOW

    @property
    def display_name(self) -> str:
        name = self.title
        if self.year:
            name += f" ({self.year})"
        if self.season is not None:
            name += f" S{self.season:02d}"
            if self.episode is not None:
                name += f"E{self.episode:02d}"
        return name


class TvShowEpisode(BaseModel):
    id: str = Field(default_factory=new_id)
    season_id: str
    request_id: str
    episode_number: int
    title: Optional[str] = None
    air_date: Optional[datetime] = None
    status: ContentStatus = ContentStatus.PENDING


class TvShowSeason(BaseModel):
    id: str = Field(default_factory=new_id)
    request_id: str
    season_number: int
    total_episodes: Optional[int] = None
    status: ContentStatus = ContentStatus.PENDING
    episodes: List[TvShowEpisode] = []

    @property
    def expected_episodes(self) -> int:
        return self.total_episodes or len(self.episodes)


class TorrentSearchResult(BaseModel):
    id: str = Field(default_factory=new_id)
    request_id: str
    candidate: Candidate
    score: float = 0.0
    is_selected: bool = False
    auto_selected: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class EpisodeRef(BaseModel):
    season: int
    episode: int


class Coverage(BaseModel):
    """Which seasons/episodes a download is expected to deliver."""

    kind: Optional[str] = None
    seasons: List[int] = []
    episodes: List[EpisodeRef] = []


class DownloadJob(BaseModel):
    id: str = Field(default_factory=new_id)
    request_id: str
    engine_job_id: str
    locator: str
    title: Optional[str] = None
    coverage: Coverage = Field(default_factory=Coverage)
    status: JobStatus = JobStatus.ACTIVE
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
