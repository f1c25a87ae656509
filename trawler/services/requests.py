from datetime import datetime, timedelta
from typing import List, Optional

from trawler.core.exceptions import DuplicateRequestError
from trawler.core.logger import logger
from trawler.core.models import settings
from trawler.models import ContentType, Request
from trawler.storage.base import RequestStore
from trawler.utils.clock import utcnow

FIRST_SEARCH_DELAY = timedelta(minutes=1)


def build_request(
    content_type: ContentType,
    title: str,
    year: Optional[int] = None,
    imdb_id: Optional[str] = None,
    tmdb_id: Optional[int] = None,
    platform: Optional[str] = None,
    season: Optional[int] = None,
    episode: Optional[int] = None,
    is_ongoing: Optional[bool] = None,
    priority: int = 5,
    preferred_qualities: Optional[List[str]] = None,
    preferred_formats: Optional[List[str]] = None,
    min_seeders: Optional[int] = None,
    max_size_gb: Optional[float] = None,
    blacklisted_words: Optional[List[str]] = None,
    trusted_indexers: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> Request:
    now = now or utcnow()
    if is_ongoing is None:
        # A request for a whole show keeps following it for new episodes
        is_ongoing = season is None
    is_ongoing = bool(is_ongoing) and content_type == ContentType.TV_SHOW

    ttl_days = settings.ONGOING_REQUEST_TTL_DAYS if is_ongoing else settings.REQUEST_TTL_DAYS
    is_video = content_type != ContentType.GAME
    if max_size_gb is None:
        max_size_gb = (
            settings.DEFAULT_TV_MAX_SIZE_GB
            if content_type == ContentType.TV_SHOW
            else settings.DEFAULT_MAX_SIZE_GB
        )

    return Request(
        content_type=content_type,
        title=title.strip(),
        year=year,
        imdb_id=imdb_id,
        tmdb_id=tmdb_id,
        platform=platform,
        season=season,
        episode=episode,
        is_ongoing=is_ongoing,
        priority=priority,
        search_interval_minutes=settings.DEFAULT_SEARCH_INTERVAL_MINUTES,
        max_search_attempts=settings.ONGOING_MAX_SEARCH_ATTEMPTS
        if is_ongoing
        else settings.DEFAULT_MAX_SEARCH_ATTEMPTS,
        next_search_at=now + FIRST_SEARCH_DELAY,
        expires_at=now + timedelta(days=ttl_days),
        preferred_qualities=preferred_qualities
        if preferred_qualities is not None
        else list(settings.DEFAULT_PREFERRED_QUALITIES) if is_video else [],
        preferred_formats=preferred_formats
        if preferred_formats is not None
        else list(settings.DEFAULT_PREFERRED_FORMATS) if is_video else [],
        min_seeders=min_seeders if min_seeders is not None else settings.DEFAULT_MIN_SEEDERS,
        max_size_gb=max_size_gb,
        blacklisted_words=blacklisted_words or [],
        trusted_indexers=trusted_indexers or [],
        created_at=now,
        updated_at=now,
    )


async def create_request(store: RequestStore, content_type: ContentType, title: str, **kwargs):
    request = build_request(content_type, title, **kwargs)

    duplicate = await store.find_active_duplicate(request)
    if duplicate is not None:
        raise DuplicateRequestError(duplicate.id, request.display_name)

    await store.save_request(request)
    logger.log(
        "TRAWLER",
        f"New {content_type.value} request {request.id}: {request.display_name} (expires {request.expires_at:%Y-%m-%d})",
    )
    return request
