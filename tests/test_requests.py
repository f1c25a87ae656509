from datetime import timedelta

import pytest

from trawler.core.exceptions import DuplicateRequestError
from trawler.core.models import settings
from trawler.models import ContentType, RequestStatus
from trawler.services.requests import (FIRST_SEARCH_DELAY, build_request,
                                       create_request)
from trawler.storage.memory import MemoryStore


def test_whole_show_request_is_ongoing(clock):
    request = build_request(ContentType.TV_SHOW, " Severance ", tmdb_id=95396, now=clock.now)

    assert request.title == "Severance"
    assert request.is_ongoing
    assert request.max_search_attempts == settings.ONGOING_MAX_SEARCH_ATTEMPTS
    assert request.expires_at == clock.now + timedelta(days=settings.ONGOING_REQUEST_TTL_DAYS)
    assert request.max_size_gb == settings.DEFAULT_TV_MAX_SIZE_GB
    assert request.next_search_at == clock.now + FIRST_SEARCH_DELAY


def test_specific_season_and_movies_are_one_shot(clock):
    season = build_request(ContentType.TV_SHOW, "Severance", season=2, now=clock.now)
    movie = build_request(ContentType.MOVIE, "Dune", year=2021, is_ongoing=True, now=clock.now)

    assert not season.is_ongoing
    assert season.max_search_attempts == settings.DEFAULT_MAX_SEARCH_ATTEMPTS
    assert not movie.is_ongoing
    assert movie.expires_at == clock.now + timedelta(days=settings.REQUEST_TTL_DAYS)
    assert movie.preferred_qualities == settings.DEFAULT_PREFERRED_QUALITIES


def test_games_have_no_video_preferences(clock):
    game = build_request(ContentType.GAME, "Hades", platform="pc", now=clock.now)

    assert game.preferred_qualities == []
    assert game.preferred_formats == []
    assert game.max_size_gb == settings.DEFAULT_MAX_SIZE_GB


def test_explicit_values_win(clock):
    request = build_request(
        ContentType.MOVIE,
        "Dune",
        preferred_qualities=[],
        min_seeders=0,
        max_size_gb=50,
        blacklisted_words=["cam"],
        priority=9,
        now=clock.now,
    )

    assert request.preferred_qualities == []
    assert request.min_seeders == 0
    assert request.max_size_gb == 50
    assert request.blacklisted_words == ["cam"]
    assert request.priority == 9


@pytest.mark.asyncio
async def test_duplicate_active_request_is_refused(clock):
    store = MemoryStore()
    first = await create_request(store, ContentType.MOVIE, "Dune", year=2021, now=clock.now)

    with pytest.raises(DuplicateRequestError) as error:
        await create_request(store, ContentType.MOVIE, "dune", year=2021, now=clock.now)
    assert error.value.existing_id == first.id

    other_year = await create_request(store, ContentType.MOVIE, "Dune", year=1984, now=clock.now)
    assert other_year.id != first.id


@pytest.mark.asyncio
async def test_finished_request_can_be_requested_again(clock):
    store = MemoryStore()
    first = await create_request(store, ContentType.TV_SHOW, "Severance", season=1, now=clock.now)
    first.status = RequestStatus.COMPLETED
    await store.save_request(first)

    again = await create_request(store, ContentType.TV_SHOW, "Severance", season=1, now=clock.now)
    other_season = await create_request(
        store, ContentType.TV_SHOW, "Severance", season=2, now=clock.now
    )

    assert again.id != first.id
    assert other_season.season == 2
