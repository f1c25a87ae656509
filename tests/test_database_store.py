from datetime import timedelta

import pytest
import pytest_asyncio
from databases import Database

from trawler.core import database as database_module
from trawler.core.database import setup_database
from trawler.core.models import settings
from trawler.models import (ContentStatus, ContentType, Coverage, DownloadJob,
                            EpisodeRef, Request, RequestStatus,
                            TorrentSearchResult, TvShowEpisode, TvShowSeason)
from trawler.storage.sqlite import DatabaseStore
from tests.fakes import candidate


@pytest_asyncio.fixture
async def store(tmp_path, monkeypatch):
    path = str(tmp_path / "trawler.db")
    database = Database(f"sqlite:///{path}")
    monkeypatch.setattr(settings, "DATABASE_TYPE", "sqlite")
    monkeypatch.setattr(settings, "DATABASE_PATH", path)
    monkeypatch.setattr(database_module, "database", database)

    await setup_database()
    yield DatabaseStore(database)
    await database.disconnect()


def _request(clock, **kwargs):
    kwargs.setdefault("content_type", ContentType.TV_SHOW)
    kwargs.setdefault("title", "Severance")
    kwargs.setdefault("next_search_at", clock.now)
    return Request(
        tmdb_id=95396,
        is_ongoing=True,
        preferred_qualities=["1080p"],
        expires_at=clock.now + timedelta(days=365),
        created_at=clock.now,
        updated_at=clock.now,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_request_round_trip(store, clock):
    request = _request(clock, found_candidate=candidate("Severance S01 1080p"))
    await store.save_request(request)

    loaded = await store.get_request(request.id)

    assert loaded.content_type == ContentType.TV_SHOW
    assert loaded.is_ongoing is True
    assert loaded.preferred_qualities == ["1080p"]
    assert loaded.next_search_at == clock.now
    assert loaded.found_candidate.title == "Severance S01 1080p"
    assert loaded.last_search_at is None

    loaded.status = RequestStatus.SEARCHING
    loaded.search_attempts = 1
    await store.save_request(loaded)

    assert (await store.get_request(request.id)).search_attempts == 1
    assert await store.get_request("missing") is None


@pytest.mark.asyncio
async def test_due_and_filtered_listings(store, clock):
    due = _request(clock, priority=9)
    later = _request(clock, title="Later", next_search_at=clock.now + timedelta(hours=1))
    movie = _request(clock, content_type=ContentType.MOVIE, title="Dune")
    for request in (due, later, movie):
        await store.save_request(request)

    assert [r.id for r in await store.list_due_for_search(clock.now)] == [due.id, movie.id]
    shows = await store.list_requests(content_type=ContentType.TV_SHOW)
    assert {r.id for r in shows} == {due.id, later.id}
    assert await store.list_requests(statuses=[]) == []


@pytest.mark.asyncio
async def test_seasons_with_episodes(store, clock):
    request = _request(clock)
    await store.save_request(request)
    season = TvShowSeason(request_id=request.id, season_number=1, total_episodes=2)
    await store.save_season(season)
    for number in (2, 1):
        await store.save_episode(
            TvShowEpisode(
                season_id=season.id,
                request_id=request.id,
                episode_number=number,
                air_date=clock.now,
            )
        )

    seasons = await store.get_seasons(request.id)
    first = seasons[0].episodes[0]
    await store.update_episode_status(first.id, ContentStatus.COMPLETED)
    await store.update_season_status(season.id, ContentStatus.DOWNLOADING)

    seasons = await store.get_seasons(request.id)
    assert [e.episode_number for e in seasons[0].episodes] == [1, 2]
    assert seasons[0].episodes[0].status == ContentStatus.COMPLETED
    assert seasons[0].episodes[0].air_date == clock.now
    assert seasons[0].status == ContentStatus.DOWNLOADING


@pytest.mark.asyncio
async def test_search_results_and_jobs(store, clock):
    request = _request(clock)
    await store.save_request(request)
    low = TorrentSearchResult(request_id=request.id, candidate=candidate("A"), score=10)
    high = TorrentSearchResult(request_id=request.id, candidate=candidate("B"), score=20)
    await store.replace_search_results(request.id, [low, high])

    await store.select_search_result(request.id, high.id, auto_selected=True)
    selected = await store.select_search_result(request.id, low.id)

    assert [r.id for r in await store.get_search_results(request.id)] == [high.id, low.id]
    assert selected.is_selected and not selected.auto_selected
    assert (await store.get_selected_result(request.id)).id == low.id

    job = DownloadJob(
        request_id=request.id,
        engine_job_id="gid1",
        locator="magnet:?xt=urn:btih:abc",
        coverage=Coverage(kind="individual_episode", seasons=[1], episodes=[EpisodeRef(season=1, episode=3)]),
        created_at=clock.now,
    )
    await store.save_download_job(job)

    loaded = await store.get_download_job(job.id)
    assert loaded.coverage.episodes[0].episode == 3

    await store.delete_request(request.id)
    assert await store.get_request(request.id) is None
    assert await store.list_download_jobs(request.id) == []
    assert await store.get_search_results(request.id) == []
