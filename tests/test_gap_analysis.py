from datetime import date, timedelta

import pytest

from trawler.models import (ContentStatus, ContentType, Request, TvShowEpisode,
                            TvShowSeason)
from trawler.services.gap_analysis import (GapAnalyzer, RecommendationKind,
                                           SeasonGap, build_recommendations,
                                           consecutive_groups)
from trawler.services.release_validator import ReleaseValidator
from tests.fakes import AIRED

C = ContentStatus


def _season(number, completed=(), total=3):
    season = TvShowSeason(request_id="req", season_number=number, total_episodes=total)
    season.episodes = [
        TvShowEpisode(
            season_id=season.id,
            request_id="req",
            episode_number=index,
            status=C.COMPLETED if index in completed else C.PENDING,
        )
        for index in range(1, total + 1)
    ]
    return season


def _request(tmdb_id=1396):
    return Request(
        id="req", content_type=ContentType.TV_SHOW, title="Breaking Bad", tmdb_id=tmdb_id
    )


def test_consecutive_groups():
    assert consecutive_groups([5, 1, 2, 3, 7, 8]) == [[1, 2, 3], [5], [7, 8]]
    assert consecutive_groups([]) == []


def test_recommendations_for_many_missing_seasons():
    recommendations = build_recommendations([1, 2, 3, 5], [])

    assert [(r.kind, r.seasons, r.priority) for r in recommendations] == [
        (RecommendationKind.MULTI_SEASON_PACK, [1, 2, 3], 105),
        (RecommendationKind.COMPLETE_SERIES, [1, 2, 3, 5], 100),
        (RecommendationKind.SEASON_PACK, [5], 70),
    ]


def test_recommendations_for_incomplete_seasons():
    few = SeasonGap(4, 10, list(range(1, 9)), [9, 10])
    many = SeasonGap(5, 10, [1], list(range(2, 11)))

    recommendations = build_recommendations([], [few, many])

    assert [(r.kind, r.seasons, r.priority) for r in recommendations] == [
        (RecommendationKind.SEASON_PACK, [5], 65),
        (RecommendationKind.INDIVIDUAL_EPISODES, [4], 48),
    ]
    assert recommendations[1].episodes == [9, 10]


def test_single_missing_season_is_a_season_pack():
    recommendations = build_recommendations([2], [])

    assert [(r.kind, r.priority) for r in recommendations] == [
        (RecommendationKind.SEASON_PACK, 70)
    ]


@pytest.mark.asyncio
async def test_analysis_categorizes_seasons(catalog, clock):
    catalog.add_season(1396, "Breaking Bad", 1, AIRED)
    catalog.add_season(1396, "Breaking Bad", 2, AIRED)
    catalog.add_season(1396, "Breaking Bad", 3, AIRED)
    future = clock.now.date() + timedelta(days=30)
    catalog.add_season(1396, "Breaking Bad", 4, [future, future, future])

    analyzer = GapAnalyzer(ReleaseValidator(catalog, clock=clock))
    seasons = [
        _season(1, completed=(1, 2, 3)),
        _season(2, completed=(1,)),
        _season(3),
        _season(4),
    ]

    analysis = await analyzer.analyze(_request(), seasons)

    assert analysis.complete_seasons == [1]
    assert [g.season_number for g in analysis.incomplete_seasons] == [2]
    assert analysis.missing_episodes_for(2) == [2, 3]
    assert analysis.missing_seasons == [3]
    assert analysis.upcoming_seasons == [4]
    assert analysis.needs_more_content
    assert analysis.next_target.kind == RecommendationKind.SEASON_PACK
    assert analysis.next_target.seasons == [3]
    assert analysis.total_seasons == 4


@pytest.mark.asyncio
async def test_partially_aired_season_only_counts_released_episodes(catalog, clock):
    today = clock.now.date()
    catalog.add_season(
        1396, "Breaking Bad", 1, [date(2026, 1, 1), today, today + timedelta(days=7)]
    )
    analyzer = GapAnalyzer(ReleaseValidator(catalog, clock=clock))

    gap = await analyzer.analyze_season(_request(), _season(1))

    # the second episode aired today but is still inside the release buffer
    assert gap.missing_episodes == [1]
    assert not gap.is_fully_aired
    assert not gap.is_fully_downloaded


@pytest.mark.asyncio
async def test_caught_up_show_needs_nothing(catalog, clock):
    catalog.add_season(1396, "Breaking Bad", 1, AIRED)
    analyzer = GapAnalyzer(ReleaseValidator(catalog, clock=clock))

    analysis = await analyzer.analyze(_request(), [_season(1, completed=(1, 2, 3))])

    assert not analysis.needs_more_content
    assert analysis.next_target is None


@pytest.mark.asyncio
async def test_catalog_outage_means_nothing_is_released(catalog, clock):
    catalog.error = "timeout"
    analyzer = GapAnalyzer(ReleaseValidator(catalog, clock=clock))

    analysis = await analyzer.analyze(_request(), [_season(1)])

    assert analysis.missing_seasons == []
    assert analysis.upcoming_seasons == [1]
    assert not analysis.needs_more_content


@pytest.mark.asyncio
async def test_without_catalog_id_everything_counts_as_released(catalog, clock):
    analyzer = GapAnalyzer(ReleaseValidator(catalog, clock=clock))

    analysis = await analyzer.analyze(_request(tmdb_id=None), [_season(1, completed=(2,))])

    assert analysis.missing_episodes_for(1) == [1, 3]
    assert catalog.episode_calls == 0
