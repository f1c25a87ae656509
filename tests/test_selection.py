from trawler.services.gap_analysis import GapAnalysis, SeasonGap
from trawler.services.ranking import RankedCandidate
from trawler.services.selection import (episode_bonus, rank_matches,
                                        season_bonus, select_best_match)
from trawler.services.title_classifier import MatchKind
from tests.fakes import candidate


def _gap(missing=(), incomplete=()):
    return GapAnalysis(
        request_id="req",
        show_title="Breaking Bad",
        total_seasons=5,
        missing_seasons=list(missing),
        incomplete_seasons=list(incomplete),
    )


def _ranked(*titles, seeders=50):
    return [RankedCandidate(candidate(title, seeders=seeders), 100) for title in titles]


def test_bonuses_favour_earliest_gaps():
    assert season_bonus(2, [4, 2, 3]) == 50
    assert season_bonus(3, [4, 2, 3]) == 40
    assert season_bonus(9, [2, 3, 4, 5, 6, 7, 8, 9]) == 0
    assert season_bonus(1, [2, 3]) == 0
    assert episode_bonus(5, [5, 7]) == 20
    assert episode_bonus(7, [5, 7]) == 18


def test_complete_series_beats_a_season_pack():
    match = select_best_match(
        _ranked(
            "Breaking Bad Complete Series 1080p",
            "Breaking Bad S01 1080p",
        ),
        _gap(missing=[1, 2, 3]),
        "Breaking Bad",
    )

    assert match.kind == MatchKind.COMPLETE_SERIES
    assert match.priority == 120
    assert match.seasons == [1, 2, 3]


def test_complete_series_bonus_shrinks_for_later_gaps():
    match = select_best_match(
        _ranked("Breaking Bad Complete Series"), _gap(missing=[3, 4]), "Breaking Bad"
    )

    assert match.priority == 110


def test_multi_season_only_counts_missing_seasons():
    matches = rank_matches(
        _ranked("Breaking Bad S01-S03 1080p", "Breaking Bad S03-S04 1080p"),
        _gap(missing=[2, 3]),
        "Breaking Bad",
    )

    assert [m.seasons for m in matches] == [[2, 3], [3]]
    assert matches[0].priority == 80 + 10 + 50
    assert matches[1].priority == 65 + 40


def test_season_pack_for_non_missing_season_is_ignored():
    assert (
        select_best_match(_ranked("Breaking Bad S04 1080p"), _gap(missing=[2]), "Breaking Bad")
        is None
    )


def test_episode_of_incomplete_season():
    gap = _gap(
        incomplete=[
            SeasonGap(
                season_number=5,
                total_episodes=16,
                completed_episodes=list(range(1, 14)),
                missing_episodes=[14, 15, 16],
            )
        ]
    )

    matches = rank_matches(
        _ranked(
            "Breaking Bad S05E16 1080p",
            "Breaking Bad S05E14 1080p",
            "Breaking Bad S05E02 1080p",
        ),
        gap,
        "Breaking Bad",
    )

    assert [m.episodes for m in matches] == [[14], [16]]
    assert matches[0].priority == 50
    assert matches[1].priority == 46


def test_ties_break_on_season_episode_then_seeders():
    gap = _gap(missing=[1, 2])
    low = RankedCandidate(candidate("Breaking Bad S01 720p", seeders=5), 10)
    high = RankedCandidate(candidate("Breaking Bad Season 1 1080p", seeders=500), 10)

    matches = rank_matches([low, high], gap, "Breaking Bad")

    # both are season packs for season 1 with the same priority
    assert [m.priority for m in matches] == [110, 110]
    assert matches[0].candidate.seeders == 500


def test_low_confidence_and_other_shows_are_skipped():
    gap = _gap(missing=[1])

    assert select_best_match(_ranked("Better Call Saul S01"), gap, "Breaking Bad") is None
    assert select_best_match(_ranked("Breaking Bad 1080p"), gap, "Breaking Bad") is None
    assert select_best_match([], gap, "Breaking Bad") is None
