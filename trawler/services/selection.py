from dataclasses import dataclass, field
from typing import List, Optional

from trawler.models import Candidate
from trawler.services.gap_analysis import GapAnalysis
from trawler.services.ranking import RankedCandidate
from trawler.services.title_classifier import (MIN_CONFIDENCE, MatchKind,
                                               TitleMatch, classify_title)

NO_SEASON = 999


@dataclass
class SelectedMatch:
    candidate: Candidate
    match: TitleMatch
    priority: int
    seasons: List[int] = field(default_factory=list)
    episodes: List[int] = field(default_factory=list)
    reason: str = ""

    @property
    def kind(self) -> MatchKind:
        return self.match.kind

    @property
    def earliest_season(self) -> int:
        return min(self.seasons) if self.seasons else NO_SEASON

    @property
    def earliest_episode(self) -> int:
        return min(self.episodes) if self.episodes else 0


def season_bonus(season: int, missing_seasons: List[int]) -> int:
    """Earlier gaps first: 50 for the first missing season, 10 less per step."""
    ordered = sorted(missing_seasons)
    if season not in ordered:
        return 0
    return max(0, 50 - 10 * ordered.index(season))


def episode_bonus(episode: int, missing_episodes: List[int]) -> int:
    ordered = sorted(missing_episodes)
    if episode not in ordered:
        return 0
    return max(0, 20 - 2 * ordered.index(episode))


def score_match(
    candidate: Candidate, match: TitleMatch, gap: GapAnalysis
) -> Optional[SelectedMatch]:
    missing = sorted(gap.missing_seasons)

    if match.kind == MatchKind.COMPLETE_SERIES:
        if not missing:
            return None
        earliest = missing[0]
        bonus = 20 if earliest == 1 else max(0, 20 - (earliest - 1) * 5)
        return SelectedMatch(
            candidate,
            match,
            100 + bonus,
            seasons=missing,
            reason=f"Complete series covering missing seasons {missing}",
        )

    if match.kind == MatchKind.MULTI_SEASON:
        covered = sorted(set(match.seasons) & set(missing))
        if len(covered) > 1:
            return SelectedMatch(
                candidate,
                match,
                80 + 5 * len(covered) + season_bonus(covered[0], missing),
                seasons=covered,
                reason=f"Multi-season pack covering missing seasons {covered}",
            )
        if len(covered) == 1:
            return SelectedMatch(
                candidate,
                match,
                65 + season_bonus(covered[0], missing),
                seasons=covered,
                reason=f"Multi-season pack covering missing season {covered[0]}",
            )
        return None

    if match.kind == MatchKind.SEASON_PACK:
        if match.season not in missing:
            return None
        return SelectedMatch(
            candidate,
            match,
            60 + season_bonus(match.season, missing),
            seasons=[match.season],
            reason=f"Season pack for missing season {match.season}",
        )

    if match.kind == MatchKind.INDIVIDUAL_EPISODE:
        if match.season in missing:
            return SelectedMatch(
                candidate,
                match,
                30 + season_bonus(match.season, missing),
                seasons=[match.season],
                episodes=[match.episode],
                reason=f"Episode S{match.season:02d}E{match.episode:02d} of missing season",
            )

        missing_episodes = gap.missing_episodes_for(match.season)
        if match.episode in missing_episodes:
            return SelectedMatch(
                candidate,
                match,
                30 + episode_bonus(match.episode, missing_episodes),
                seasons=[match.season],
                episodes=[match.episode],
                reason=f"Missing episode S{match.season:02d}E{match.episode:02d}",
            )

    return None


def rank_matches(
    candidates: List[RankedCandidate], gap: GapAnalysis, show_title: str
) -> List[SelectedMatch]:
    """Classify every candidate and keep those that fill a gap, best first."""
    matches = []
    for ranked in candidates:
        match = classify_title(ranked.candidate.title, show_title)
        if match.confidence < MIN_CONFIDENCE:
            continue

        selected = score_match(ranked.candidate, match, gap)
        if selected is not None:
            matches.append(selected)

    return sorted(
        matches,
        key=lambda m: (
            -m.priority,
            m.earliest_season,
            m.earliest_episode,
            -m.candidate.seeders,
        ),
    )


def select_best_match(
    candidates: List[RankedCandidate], gap: GapAnalysis, show_title: str
) -> Optional[SelectedMatch]:
    matches = rank_matches(candidates, gap, show_title)
    return matches[0] if matches else None
