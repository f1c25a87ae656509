from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from trawler.core.logger import logger
from trawler.models import ContentStatus, Request, TvShowSeason
from trawler.services.release_validator import ReleaseValidator


class RecommendationKind(str, Enum):
    COMPLETE_SERIES = "complete_series"
    MULTI_SEASON_PACK = "multi_season_pack"
    SEASON_PACK = "season_pack"
    INDIVIDUAL_EPISODES = "individual_episodes"


@dataclass
class SeasonGap:
    season_number: int
    total_episodes: int
    completed_episodes: List[int] = field(default_factory=list)
    missing_episodes: List[int] = field(default_factory=list)
    is_fully_aired: bool = False

    @property
    def is_fully_downloaded(self) -> bool:
        return self.total_episodes > 0 and len(self.completed_episodes) >= self.total_episodes


@dataclass
class DownloadRecommendation:
    kind: RecommendationKind
    seasons: List[int]
    priority: int
    reason: str
    episodes: List[int] = field(default_factory=list)


@dataclass
class GapAnalysis:
    request_id: str
    show_title: str
    total_seasons: int
    missing_seasons: List[int] = field(default_factory=list)
    incomplete_seasons: List[SeasonGap] = field(default_factory=list)
    complete_seasons: List[int] = field(default_factory=list)
    upcoming_seasons: List[int] = field(default_factory=list)
    recommendations: List[DownloadRecommendation] = field(default_factory=list)

    @property
    def needs_more_content(self) -> bool:
        return bool(self.missing_seasons or self.incomplete_seasons)

    @property
    def next_target(self) -> Optional[DownloadRecommendation]:
        return self.recommendations[0] if self.recommendations else None

    def missing_episodes_for(self, season_number: int) -> List[int]:
        for gap in self.incomplete_seasons:
            if gap.season_number == season_number:
                return gap.missing_episodes
        return []


def consecutive_groups(numbers: List[int]) -> List[List[int]]:
    groups: List[List[int]] = []
    for number in sorted(set(numbers)):
        if groups and number == groups[-1][-1] + 1:
            groups[-1].append(number)
        else:
            groups.append([number])
    return groups


def build_recommendations(
    missing_seasons: List[int], incomplete_seasons: List[SeasonGap]
) -> List[DownloadRecommendation]:
    recommendations: List[DownloadRecommendation] = []
    grouped: set = set()

    for group in consecutive_groups(missing_seasons):
        if len(group) < 2:
            continue
        grouped.update(group)
        recommendations.append(
            DownloadRecommendation(
                RecommendationKind.MULTI_SEASON_PACK,
                group,
                90 + 5 * len(group),
                f"Seasons {group[0]}-{group[-1]} are missing",
            )
        )

    if len(missing_seasons) >= 3:
        recommendations.append(
            DownloadRecommendation(
                RecommendationKind.COMPLETE_SERIES,
                sorted(missing_seasons),
                100,
                f"{len(missing_seasons)} seasons are missing",
            )
        )

    for season in sorted(missing_seasons):
        if season in grouped:
            continue
        recommendations.append(
            DownloadRecommendation(
                RecommendationKind.SEASON_PACK,
                [season],
                70,
                f"Season {season} is missing",
            )
        )

    for gap in incomplete_seasons:
        missing = gap.missing_episodes
        if len(missing) <= 3:
            recommendations.append(
                DownloadRecommendation(
                    RecommendationKind.INDIVIDUAL_EPISODES,
                    [gap.season_number],
                    50 - len(missing),
                    f"Season {gap.season_number} is missing {len(missing)} episode(s)",
                    episodes=list(missing),
                )
            )
        else:
            recommendations.append(
                DownloadRecommendation(
                    RecommendationKind.SEASON_PACK,
                    [gap.season_number],
                    65,
                    f"Season {gap.season_number} is missing {len(missing)} episodes, re-download the pack",
                )
            )

    # stable: equal priorities keep the order they were produced in
    return sorted(recommendations, key=lambda r: r.priority, reverse=True)


class GapAnalyzer:
    def __init__(self, release_validator: ReleaseValidator):
        self.release_validator = release_validator

    async def analyze_season(self, request: Request, season: TvShowSeason) -> SeasonGap:
        total = season.expected_episodes
        completed = sorted(
            e.episode_number for e in season.episodes if e.status == ContentStatus.COMPLETED
        )
        completed_set = set(completed)

        missing = []
        for number in range(1, total + 1):
            if number in completed_set:
                continue
            if await self.release_validator.is_episode_released(
                request.tmdb_id, season.season_number, number
            ):
                missing.append(number)

        return SeasonGap(
            season_number=season.season_number,
            total_episodes=total,
            completed_episodes=completed,
            missing_episodes=missing,
            is_fully_aired=await self.release_validator.is_season_aired(
                request.tmdb_id, season.season_number
            ),
        )

    async def analyze(self, request: Request, seasons: List[TvShowSeason]) -> GapAnalysis:
        analysis = GapAnalysis(
            request_id=request.id,
            show_title=request.title,
            total_seasons=request.total_seasons or len(seasons),
        )

        for season in sorted(seasons, key=lambda s: s.season_number):
            gap = await self.analyze_season(request, season)

            if gap.is_fully_downloaded:
                analysis.complete_seasons.append(gap.season_number)
            elif not gap.missing_episodes:
                analysis.upcoming_seasons.append(gap.season_number)
            elif not gap.completed_episodes:
                analysis.missing_seasons.append(gap.season_number)
            else:
                analysis.incomplete_seasons.append(gap)

        analysis.recommendations = build_recommendations(
            analysis.missing_seasons, analysis.incomplete_seasons
        )

        logger.debug(
            f"Gap analysis for {request.title}: missing={analysis.missing_seasons}, "
            f"incomplete={[g.season_number for g in analysis.incomplete_seasons]}, "
            f"complete={analysis.complete_seasons}, upcoming={analysis.upcoming_seasons}"
        )

        return analysis
