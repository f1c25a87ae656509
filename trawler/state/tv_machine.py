from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from trawler.models import ContentStatus, TvShowEpisode, TvShowSeason

C = ContentStatus

# Checked in order after the all-completed rule.
SEASON_PRECEDENCE = (C.DOWNLOADING, C.FOUND, C.SEARCHING)


@dataclass
class SeasonUpdate:
    season_id: str
    season_number: int
    status: ContentStatus


@dataclass
class EpisodeUpdate:
    episode_id: str
    season_number: int
    episode_number: int
    status: ContentStatus


@dataclass
class TvShowStateResult:
    show_status: ContentStatus
    season_updates: List[SeasonUpdate] = field(default_factory=list)
    episode_updates: List[EpisodeUpdate] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.season_updates or self.episode_updates)


def _derive(statuses: List[ContentStatus]) -> ContentStatus:
    if not statuses:
        return C.PENDING

    if all(status == C.COMPLETED for status in statuses):
        return C.COMPLETED

    for status in SEASON_PRECEDENCE:
        if status in statuses:
            return status

    if all(status == C.FAILED for status in statuses):
        return C.FAILED

    return C.PENDING


def season_status_from_episodes(episodes: Iterable[TvShowEpisode]) -> ContentStatus:
    return _derive([episode.status for episode in episodes])


def show_status_from_seasons(
    seasons: List[TvShowSeason], is_ongoing: bool
) -> ContentStatus:
    if not seasons:
        return C.PENDING

    if is_ongoing:
        ordered = sorted(seasons, key=lambda s: s.season_number, reverse=True)
        for season in ordered:
            if season.status != C.COMPLETED:
                return season.status
        # Caught up, awaiting new releases.
        return C.PENDING

    return _derive([season.status for season in seasons])


class TvShowStateMachine:
    """
    Derives season and show status bottom-up from episode status.

    Never mutates its input; the caller persists the returned updates.
    """

    def calculate(
        self,
        seasons: List[TvShowSeason],
        is_ongoing: bool,
        episode_updates: Optional[List[EpisodeUpdate]] = None,
    ) -> TvShowStateResult:
        pending = {u.episode_id: u for u in episode_updates or []}
        applied_updates: List[EpisodeUpdate] = []
        season_updates: List[SeasonUpdate] = []
        recomputed: List[TvShowSeason] = []

        for season in seasons:
            episodes = []
            for episode in season.episodes:
                update = pending.get(episode.id)
                if update is not None and update.status != episode.status:
                    applied_updates.append(update)
                    episode = episode.model_copy(update={"status": update.status})
                episodes.append(episode)

            status = season_status_from_episodes(episodes)
            if status != season.status:
                season_updates.append(
                    SeasonUpdate(season.id, season.season_number, status)
                )

            recomputed.append(
                season.model_copy(update={"status": status, "episodes": episodes})
            )

        return TvShowStateResult(
            show_status=show_status_from_seasons(recomputed, is_ongoing),
            season_updates=season_updates,
            episode_updates=applied_updates,
        )

    def mark_season_pack(
        self, seasons: List[TvShowSeason], season_number: int, status: ContentStatus
    ) -> List[EpisodeUpdate]:
        updates = []
        for season in seasons:
            if season.season_number != season_number:
                continue
            for episode in season.episodes:
                updates.append(
                    EpisodeUpdate(
                        episode.id, season_number, episode.episode_number, status
                    )
                )
        return updates

    def mark_episode(
        self,
        seasons: List[TvShowSeason],
        season_number: int,
        episode_number: int,
        status: ContentStatus,
    ) -> List[EpisodeUpdate]:
        for season in seasons:
            if season.season_number != season_number:
                continue
            for episode in season.episodes:
                if episode.episode_number == episode_number:
                    return [
                        EpisodeUpdate(
                            episode.id, season_number, episode_number, status
                        )
                    ]
        return []

    def mark_season_pack_completed(self, seasons, season_number: int):
        return self.mark_season_pack(seasons, season_number, C.COMPLETED)

    def mark_season_pack_failed(self, seasons, season_number: int):
        return self.mark_season_pack(seasons, season_number, C.FAILED)

    def mark_episode_completed(self, seasons, season_number: int, episode_number: int):
        return self.mark_episode(seasons, season_number, episode_number, C.COMPLETED)

    def mark_episode_failed(self, seasons, season_number: int, episode_number: int):
        return self.mark_episode(seasons, season_number, episode_number, C.FAILED)

    def needs_new_content_search(
        self, seasons: List[TvShowSeason], latest_available_season: int
    ) -> bool:
        if not seasons:
            return latest_available_season > 0
        return latest_available_season > max(s.season_number for s in seasons)

    def season_summary(self, seasons: List[TvShowSeason]) -> Dict[str, int]:
        summary = {status.value: 0 for status in ContentStatus}
        for season in seasons:
            summary[season.status.value] += 1
        return summary


tv_show_state_machine = TvShowStateMachine()
