import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from trawler.core.exceptions import (CollaboratorError, DownloadEngineError,
                                     GuardRejectedError,
                                     InvalidTransitionError,
                                     RequestNotFoundError, TransitionError)
from trawler.core.logger import log_collaborator_error, logger
from trawler.core.models import settings
from trawler.downloaders.base import BaseDownloadEngine
from trawler.indexers.base import BaseIndexer
from trawler.indexers.categories import categories_for
from trawler.metadata.base import BaseCatalog
from trawler.models import (Candidate, ContentStatus, ContentType, Coverage,
                            DownloadJob, EpisodeRef, JobStatus, Request,
                            RequestStatus, TorrentSearchResult, TvShowSeason)
from trawler.services.aggregation import DownloadAggregator, summarize_progress
from trawler.services.filtering import filter_worker
from trawler.services.gap_analysis import GapAnalysis, GapAnalyzer
from trawler.services.ranking import (RankedCandidate, RankingCriteria,
                                      filter_and_rank)
from trawler.services.release_validator import ReleaseValidator
from trawler.services.season_sync import SeasonSync
from trawler.services.selection import select_best_match
from trawler.services.title_classifier import MatchKind, classify_title
from trawler.state.request_machine import (ActionType, RequestStateMachine,
                                           StateAction, TransitionContext,
                                           request_state_machine)
from trawler.state.tv_machine import (EpisodeUpdate, TvShowStateMachine,
                                      TvShowStateResult,
                                      tv_show_state_machine)
from trawler.storage.base import RequestStore
from trawler.utils.clock import Clock, utcnow

S = RequestStatus


class BaseFileOrganizer(ABC):
    """Moves or renames finished downloads. Failures never undo a completion."""

    @abstractmethod
    async def organize(self, request: Request, job: Optional[DownloadJob]):
        pass


@dataclass
class SweepStats:
    processed: int = 0
    advanced: int = 0
    skipped: int = 0
    errors: int = 0


class LifecycleOrchestrator:
    """
    Owns every request status change: runs the state machine, carries out
    the returned actions, persists the result and keeps show seasons in
    step. Also implements the periodic sweeps.
    """

    def __init__(
        self,
        store: RequestStore,
        indexer: BaseIndexer,
        engine: BaseDownloadEngine,
        catalog: Optional[BaseCatalog] = None,
        release_validator: Optional[ReleaseValidator] = None,
        organizer: Optional[BaseFileOrganizer] = None,
        state_machine: Optional[RequestStateMachine] = None,
        tv_machine: Optional[TvShowStateMachine] = None,
        clock: Clock = utcnow,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        download_path: Optional[str] = None,
    ):
        self.store = store
        self.indexer = indexer
        self.engine = engine
        self.catalog = catalog
        self.organizer = organizer
        self.state_machine = state_machine or request_state_machine
        self.tv_machine = tv_machine or tv_show_state_machine
        self.clock = clock
        self.batch_size = batch_size or settings.SEARCH_BATCH_SIZE
        self.batch_delay = (
            batch_delay if batch_delay is not None else settings.SEARCH_BATCH_DELAY
        )
        self.download_path = download_path or settings.DOWNLOAD_PATH

        self.aggregator = DownloadAggregator(engine)
        self.release_validator = release_validator or ReleaseValidator(
            catalog, clock=clock
        )
        self.gap_analyzer = GapAnalyzer(self.release_validator)
        self.season_sync = SeasonSync(store, catalog) if catalog else None

    # transitions

    async def _get_request(self, request_id: str) -> Request:
        request = await self.store.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def _base_metadata(self, request: Request) -> Dict:
        return {
            "search_attempts": request.search_attempts,
            "max_search_attempts": request.max_search_attempts,
            "content_type": request.content_type,
            "is_ongoing": request.is_ongoing,
        }

    async def transition(
        self,
        request_id: str,
        target: RequestStatus,
        reason: Optional[str] = None,
        metadata: Optional[Dict] = None,
    ) -> Request:
        request = await self._get_request(request_id)
        previous = request.status

        context = TransitionContext(
            request_id=request.id,
            current_status=previous,
            target_status=target,
            reason=reason,
            metadata={**self._base_metadata(request), **(metadata or {})},
        )
        result = self.state_machine.transition(context)

        if not result.success:
            error_class = (
                GuardRejectedError if result.guard_rejected else InvalidTransitionError
            )
            logger.log(
                "STATE", f"{request.display_name} ({request.id}): {result.error}"
            )
            raise error_class(request.id, previous, target, result.error)

        now = self.clock()
        for action in result.actions:
            await self._execute_action(action, request, context)

        request.status = result.new_status
        request.updated_at = now
        if reason and target != S.FAILED:
            request.status_reason = reason
        await self.store.save_request(request)

        logger.log(
            "STATE",
            f"{request.display_name} ({request.id}): {previous.value} -> {target.value}"
            + (f" ({reason})" if reason else ""),
        )

        if request.is_tv:
            try:
                await self.recalculate_tv_show_status(request.id)
            except Exception as e:
                logger.warning(f"Could not recalculate seasons of {request.id}: {e}")

        return request

    async def _execute_action(
        self, action: StateAction, request: Request, context: TransitionContext
    ):
        # Only a failed submission aborts the transition, the rest is best effort
        if action.type == ActionType.CREATE_DOWNLOAD_JOB:
            await self._create_download_job(request, action.payload)
            return

        try:
            await self._apply_action(action, request, context)
        except Exception as e:
            logger.warning(
                f"Action {action.type.value} failed for request {request.id}: {e}"
            )

    async def _apply_action(
        self, action: StateAction, request: Request, context: TransitionContext
    ):
        now = self.clock()
        kind = action.type

        if kind == ActionType.RESET_SEARCH_DATA:
            request.search_attempts = 0
            request.last_search_at = None
            request.next_search_at = now
            request.status_reason = None
        elif kind == ActionType.EXTEND_EXPIRY:
            days = (
                settings.ONGOING_REQUEST_TTL_DAYS
                if request.is_ongoing
                else settings.REQUEST_TTL_DAYS
            )
            extended = now + timedelta(days=days)
            if request.expires_at is None or request.expires_at < extended:
                request.expires_at = extended
        elif kind == ActionType.CLEAR_FOUND_CANDIDATE:
            request.found_candidate = None
            request.download_progress = 0
            request.download_speed = None
            request.download_eta = None
        elif kind == ActionType.INCREMENT_SEARCH_ATTEMPTS:
            request.search_attempts += 1
        elif kind == ActionType.STAMP_SEARCH_TIME:
            request.last_search_at = now
        elif kind in (ActionType.SCHEDULE_NEXT_SEARCH, ActionType.SCHEDULE_RETRY):
            request.next_search_at = now + timedelta(
                minutes=request.search_interval_minutes
            )
        elif kind == ActionType.STORE_CANDIDATE:
            candidate = action.payload.get("candidate")
            if candidate is not None:
                request.found_candidate = candidate
        elif kind == ActionType.RELEASE_DOWNLOAD_HANDLE:
            request.active_job_id = None
            request.download_speed = None
            request.download_eta = None
        elif kind == ActionType.SET_COMPLETION_TIMESTAMP:
            request.completed_at = now
            request.download_progress = 100
        elif kind == ActionType.ORGANIZE_FILES:
            if self.organizer is not None:
                job = None
                if request.active_job_id:
                    job = await self.store.get_download_job(request.active_job_id)
                await self.organizer.organize(request, job)
        elif kind == ActionType.RECORD_FAILURE_REASON:
            request.status_reason = action.payload.get("reason")
        elif kind == ActionType.CANCEL_DOWNLOAD_JOBS:
            await self._cancel_download_jobs(request)
        elif kind == ActionType.SET_EXPIRATION_TIMESTAMP:
            if request.expires_at is None or request.expires_at > now:
                request.expires_at = now

    async def _create_download_job(self, request: Request, payload: Dict):
        candidate: Optional[Candidate] = payload.get("candidate") or request.found_candidate
        if candidate is None or not candidate.locator:
            raise DownloadEngineError(f"no download locator for request {request.id}")

        coverage = payload.get("coverage") or Coverage()
        engine_job_id = await self.engine.submit(
            candidate.locator, self.destination_for(request)
        )

        job = DownloadJob(
            request_id=request.id,
            engine_job_id=engine_job_id,
            locator=candidate.locator,
            title=candidate.title,
            coverage=coverage,
            created_at=self.clock(),
        )
        await self.store.save_download_job(job)

        request.active_job_id = job.id
        request.download_progress = 0
        logger.log(
            "DOWNLOAD",
            f"Started {candidate.title} for {request.display_name} (job {engine_job_id})",
        )

    async def _cancel_download_jobs(self, request: Request):
        if not request.active_job_id:
            return

        job = await self.store.get_download_job(request.active_job_id)
        if job is None or job.status != JobStatus.ACTIVE:
            return

        try:
            job_ids = await self.aggregator.related_job_ids(job.engine_job_id)
        except CollaboratorError as e:
            log_collaborator_error("Download engine", f"list jobs of {job.engine_job_id}", e)
            job_ids = [job.engine_job_id]

        for job_id in job_ids:
            try:
                await self.engine.cancel(job_id)
            except CollaboratorError as e:
                log_collaborator_error("Download engine", f"cancel {job_id}", e)

        job.status = JobStatus.CANCELLED
        job.completed_at = self.clock()
        await self.store.save_download_job(job)

        if request.is_tv:
            await self._apply_coverage(request, job.coverage, ContentStatus.PENDING)

    def destination_for(self, request: Request) -> str:
        folder = {
            ContentType.MOVIE: "movies",
            ContentType.TV_SHOW: "tv",
            ContentType.GAME: "games",
        }[request.content_type]
        return f"{self.download_path}/{folder}"

    # request-level operations

    async def start_search(self, request_id: str) -> Request:
        return await self.transition(request_id, S.SEARCHING)

    async def mark_as_found(
        self, request_id: str, candidate: Candidate, reason: Optional[str] = None
    ) -> Request:
        return await self.transition(
            request_id, S.FOUND, reason=reason, metadata={"candidate": candidate}
        )

    async def start_download(
        self, request_id: str, coverage: Optional[Coverage] = None
    ) -> Request:
        request = await self._get_request(request_id)
        selected = await self.store.get_selected_result(request_id)
        candidate = request.found_candidate or (selected.candidate if selected else None)

        request = await self.transition(
            request_id,
            S.DOWNLOADING,
            metadata={
                "selected_candidate": selected is not None,
                "auto_selected": bool(selected and selected.auto_selected),
                "candidate": candidate,
                "coverage": coverage,
            },
        )

        if request.is_tv and coverage is not None:
            await self._apply_coverage(request, coverage, ContentStatus.DOWNLOADING)
        return request

    async def mark_as_completed(self, request_id: str) -> Request:
        request = await self._get_request(request_id)

        complete = False
        if request.active_job_id:
            job = await self.store.get_download_job(request.active_job_id)
            if job is not None:
                complete = await self.aggregator.is_download_complete(job.engine_job_id)

        return await self.transition(
            request_id, S.COMPLETED, metadata={"download_complete": complete}
        )

    async def mark_as_failed(self, request_id: str, reason: str) -> Request:
        return await self.transition(request_id, S.FAILED, reason=reason)

    async def cancel_request(
        self, request_id: str, reason: str = "Cancelled by user"
    ) -> Request:
        return await self.transition(request_id, S.CANCELLED, reason=reason)

    async def mark_as_expired(
        self, request_id: str, reason: str = "Request expired"
    ) -> Request:
        return await self.transition(request_id, S.EXPIRED, reason=reason)

    async def reactivate(self, request_id: str, search_now: bool = False) -> Request:
        request = await self._get_request(request_id)

        # EXPIRED can only be left through a fresh search
        if search_now or request.status == S.EXPIRED:
            request = await self.transition(request_id, S.SEARCHING, reason="Reactivated")
            await self._search_cycle(request)
            return await self._get_request(request_id)

        return await self.transition(request_id, S.PENDING, reason="Reactivated")

    async def select_candidate(self, request_id: str, result_id: str) -> Request:
        """Manually pick a stored search result and start downloading it."""
        request = await self._get_request(request_id)
        if request.status not in (S.SEARCHING, S.FOUND):
            # FOUND is only reachable from SEARCHING
            request = await self.start_search(request_id)

        selected = await self.store.select_search_result(request_id, result_id)
        if selected is None:
            raise RequestNotFoundError(f"{request_id}/{result_id}")

        if request.status == S.FOUND:
            request.found_candidate = selected.candidate
            await self.store.save_request(request)
        else:
            await self.mark_as_found(
                request_id, selected.candidate, reason="Manually selected"
            )

        return await self.start_download(request_id, self._coverage_for(request, selected.candidate))

    # tv shows

    async def recalculate_tv_show_status(
        self, request_id: str, episode_updates: Optional[List[EpisodeUpdate]] = None
    ) -> TvShowStateResult:
        request = await self._get_request(request_id)
        seasons = await self.store.get_seasons(request_id)
        result = self.tv_machine.calculate(seasons, request.is_ongoing, episode_updates)

        for update in result.episode_updates:
            await self.store.update_episode_status(update.episode_id, update.status)
        for update in result.season_updates:
            await self.store.update_season_status(update.season_id, update.status)

        if result.has_changes:
            logger.log(
                "STATE",
                f"{request.title}: {len(result.episode_updates)} episode and {len(result.season_updates)} season update(s), show is {result.show_status.value}",
            )
        return result

    async def _apply_coverage(
        self, request: Request, coverage: Coverage, status: ContentStatus
    ) -> TvShowStateResult:
        seasons = await self.store.get_seasons(request.id)

        updates: List[EpisodeUpdate] = []
        if coverage.episodes:
            for ref in coverage.episodes:
                updates += self.tv_machine.mark_episode(
                    seasons, ref.season, ref.episode, status
                )
        else:
            for season_number in coverage.seasons:
                updates += self.tv_machine.mark_season_pack(seasons, season_number, status)

        return await self.recalculate_tv_show_status(request.id, updates)

    async def mark_season_pack_completed(self, request_id: str, season_number: int):
        seasons = await self.store.get_seasons(request_id)
        updates = self.tv_machine.mark_season_pack_completed(seasons, season_number)
        return await self.recalculate_tv_show_status(request_id, updates)

    async def mark_season_pack_failed(self, request_id: str, season_number: int):
        seasons = await self.store.get_seasons(request_id)
        updates = self.tv_machine.mark_season_pack_failed(seasons, season_number)
        return await self.recalculate_tv_show_status(request_id, updates)

    async def mark_episode_completed(
        self, request_id: str, season_number: int, episode_number: int
    ):
        seasons = await self.store.get_seasons(request_id)
        updates = self.tv_machine.mark_episode_completed(
            seasons, season_number, episode_number
        )
        return await self.recalculate_tv_show_status(request_id, updates)

    async def mark_episode_failed(
        self, request_id: str, season_number: int, episode_number: int
    ):
        seasons = await self.store.get_seasons(request_id)
        updates = self.tv_machine.mark_episode_failed(
            seasons, season_number, episode_number
        )
        return await self.recalculate_tv_show_status(request_id, updates)

    async def _load_seasons(self, request: Request, refresh: bool = False) -> List[TvShowSeason]:
        seasons = await self.store.get_seasons(request.id)
        if self.season_sync is not None and (refresh or not seasons):
            seasons = await self.season_sync.sync(request)
            await self.store.save_request(request)
        return seasons

    async def analyze_gaps(self, request: Request, refresh: bool = False) -> GapAnalysis:
        seasons = await self._load_seasons(request, refresh)
        return await self.gap_analyzer.analyze(request, seasons)

    # searching

    def build_query(self, request: Request) -> str:
        if request.content_type == ContentType.TV_SHOW and request.season is not None:
            query = f"{request.title} S{request.season:02d}"
            if request.episode is not None:
                query += f"E{request.episode:02d}"
            return query

        if request.content_type == ContentType.MOVIE and request.year:
            return f"{request.title} {request.year}"

        return request.title

    def _coverage_for(self, request: Request, candidate: Candidate) -> Optional[Coverage]:
        """Which seasons/episodes a candidate delivers for a specific-season request."""
        if not request.is_tv:
            return None

        match = classify_title(candidate.title, request.title)
        if match.kind == MatchKind.INDIVIDUAL_EPISODE:
            return Coverage(
                kind=match.kind.value,
                seasons=[match.season],
                episodes=[EpisodeRef(season=match.season, episode=match.episode)],
            )
        if match.kind == MatchKind.COMPLETE_SERIES and request.season is not None:
            return Coverage(kind=match.kind.value, seasons=[request.season])
        return Coverage(kind=match.kind.value, seasons=match.covered_seasons)

    def _tracks_seasons(self, request: Request) -> bool:
        return (
            request.is_tv
            and request.season is None
            and request.tmdb_id is not None
            and self.season_sync is not None
        )

    def _fits_request(self, request: Request, candidate: Candidate) -> bool:
        match = classify_title(candidate.title, request.title)
        if request.season is None:
            # no catalog to compare against, any release of the show will do
            return match.kind != MatchKind.UNKNOWN

        if request.episode is not None:
            if match.kind == MatchKind.INDIVIDUAL_EPISODE:
                return match.season == request.season and match.episode == request.episode
            return match.kind == MatchKind.SEASON_PACK and match.season == request.season

        if match.kind == MatchKind.SEASON_PACK:
            return match.season == request.season
        if match.kind == MatchKind.MULTI_SEASON:
            return request.season in match.seasons
        return False

    async def _store_results(
        self, request: Request, ranked: List[RankedCandidate]
    ) -> List[TorrentSearchResult]:
        results = [
            TorrentSearchResult(
                request_id=request.id,
                candidate=r.candidate,
                score=r.score,
                created_at=self.clock(),
            )
            for r in ranked
        ]
        await self.store.replace_search_results(request.id, results)
        return results

    async def _select(self, request: Request, results, candidate: Candidate):
        for result in results:
            if result.candidate is candidate or result.candidate == candidate:
                await self.store.select_search_result(
                    request.id, result.id, auto_selected=True
                )
                return

    async def _search_direct(
        self, request: Request
    ) -> Optional[Tuple[Candidate, Optional[Coverage]]]:
        candidates = await self.indexer.search(
            self.build_query(request),
            categories_for(request.content_type, request.platform),
        )

        if request.content_type == ContentType.MOVIE:
            candidates = filter_worker(
                candidates, request.title, request.year, settings.REMOVE_ADULT_CONTENT
            )
        elif request.is_tv:
            candidates = [c for c in candidates if self._fits_request(request, c)]

        criteria = RankingCriteria.from_request(request, settings.TRUSTED_INDEXERS)
        ranked = filter_and_rank(candidates, criteria, self.clock())
        results = await self._store_results(request, ranked)

        if not ranked:
            return None

        best = ranked[0].candidate
        await self._select(request, results, best)
        return best, self._coverage_for(request, best)

    async def _search_show(
        self, request: Request, gap: GapAnalysis
    ) -> Optional[Tuple[Candidate, Coverage]]:
        candidates = await self.indexer.search(
            request.title, categories_for(ContentType.TV_SHOW)
        )

        criteria = RankingCriteria.from_request(request, settings.TRUSTED_INDEXERS)
        ranked = filter_and_rank(candidates, criteria, self.clock())
        results = await self._store_results(request, ranked)

        match = select_best_match(ranked, gap, request.title)
        if match is None:
            return None

        logger.log("SEARCH", f"{request.title}: {match.reason} ({match.candidate.title})")
        await self._select(request, results, match.candidate)

        first_season = match.seasons[0] if match.seasons else None
        return match.candidate, Coverage(
            kind=match.kind.value,
            seasons=match.seasons,
            episodes=[
                EpisodeRef(season=first_season, episode=episode)
                for episode in match.episodes
            ],
        )

    async def _give_up_search(self, request_id: str, reason: str):
        request = await self._get_request(request_id)
        if request.status != S.SEARCHING:
            return

        if request.search_attempts >= request.max_search_attempts:
            await self.transition(
                request_id,
                S.EXPIRED,
                reason=f"Search attempts exhausted ({request.search_attempts}/{request.max_search_attempts}): {reason}",
            )
        else:
            await self.transition(request_id, S.PENDING, reason=reason)

    async def _postpone(self, request: Request):
        request.next_search_at = self.clock() + timedelta(
            minutes=request.search_interval_minutes
        )
        await self.store.save_request(request)

    async def process_request(self, request_id: str) -> bool:
        """
        Run one search cycle for a request. Returns True when a download was
        started.
        """
        request = await self._get_request(request_id)

        gap = None
        if self._tracks_seasons(request):
            try:
                gap = await self.analyze_gaps(request)
            except CollaboratorError as e:
                log_collaborator_error("Catalog", f"sync seasons of {request.title}", e)
                await self._postpone(request)
                return False

            if not gap.needs_more_content:
                logger.log("SEARCH", f"{request.title} is caught up, nothing to search")
                await self._postpone(request)
                return False

        try:
            request = await self.start_search(request_id)
        except TransitionError as e:
            logger.log("SEARCH", f"Not searching {request.display_name}: {e.message}")
            return False

        return await self._search_cycle(request, gap)

    async def _search_cycle(
        self, request: Request, gap: Optional[GapAnalysis] = None
    ) -> bool:
        """Search, select and submit for a request that is already SEARCHING."""
        request_id = request.id
        is_show = self._tracks_seasons(request)

        if is_show and gap is None:
            try:
                gap = await self.analyze_gaps(request)
            except CollaboratorError as e:
                log_collaborator_error("Catalog", f"sync seasons of {request.title}", e)
                await self._give_up_search(request_id, "Catalog unavailable")
                return False

            if not gap.needs_more_content:
                await self._give_up_search(request_id, "Nothing missing")
                return False

        logger.log(
            "SEARCH",
            f"Searching {request.display_name} (attempt {request.search_attempts}/{request.max_search_attempts})",
        )

        try:
            if is_show:
                found = await self._search_show(request, gap)
            else:
                found = await self._search_direct(request)
        except CollaboratorError as e:
            log_collaborator_error("Indexer", f"search {request.display_name}", e)
            await self._give_up_search(request_id, "Indexer unavailable")
            return False
        except Exception as e:
            logger.error(f"Search failed for {request.display_name}: {e}")
            await self._give_up_search(request_id, f"Search error: {e}")
            return False

        if found is None:
            await self._give_up_search(request_id, "No suitable candidates")
            return False

        candidate, coverage = found
        await self.mark_as_found(request_id, candidate)

        try:
            await self.start_download(request_id, coverage)
        except CollaboratorError as e:
            log_collaborator_error("Download engine", f"start {candidate.title}", e)
            return False

        return True

    async def _process_safely(self, request_id: str, stats: SweepStats):
        try:
            if await self.process_request(request_id):
                stats.advanced += 1
        except TransitionError as e:
            stats.skipped += 1
            logger.log("STATE", f"Request {request_id} changed during search: {e.message}")
        except Exception as e:
            stats.errors += 1
            logger.error(f"Error processing request {request_id}: {e}")

    async def run_search_sweep(self) -> SweepStats:
        due = await self.store.list_due_for_search(self.clock())
        stats = SweepStats(processed=len(due))
        if not due:
            return stats

        logger.log("SCHEDULER", f"Search sweep: {len(due)} request(s) due")

        for start in range(0, len(due), self.batch_size):
            batch = due[start : start + self.batch_size]
            await asyncio.gather(*[self._process_safely(r.id, stats) for r in batch])

            if start + self.batch_size < len(due) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        return stats

    # downloads

    async def poll_download(self, request_id: str) -> Optional[RequestStatus]:
        request = await self._get_request(request_id)
        if request.status != S.DOWNLOADING:
            return None

        job = None
        if request.active_job_id:
            job = await self.store.get_download_job(request.active_job_id)
        if job is None:
            await self.mark_as_failed(request_id, "Download job is missing")
            return S.FAILED

        try:
            progress = await self.aggregator.get_download_progress(job.engine_job_id)
        except CollaboratorError as e:
            log_collaborator_error("Download engine", f"poll {job.engine_job_id}", e)
            return None

        request.download_progress = progress.progress
        request.download_speed = progress.speed
        request.download_eta = progress.eta
        request.updated_at = self.clock()
        await self.store.save_request(request)

        if progress.is_failed:
            job.status = JobStatus.FAILED
            job.error_message = progress.error_message
            job.completed_at = self.clock()
            await self.store.save_download_job(job)

            if request.is_tv:
                await self._apply_coverage(request, job.coverage, ContentStatus.FAILED)
            await self.mark_as_failed(request_id, progress.error_message)
            return S.FAILED

        if progress.is_complete:
            job.status = JobStatus.COMPLETED
            job.completed_at = self.clock()
            await self.store.save_download_job(job)

            if request.is_tv:
                await self._apply_coverage(request, job.coverage, ContentStatus.COMPLETED)
            return (await self._finish_download(request_id)).status

        return None

    async def _still_airing(self, request: Request) -> bool:
        try:
            show = await self.catalog.get_show(request.tmdb_id)
        except CollaboratorError as e:
            log_collaborator_error("Catalog", f"read status of {request.title}", e)
            return True
        return show.is_ongoing

    async def _finish_download(self, request_id: str) -> Request:
        request = await self._get_request(request_id)

        if request.is_ongoing and self._tracks_seasons(request):
            gap = await self.analyze_gaps(request)
            if gap.needs_more_content:
                missing = gap.missing_seasons + [g.season_number for g in gap.incomplete_seasons]
                return await self.transition(
                    request_id,
                    S.PENDING,
                    reason=f"needs more content: seasons {missing}",
                    metadata={"needs_more_content": gap.needs_more_content},
                )

            if await self._still_airing(request):
                return await self.transition(
                    request_id,
                    S.PENDING,
                    reason="needs more content: awaiting new episodes",
                    metadata={"needs_more_content": False, "awaiting_new_releases": True},
                )

            logger.log("STATE", f"{request.title} has ended and every season is downloaded")

        return await self.transition(
            request_id, S.COMPLETED, metadata={"download_complete": True}
        )

    async def run_download_sweep(self) -> SweepStats:
        stats = SweepStats()

        # FOUND without a job: the engine refused the last submission
        for request in await self.store.list_requests(statuses=[S.FOUND]):
            stats.processed += 1
            try:
                coverage = (
                    self._coverage_for(request, request.found_candidate)
                    if request.found_candidate and request.season is not None
                    else None
                )
                await self.start_download(request.id, coverage)
                stats.advanced += 1
            except (CollaboratorError, TransitionError) as e:
                stats.skipped += 1
                logger.log("DOWNLOAD", f"Could not start {request.display_name}: {e.message}")
            except Exception as e:
                stats.errors += 1
                logger.error(f"Error starting download for {request.id}: {e}")

        for request in await self.store.list_requests(statuses=[S.DOWNLOADING]):
            stats.processed += 1
            try:
                if await self.poll_download(request.id) is not None:
                    stats.advanced += 1
            except TransitionError as e:
                stats.skipped += 1
                logger.log("STATE", f"Request {request.id} changed during poll: {e.message}")
            except Exception as e:
                stats.errors += 1
                logger.error(f"Error polling download for {request.id}: {e}")

        return stats

    # tv gap sweep

    async def run_tv_gap_sweep(self) -> SweepStats:
        stats = SweepStats()
        now = self.clock()

        requests = await self.store.list_requests(
            statuses=[S.PENDING, S.FAILED], content_type=ContentType.TV_SHOW
        )
        for request in requests:
            if not request.is_ongoing or not self._tracks_seasons(request):
                continue

            stats.processed += 1
            try:
                gap = await self.analyze_gaps(request, refresh=True)
                await self.recalculate_tv_show_status(request.id)

                if (
                    gap.needs_more_content
                    and request.status == S.PENDING
                    and request.next_search_at is not None
                    and request.next_search_at > now
                ):
                    request = await self._get_request(request.id)
                    request.next_search_at = now
                    await self.store.save_request(request)
                    stats.advanced += 1
                    logger.log(
                        "SEARCH",
                        f"{request.title} has new content to fetch: {gap.next_target.reason if gap.next_target else 'missing episodes'}",
                    )
            except CollaboratorError as e:
                stats.skipped += 1
                log_collaborator_error("Catalog", f"refresh {request.title}", e)
            except Exception as e:
                stats.errors += 1
                logger.error(f"Error checking {request.title} for new content: {e}")

        return stats

    async def force_search(self, request_id: str) -> bool:
        request = await self._get_request(request_id)
        request.next_search_at = self.clock()
        await self.store.save_request(request)
        return await self.process_request(request_id)

    # expiry

    async def run_expiry_sweep(self) -> SweepStats:
        expired = await self.store.list_expired(self.clock())
        stats = SweepStats(processed=len(expired))

        for request in expired:
            try:
                await self.mark_as_expired(request.id)
                stats.advanced += 1
            except TransitionError as e:
                stats.skipped += 1
                logger.log("STATE", f"Could not expire {request.id}: {e.message}")
            except Exception as e:
                stats.errors += 1
                logger.error(f"Error expiring request {request.id}: {e}")

        if stats.advanced:
            logger.log("SCHEDULER", f"Expired {stats.advanced} request(s)")
        return stats

    # reporting

    async def download_summary(self) -> Dict[str, object]:
        requests = await self.store.list_requests()

        counts = {status.value: 0 for status in RequestStatus}
        for request in requests:
            counts[request.status.value] += 1

        progresses = []
        for request in requests:
            if request.status != S.DOWNLOADING or not request.active_job_id:
                continue
            job = await self.store.get_download_job(request.active_job_id)
            if job is None:
                continue
            try:
                progresses.append(
                    await self.aggregator.get_download_progress(job.engine_job_id)
                )
            except CollaboratorError as e:
                log_collaborator_error("Download engine", f"poll {job.engine_job_id}", e)

        return {"total": len(requests), "by_status": counts, **summarize_progress(progresses)}
