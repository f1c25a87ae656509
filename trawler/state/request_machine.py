from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from trawler.core.logger import logger
from trawler.models import ContentType, RequestStatus


class ActionType(str, Enum):
    RESET_SEARCH_DATA = "reset_search_data"
    EXTEND_EXPIRY = "extend_expiry"
    CLEAR_FOUND_CANDIDATE = "clear_found_candidate"
    INCREMENT_SEARCH_ATTEMPTS = "increment_search_attempts"
    STAMP_SEARCH_TIME = "stamp_search_time"
    SCHEDULE_NEXT_SEARCH = "schedule_next_search"
    STORE_CANDIDATE = "store_candidate"
    CREATE_DOWNLOAD_JOB = "create_download_job"
    RELEASE_DOWNLOAD_HANDLE = "release_download_handle"
    SET_COMPLETION_TIMESTAMP = "set_completion_timestamp"
    ORGANIZE_FILES = "organize_files"
    RECORD_FAILURE_REASON = "record_failure_reason"
    SCHEDULE_RETRY = "schedule_retry"
    CANCEL_DOWNLOAD_JOBS = "cancel_download_jobs"
    SET_EXPIRATION_TIMESTAMP = "set_expiration_timestamp"


@dataclass
class StateAction:
    type: ActionType
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransitionContext:
    request_id: str
    current_status: RequestStatus
    target_status: RequestStatus
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TransitionResult:
    success: bool
    new_status: RequestStatus
    actions: List[StateAction] = field(default_factory=list)
    error: Optional[str] = None
    guard_rejected: bool = False


Predicate = Callable[[TransitionContext], bool]


@dataclass
class TransitionGuard:
    check: Predicate
    reason: str


Handler = Callable[[TransitionContext], List[StateAction]]

S = RequestStatus

VALID_TRANSITIONS: Dict[RequestStatus, frozenset] = {
    S.PENDING: frozenset({S.SEARCHING, S.CANCELLED, S.EXPIRED}),
    S.SEARCHING: frozenset({S.FOUND, S.PENDING, S.CANCELLED, S.EXPIRED}),
    S.FOUND: frozenset({S.DOWNLOADING, S.SEARCHING, S.CANCELLED, S.EXPIRED}),
    S.DOWNLOADING: frozenset({S.COMPLETED, S.FAILED, S.CANCELLED, S.PENDING}),
    S.COMPLETED: frozenset(),
    S.FAILED: frozenset({S.SEARCHING, S.CANCELLED, S.EXPIRED}),
    S.CANCELLED: frozenset({S.PENDING, S.SEARCHING}),
    S.EXPIRED: frozenset({S.SEARCHING}),
}

DEFAULT_MAX_SEARCH_ATTEMPTS = 50


def _has_search_budget(context: TransitionContext) -> bool:
    attempts = context.metadata.get("search_attempts", 0) or 0
    max_attempts = (
        context.metadata.get("max_search_attempts") or DEFAULT_MAX_SEARCH_ATTEMPTS
    )
    return attempts < max_attempts


def _has_selected_candidate(context: TransitionContext) -> bool:
    return bool(
        context.metadata.get("selected_candidate")
        or context.metadata.get("auto_selected")
    )


def _download_is_complete(context: TransitionContext) -> bool:
    return context.metadata.get("download_complete") is True


def _show_needs_more_content(context: TransitionContext) -> bool:
    """
    Ongoing shows only. Either the gap analysis found missing content, or the
    show is caught up and has to wait for the catalog to announce more.
    """
    return (
        context.metadata.get("content_type") == ContentType.TV_SHOW
        and bool(context.metadata.get("is_ongoing"))
        and (
            context.metadata.get("needs_more_content") is True
            or context.metadata.get("awaiting_new_releases") is True
        )
    )


class RequestStateMachine:
    """
    Transition table, guards and entry/exit actions for a request's status.

    Pure: it never touches storage or collaborators. Callers receive the
    ordered list of actions (exit actions of the old status first, then
    entry actions of the new one) and carry them out.
    """

    def __init__(self):
        search_budget = TransitionGuard(
            _has_search_budget, "Maximum search attempts reached"
        )
        self._guards: Dict[Tuple[RequestStatus, RequestStatus], TransitionGuard] = {
            (S.PENDING, S.SEARCHING): search_budget,
            (S.FAILED, S.SEARCHING): search_budget,
            (S.FOUND, S.DOWNLOADING): TransitionGuard(
                _has_selected_candidate, "No torrent selected"
            ),
            (S.DOWNLOADING, S.COMPLETED): TransitionGuard(
                _download_is_complete, "Download not confirmed complete"
            ),
            (S.DOWNLOADING, S.PENDING): TransitionGuard(
                _show_needs_more_content, "Only ongoing shows waiting for content can re-arm"
            ),
        }
        self._on_enter: Dict[RequestStatus, Handler] = {
            S.PENDING: self._enter_pending,
            S.SEARCHING: self._enter_searching,
            S.FOUND: self._enter_found,
            S.DOWNLOADING: self._enter_downloading,
            S.COMPLETED: self._enter_completed,
            S.FAILED: self._enter_failed,
            S.CANCELLED: self._enter_cancelled,
            S.EXPIRED: self._enter_expired,
        }
        self._on_exit: Dict[RequestStatus, Handler] = {
            S.CANCELLED: self._exit_inactive,
            S.EXPIRED: self._exit_inactive,
        }

    def can_transition(self, from_status: RequestStatus, to_status: RequestStatus):
        return to_status in VALID_TRANSITIONS.get(from_status, frozenset())

    def get_valid_transitions(self, status: RequestStatus) -> List[RequestStatus]:
        return [s for s in RequestStatus if s in VALID_TRANSITIONS.get(status, ())]

    def register_guard(
        self,
        from_status: RequestStatus,
        to_status: RequestStatus,
        check: Predicate,
        reason: Optional[str] = None,
    ):
        self._guards[(from_status, to_status)] = TransitionGuard(
            check,
            reason or f"Transition guard failed for {from_status.value} -> {to_status.value}",
        )

    def register_enter_handler(self, status: RequestStatus, handler: Handler):
        self._on_enter[status] = handler

    def register_exit_handler(self, status: RequestStatus, handler: Handler):
        self._on_exit[status] = handler

    def transition(self, context: TransitionContext) -> TransitionResult:
        current, target = context.current_status, context.target_status

        if not self.can_transition(current, target):
            return TransitionResult(
                success=False,
                new_status=current,
                error=f"Invalid transition from {current.value} to {target.value}",
            )

        guard = self._guards.get((current, target))
        if guard is not None:
            try:
                allowed = guard.check(context)
            except Exception as e:
                logger.warning(
                    f"Guard {current.value} -> {target.value} raised for request {context.request_id}: {e}"
                )
                allowed = False

            if not allowed:
                return TransitionResult(
                    success=False,
                    new_status=current,
                    error=guard.reason,
                    guard_rejected=True,
                )

        actions = self._run_handler(self._on_exit.get(current), context)
        actions += self._run_handler(self._on_enter.get(target), context)

        return TransitionResult(success=True, new_status=target, actions=actions)

    def _run_handler(self, handler: Optional[Handler], context: TransitionContext):
        if handler is None:
            return []

        try:
            return list(handler(context))
        except Exception as e:
            logger.warning(
                f"State handler failed for request {context.request_id} ({context.current_status.value} -> {context.target_status.value}): {e}"
            )
            return []

    def _exit_inactive(self, context: TransitionContext):
        return [
            StateAction(ActionType.RESET_SEARCH_DATA),
            StateAction(ActionType.EXTEND_EXPIRY),
        ]

    def _enter_pending(self, context: TransitionContext):
        if context.current_status == S.CANCELLED:
            return [StateAction(ActionType.CLEAR_FOUND_CANDIDATE)]

        if context.current_status == S.DOWNLOADING:
            return [
                StateAction(ActionType.RELEASE_DOWNLOAD_HANDLE),
                StateAction(ActionType.SCHEDULE_NEXT_SEARCH),
            ]

        return []

    def _enter_searching(self, context: TransitionContext):
        return [
            StateAction(ActionType.INCREMENT_SEARCH_ATTEMPTS),
            StateAction(ActionType.STAMP_SEARCH_TIME),
            StateAction(ActionType.SCHEDULE_NEXT_SEARCH),
        ]

    def _enter_found(self, context: TransitionContext):
        return [
            StateAction(
                ActionType.STORE_CANDIDATE,
                {"candidate": context.metadata.get("candidate")},
            )
        ]

    def _enter_downloading(self, context: TransitionContext):
        return [
            StateAction(
                ActionType.CREATE_DOWNLOAD_JOB,
                {
                    "candidate": context.metadata.get("candidate"),
                    "coverage": context.metadata.get("coverage"),
                },
            )
        ]

    def _enter_completed(self, context: TransitionContext):
        return [
            StateAction(ActionType.SET_COMPLETION_TIMESTAMP),
            StateAction(ActionType.ORGANIZE_FILES),
            StateAction(ActionType.RELEASE_DOWNLOAD_HANDLE),
        ]

    def _enter_failed(self, context: TransitionContext):
        return [
            StateAction(
                ActionType.RECORD_FAILURE_REASON,
                {"reason": context.reason or "Unknown failure"},
            ),
            StateAction(ActionType.SCHEDULE_RETRY),
            StateAction(ActionType.RELEASE_DOWNLOAD_HANDLE),
        ]

    def _enter_cancelled(self, context: TransitionContext):
        return [
            StateAction(ActionType.CANCEL_DOWNLOAD_JOBS),
            StateAction(ActionType.RELEASE_DOWNLOAD_HANDLE),
        ]

    def _enter_expired(self, context: TransitionContext):
        return [StateAction(ActionType.SET_EXPIRATION_TIMESTAMP)]


request_state_machine = RequestStateMachine()
