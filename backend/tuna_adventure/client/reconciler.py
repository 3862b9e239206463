"""Client-side state machine for one browser tab.

Authoritative status from the server decides the phase and position. The
local snapshot only picks the sub-screen inside an active round (scenario,
decision, results or leaderboard). Socket events are treated as hints to
re-fetch, apart from `team-kicked` and `game-reset`.
"""
import functools
import logging
import threading
import uuid
from collections import deque
from typing import Any, Callable, Dict, Optional

from tuna_adventure.client.api import ApiError, OfflineError
from tuna_adventure.client.snapshot import (
    GAME_STATE_KEY, TIMER_STATE_KEY, ClientLocalSnapshot, SnapshotCorrupt,
    SCREEN_COMPLETE, SCREEN_DECISION, SCREEN_LEADERBOARD, SCREEN_LOADING, SCREEN_LOGIN,
    SCREEN_RESULTS, SCREEN_SCENARIO, SCREEN_WELCOME,
)
from tuna_adventure.client.timer import CountdownTimer, wall_clock_ms

logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT_SEC = 900

REFETCH_EVENTS = frozenset({
    'game-started', 'game-advanced', 'game-ended', 'game-state-update',
    'team-progress-update', 'team-decision-submitted', 'joined',
})

IN_ROUND_SCREENS = (SCREEN_SCENARIO, SCREEN_DECISION)
AFTER_ROUND_SCREENS = (SCREEN_RESULTS, SCREEN_LEADERBOARD)


def new_tab_id() -> str:
    return f'tab_{uuid.uuid4().hex[:12]}'


def _locked(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class GameReconciler:
    """One tab's view of the game.

    Entry points are serialized on the scheduler's lock when it has one, so
    timer ticks, retries and socket events never interleave. Tabs of one
    browser share a scheduler.
    """

    def __init__(self, api, storage, scheduler, clock: Callable[[], float] = wall_clock_ms,
                 tab_id: Optional[str] = None, retry_delay: float = 5.0, max_offline_queue: int = 10):
        self.api = api
        self.storage = storage
        self.scheduler = scheduler
        self.clock = clock
        self.tab_id = tab_id or getattr(storage, 'tab_id', None) or new_tab_id()
        self.retry_delay = retry_delay
        self._lock = getattr(scheduler, 'lock', None) or threading.RLock()
        self.timer = CountdownTimer(storage, scheduler, clock=clock, on_expire=self._on_timer_expired)

        self.team_id: Optional[int] = None
        self.screen = SCREEN_LOGIN
        self.game_state: Dict[str, Any] = {}
        self.current_scenario: Optional[Dict[str, Any]] = None
        self.results_data: Optional[Dict[str, Any]] = None
        self.draft = {'decision': '', 'rationale': ''}
        self.last_applied_ts = 0.0
        self.kicked = False
        self.offline = False
        self.offline_queue = deque(maxlen=max_offline_queue)
        self._auto_submitted = set()
        self._retry_handle = None

        storage.subscribe(self._on_storage_event)

    # ---- identity ----

    @_locked
    def join(self, team_id: int) -> str:
        """Attach this tab to a team (after login) and reconcile."""
        self.team_id = team_id
        self.kicked = False
        self.screen = SCREEN_LOADING
        return self.reconcile()

    @_locked
    def logout(self) -> None:
        self.timer.stop()
        self.team_id = None
        self.screen = SCREEN_LOGIN

    # ---- reconciliation ----

    @_locked
    def reconcile(self) -> str:
        if self.kicked or self.team_id is None:
            return self.screen
        if self.offline_queue:
            self.flush_offline_queue()
        try:
            status = self.api.status()
        except ApiError as exc:
            if exc.status in (401, 403):
                logger.info(f"[reconcile] not authorized status={exc.status}, back to login")
                self.timer.stop()
                self.screen = SCREEN_LOGIN
                return self.screen
            if not isinstance(exc, OfflineError) and exc.status < 500:
                raise
            logger.warning(f"[reconcile] status fetch failed tab={self.tab_id} status={exc.status} error={exc}")
            self.offline = isinstance(exc, OfflineError)
            self._fall_back_to_snapshot()
            self._schedule_retry()
            return self.screen
        self.offline = False
        self._apply_status(status)
        return self.screen

    def _apply_status(self, status: Dict[str, Any]) -> None:
        self.game_state = dict(status)
        phase = status.get('phase')
        position = status.get('currentPosition')
        local = self.load_snapshot()
        if local is not None and (local.team_id != self.team_id or local.position != position):
            local = None
        timer_state = self.timer.state
        if timer_state is not None and timer_state.scenario_position != position:
            # Countdown from an earlier round
            self.timer.clear()

        if status.get('isComplete'):
            self.timer.stop()
            self.screen = SCREEN_COMPLETE
        elif phase == 'ended':
            self.timer.stop()
            self.screen = SCREEN_LEADERBOARD
        elif phase != 'running' or not status.get('hasCurrentScenario'):
            self.timer.clear()
            self.current_scenario = None
            self.results_data = None
            self.screen = SCREEN_WELCOME
        elif status.get('completeCurrentStepForTeam'):
            self.timer.stop()
            self.current_scenario = status.get('currentScenario')
            self.results_data = local.results_data if local else None
            if self.results_data is None:
                self.results_data = self._fetch_results(position)
            if local is not None and local.screen in AFTER_ROUND_SCREENS:
                self.screen = local.screen
            else:
                self.screen = SCREEN_RESULTS
        else:
            self.current_scenario = status.get('currentScenario')
            self.results_data = None
            if local is not None and local.screen == SCREEN_DECISION:
                self.screen = SCREEN_DECISION
                self._resume_timer(position, status)
            else:
                self.screen = SCREEN_SCENARIO
        logger.info(
            f"[reconcile] tab={self.tab_id} phase={phase} position={position} screen={self.screen}"
        )
        self.save_snapshot()

    def _fetch_results(self, position) -> Optional[Dict[str, Any]]:
        try:
            return self.api.get_decision(position)
        except ApiError as exc:
            logger.warning(f"[reconcile] results unavailable position={position} error={exc}")
            return None

    def _resume_timer(self, position, status) -> None:
        if self.timer.restore(position) is None and not self.timer.running:
            if position in self._auto_submitted:
                return
            self.timer.start(status.get('timeLimitSeconds') or DEFAULT_TIME_LIMIT_SEC, position)

    def _fall_back_to_snapshot(self) -> None:
        local = self.load_snapshot()
        if local is None or local.team_id != self.team_id:
            logger.info(f"[reconcile] no local snapshot to fall back to tab={self.tab_id}")
            return
        # Phase and position stay whatever was last confirmed by the server
        self.game_state = dict(local.game_state)
        self.current_scenario = local.current_scenario
        self.results_data = local.results_data
        self.screen = local.screen
        self.last_applied_ts = max(self.last_applied_ts, local.timestamp)
        if self.screen == SCREEN_DECISION:
            self.timer.restore(local.position)
        logger.info(f"[reconcile] restored local snapshot tab={self.tab_id} screen={self.screen}")

    def _schedule_retry(self) -> None:
        if self._retry_handle is not None:
            return

        def retry():
            self._retry_handle = None
            self.reconcile()

        self._retry_handle = self.scheduler.call_later(self.retry_delay, retry)

    # ---- screen transitions ----

    @_locked
    def open_decision(self) -> None:
        if self.screen != SCREEN_SCENARIO:
            return
        position = self.game_state.get('currentPosition')
        self.screen = SCREEN_DECISION
        if self.timer.restore(position) is None and not self.timer.running:
            self.timer.start(self.game_state.get('timeLimitSeconds') or DEFAULT_TIME_LIMIT_SEC, position)
        self.save_snapshot()

    @_locked
    def update_draft(self, decision: Optional[str] = None, rationale: Optional[str] = None) -> None:
        if decision is not None:
            self.draft['decision'] = decision
        if rationale is not None:
            self.draft['rationale'] = rationale

    @_locked
    def show_leaderboard(self) -> None:
        if self.screen in (SCREEN_RESULTS, SCREEN_COMPLETE):
            self.screen = SCREEN_LEADERBOARD
            self.save_snapshot()

    @_locked
    def submit(self, decision: Optional[str] = None, rationale: Optional[str] = None,
               position: Optional[int] = None) -> Optional[Dict[str, Any]]:
        position = position if position is not None else self.game_state.get('currentPosition')
        decision = self.draft['decision'] if decision is None else decision
        rationale = self.draft['rationale'] if rationale is None else rationale
        try:
            response = self.api.submit_decision(position, decision, rationale)
        except OfflineError:
            self.queue_offline({'type': 'submit', 'position': position, 'decision': decision, 'rationale': rationale})
            self.offline = True
            self._schedule_retry()
            return None
        except ApiError as exc:
            if exc.status != 409:
                raise
            logger.info(f"[submit] position={position} already recorded, showing results")
            self.timer.stop()
            self.results_data = self._fetch_results(position)
            self.screen = SCREEN_RESULTS
            self.save_snapshot()
            return None
        self.timer.stop()
        self.draft = {'decision': '', 'rationale': ''}
        self.results_data = response.get('result')
        self.game_state['completeCurrentStepForTeam'] = True
        self.game_state['totalScore'] = response.get('newTotalScore')
        self.game_state['teamPosition'] = response.get('newPosition')
        self.screen = SCREEN_RESULTS
        self.save_snapshot()
        return response

    def _on_timer_expired(self, position: Optional[int]) -> None:
        if position is None or position in self._auto_submitted:
            return
        self._auto_submitted.add(position)
        logger.info(f"[auto-submit] tab={self.tab_id} position={position}")
        self.submit(position=position)

    # ---- offline queue ----

    @_locked
    def queue_offline(self, operation: Dict[str, Any]) -> None:
        if len(self.offline_queue) == self.offline_queue.maxlen:
            logger.warning("[offline] queue full, dropping oldest operation")
        self.offline_queue.append(dict(operation, queuedAt=self.clock()))
        logger.info(f"[offline] queued type={operation['type']} size={len(self.offline_queue)}")

    @_locked
    def flush_offline_queue(self) -> int:
        operations = list(self.offline_queue)
        self.offline_queue.clear()
        replayed = 0
        for index, operation in enumerate(operations):
            if operation['type'] != 'submit':
                logger.warning(f"[offline] unknown operation type={operation['type']}")
                continue
            try:
                self.api.submit_decision(operation['position'], operation['decision'], operation['rationale'])
            except OfflineError:
                for pending in operations[index:]:
                    self.offline_queue.append(pending)
                self.offline = True
                break
            except ApiError as exc:
                logger.info(f"[offline] replay position={operation['position']} rejected: {exc}")
            replayed += 1
        return replayed

    @_locked
    def on_reconnect(self) -> str:
        if self.kicked:
            return self.screen
        return self.reconcile()

    # ---- socket events ----

    @_locked
    def handle_event(self, event: str, payload: Optional[Dict[str, Any]] = None) -> str:
        if event == 'team-kicked':
            self._handle_kicked()
        elif self.kicked:
            pass
        elif event == 'game-reset':
            self.clear_local_state()
            self._auto_submitted.clear()
            self.reconcile()
        elif event in REFETCH_EVENTS:
            self.reconcile()
        return self.screen

    def _handle_kicked(self) -> None:
        logger.warning(f"[kicked] team={self.team_id} tab={self.tab_id}")
        self.clear_local_state()
        self.kicked = True
        self.team_id = None
        self.screen = SCREEN_LOGIN

    # ---- local persistence ----

    def load_snapshot(self) -> Optional[ClientLocalSnapshot]:
        raw = self.storage.get(GAME_STATE_KEY)
        if raw is None:
            return None
        try:
            return ClientLocalSnapshot.from_json(raw)
        except SnapshotCorrupt as exc:
            logger.warning(f"[snapshot] discarding corrupt game state: {exc}")
            self.storage.remove(GAME_STATE_KEY)
            return None

    @_locked
    def save_snapshot(self) -> ClientLocalSnapshot:
        timestamp = max(self.clock(), self.last_applied_ts + 1)
        timer = self.timer.state
        snapshot = ClientLocalSnapshot(
            screen=self.screen,
            tab_id=self.tab_id,
            timestamp=timestamp,
            team_id=self.team_id,
            game_state=self.game_state,
            current_scenario=self.current_scenario,
            timer_start=timer.start_time if timer else None,
            timer_duration=timer.duration if timer else None,
            results_data=self.results_data,
        )
        self.storage.set(GAME_STATE_KEY, snapshot.to_json())
        self.last_applied_ts = timestamp
        return snapshot

    def clear_local_state(self) -> None:
        self.timer.clear()
        self.storage.remove(GAME_STATE_KEY)
        self.storage.remove(TIMER_STATE_KEY)
        self.game_state = {}
        self.current_scenario = None
        self.results_data = None
        self.draft = {'decision': '', 'rationale': ''}

    @_locked
    def unload(self) -> None:
        """Tab is closing: persist the snapshot, leave the timer state behind."""
        if self.team_id is not None and not self.kicked:
            self.save_snapshot()
        self.timer.detach()
        self.storage.close()

    @_locked
    def _on_storage_event(self, key: str, value: Optional[str]) -> None:
        if key != GAME_STATE_KEY or value is None or self.kicked:
            return
        try:
            incoming = ClientLocalSnapshot.from_json(value)
        except SnapshotCorrupt as exc:
            logger.warning(f"[tab-sync] ignoring corrupt state from another tab: {exc}")
            return
        if incoming.tab_id == self.tab_id or incoming.timestamp <= self.last_applied_ts:
            return
        if self.team_id is not None and incoming.team_id != self.team_id:
            return
        logger.info(f"[tab-sync] tab={self.tab_id} adopting screen={incoming.screen} from={incoming.tab_id}")
        self.screen = incoming.screen
        self.game_state = dict(incoming.game_state)
        self.current_scenario = incoming.current_scenario
        self.results_data = incoming.results_data
        self.last_applied_ts = incoming.timestamp
