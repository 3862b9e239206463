"""In-process session cache with debounced file persistence.

The cache mirrors team progress and the global phase for low-latency reads
and real-time fan-out. It is a derived copy: on boot it is restored from its
recovery file and then overwritten by whatever the database holds.

Presence (connected teams and admins) lives only in memory and is never
written to disk.
"""
import copy
import json
import logging
import os
import shutil
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

PHASE_WAITING = 'waiting'


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _spawn_thread(target: Callable[..., Any], *args) -> None:
    threading.Thread(target=target, args=args, daemon=True).start()


class SnapshotError(Exception):
    """Raised when a recovery file cannot be parsed."""


class SessionCache:
    def __init__(
        self,
        snapshot_path: Optional[str] = None,
        debounce_sec: float = 1.0,
        backup_interval_sec: float = 60.0,
        spawn: Callable[..., Any] = _spawn_thread,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.snapshot_path = snapshot_path or None
        self.backup_path = f'{self.snapshot_path}.backup' if self.snapshot_path else None
        self.debounce_sec = debounce_sec
        self.backup_interval_sec = backup_interval_sec
        self._spawn = spawn
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._save_deadline = 0.0
        self._save_pending = False
        self._backup_running = False
        self.is_shutting_down = False
        self.save_count = 0
        self._reset_state()

    def _reset_state(self) -> None:
        self.phase = PHASE_WAITING
        self.current_position = 0
        self.session_started: Optional[str] = None
        self.last_updated = _now_iso()
        self.teams: Dict[int, Dict[str, Any]] = {}
        self.kicked_teams = set()
        # team_id -> {'sid': ..., 'last_seen': ...}
        self.connected_teams: Dict[int, Dict[str, Any]] = {}
        self.connected_admins = set()

    # ---- lifecycle ----

    def load(self) -> bool:
        """Restore from the recovery file, falling back to the backup.

        Returns True when a snapshot was restored. When neither file is
        readable the cache starts empty and the caller is expected to
        resynchronize from the database.
        """
        if not self.snapshot_path:
            return False
        for path in (self.snapshot_path, self.backup_path):
            if not os.path.exists(path):
                continue
            try:
                self._restore(self._read_snapshot(path))
            except SnapshotError as exc:
                logger.error(f"[cache-load] unreadable snapshot path={path} error={exc}")
                continue
            logger.info(
                f"[cache-load] restored path={path} teams={len(self.teams)} "
                f"phase={self.phase} position={self.current_position}"
            )
            return True
        logger.warning("[cache-load] no usable snapshot, starting with fresh state")
        with self._lock:
            self._reset_state()
        return False

    def sync_from_store(self, teams: Iterable[Dict[str, Any]], phase: str, current_position: int,
                        session_started: Optional[str] = None) -> None:
        """Overwrite cached progress with database truth.

        `teams` yields dicts with id, name, current_position, total_score and
        decisions. Teams missing from the database are dropped; the denylist
        is kept.
        """
        with self._lock:
            synced = {}
            for row in teams:
                existing = self.teams.get(row['id'], {})
                entry = dict(existing)
                entry.update({
                    'id': row['id'],
                    'name': row['name'],
                    'current_position': row['current_position'],
                    'total_score': row['total_score'],
                    'decisions': list(row.get('decisions') or []),
                    'updated_at': _now_iso(),
                })
                entry.setdefault('created_at', _now_iso())
                synced[row['id']] = entry
            dropped = set(self.teams) - set(synced)
            self.teams = synced
            self.phase = phase
            self.current_position = current_position
            self.session_started = session_started
        logger.info(
            f"[cache-sync] teams={len(synced)} dropped={len(dropped)} phase={phase} position={current_position}"
        )
        self.save_now()

    def start(self) -> None:
        """Start the periodic backup loop."""
        if not self.snapshot_path or self._backup_running:
            return
        self._backup_running = True
        self._stop.clear()
        self._spawn(self._backup_loop)

    def shutdown(self, reason: str = 'shutdown') -> None:
        """Cancel pending debounced saves, then write a final snapshot and backup."""
        with self._lock:
            if self.is_shutting_down:
                return
            self.is_shutting_down = True
            self._save_pending = False
        self._stop.set()
        logger.info(f"[cache-shutdown] reason={reason} saving final state")
        self._perform_save()
        self.create_backup()

    # ---- persistence ----

    def schedule_save(self) -> None:
        """Debounced save: bursts of calls collapse into one write."""
        if not self.snapshot_path or self.is_shutting_down:
            return
        with self._lock:
            self._save_deadline = self._clock() + self.debounce_sec
            if self._save_pending:
                return
            self._save_pending = True
        self._spawn(self._debounced_save_worker)

    def _debounced_save_worker(self) -> None:
        while True:
            with self._lock:
                if not self._save_pending:
                    return
                remaining = self._save_deadline - self._clock()
                if remaining <= 0:
                    self._save_pending = False
                    break
            self._sleep(remaining)
        self._perform_save()

    def save_now(self) -> None:
        if not self.snapshot_path or self.is_shutting_down:
            return
        with self._lock:
            self._save_pending = False
        self._perform_save()

    def _perform_save(self) -> None:
        if not self.snapshot_path:
            return
        with self._lock:
            self.last_updated = _now_iso()
            payload = self.to_snapshot()
        directory = os.path.dirname(os.path.abspath(self.snapshot_path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f'{self.snapshot_path}.tmp'
        try:
            with open(tmp_path, 'w', encoding='utf-8') as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self.snapshot_path)
        except OSError as exc:
            # In-memory state stays authoritative for this process
            logger.error(f"[cache-save] failed path={self.snapshot_path} error={exc}")
            return
        self.save_count += 1
        logger.debug(f"[cache-save] teams={len(payload['teams'])} phase={payload['phase']}")

    def create_backup(self) -> None:
        if not self.snapshot_path or not os.path.exists(self.snapshot_path):
            return
        try:
            shutil.copyfile(self.snapshot_path, self.backup_path)
        except OSError as exc:
            logger.error(f"[cache-backup] failed path={self.backup_path} error={exc}")
            return
        logger.info(f"[cache-backup] written path={self.backup_path}")

    def _backup_loop(self) -> None:
        while not self._stop.wait(self.backup_interval_sec):
            self.create_backup()
        self._backup_running = False

    def to_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'phase': self.phase,
                'current_position': self.current_position,
                'session_started': self.session_started,
                'last_updated': self.last_updated,
                'teams': copy.deepcopy(list(self.teams.values())),
                'kicked_teams': sorted(self.kicked_teams),
            }

    @staticmethod
    def _read_snapshot(path: str) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise SnapshotError(str(exc)) from exc
        if not isinstance(data, dict) or not isinstance(data.get('teams', []), list):
            raise SnapshotError('invalid snapshot structure')
        return data

    def _restore(self, data: Dict[str, Any]) -> None:
        try:
            teams = {int(t['id']): dict(t, id=int(t['id'])) for t in data.get('teams') or []}
            kicked = {int(t) for t in data.get('kicked_teams') or []}
            position = int(data.get('current_position') or 0)
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f'invalid snapshot field: {exc}') from exc
        with self._lock:
            self._reset_state()
            self.phase = data.get('phase') or PHASE_WAITING
            self.current_position = position
            self.session_started = data.get('session_started')
            self.last_updated = data.get('last_updated') or _now_iso()
            self.teams = teams
            self.kicked_teams = kicked

    # ---- global game state ----

    def get_game_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'phase': self.phase,
                'current_position': self.current_position,
                'session_started': self.session_started,
                'last_updated': self.last_updated,
                'connected_count': len(self.connected_teams),
                'total_teams': len(self.teams),
            }

    def update_game_state(self, phase: str, position: Optional[int] = None) -> None:
        with self._lock:
            self.phase = phase
            if position is not None:
                self.current_position = position
            if phase == 'running' and not self.session_started:
                self.session_started = _now_iso()
        logger.info(f"[cache-state] phase={phase} position={self.current_position}")
        self.schedule_save()

    def reset_session(self) -> None:
        with self._lock:
            self.phase = PHASE_WAITING
            self.current_position = 0
            self.session_started = None
            self.kicked_teams.clear()
            for team in self.teams.values():
                team['current_position'] = 1
                team['total_score'] = 0
                team['decisions'] = []
                team['updated_at'] = _now_iso()
        logger.info(f"[cache-reset] teams={len(self.teams)}")
        self.save_now()

    # ---- teams ----

    def get_team(self, team_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            team = self.teams.get(team_id)
            return copy.deepcopy(team) if team else None

    def get_all_teams(self) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(list(self.teams.values()))

    def create_or_update_team(self, team_id: int, **fields) -> Dict[str, Any]:
        with self._lock:
            existing = self.teams.get(team_id) or {
                'id': team_id,
                'current_position': 1,
                'total_score': 0,
                'decisions': [],
                'created_at': _now_iso(),
            }
            updated = dict(existing)
            updated.update(fields)
            updated['id'] = team_id
            updated['updated_at'] = _now_iso()
            self.teams[team_id] = updated
            result = copy.deepcopy(updated)
        self.schedule_save()
        return result

    def add_decision(self, team_id: int, position: int, score: int, new_position: int,
                     new_total_score: int, decision: str = '', rationale: str = '') -> bool:
        with self._lock:
            team = self.teams.get(team_id)
            if team is None:
                logger.error(f"[cache-decision] team={team_id} not found in cache")
                return False
            history = team.setdefault('decisions', [])
            if any(d.get('position') == position for d in history):
                logger.info(f"[cache-decision] team={team_id} position={position} already recorded")
            else:
                history.append({
                    'position': position,
                    'score': score,
                    'decision': decision,
                    'rationale': rationale,
                    'timestamp': _now_iso(),
                })
            team['current_position'] = max(team.get('current_position', 1), new_position)
            team['total_score'] = max(team.get('total_score', 0), new_total_score)
            team['updated_at'] = _now_iso()
        self.schedule_save()
        return True

    # ---- presence ----

    def add_connected_team(self, team_id: int, sid: str) -> Optional[str]:
        """Register `sid` as the live connection for a team; returns the replaced sid."""
        with self._lock:
            previous = self.connected_teams.get(team_id)
            self.connected_teams[team_id] = {'sid': sid, 'last_seen': _now_iso()}
        logger.info(f"[presence] team={team_id} connected sid={sid}")
        return previous['sid'] if previous else None

    def remove_connected_team(self, team_id: int, sid: Optional[str] = None) -> bool:
        """Drop presence. With `sid`, only when it is still the registered connection."""
        with self._lock:
            current = self.connected_teams.get(team_id)
            if current is None or (sid is not None and current['sid'] != sid):
                return False
            del self.connected_teams[team_id]
        logger.info(f"[presence] team={team_id} disconnected")
        return True

    def touch_team(self, team_id: int) -> None:
        with self._lock:
            current = self.connected_teams.get(team_id)
            if current is not None:
                current['last_seen'] = _now_iso()

    def team_for_sid(self, sid: str) -> Optional[int]:
        with self._lock:
            for team_id, info in self.connected_teams.items():
                if info['sid'] == sid:
                    return team_id
        return None

    def is_team_connected(self, team_id: int) -> bool:
        with self._lock:
            return team_id in self.connected_teams

    def get_connected_teams(self) -> Dict[int, Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self.connected_teams)

    def add_connected_admin(self, sid: str) -> None:
        with self._lock:
            self.connected_admins.add(sid)
        logger.info(f"[presence] admin connected sid={sid}")

    def remove_connected_admin(self, sid: str) -> bool:
        with self._lock:
            if sid not in self.connected_admins:
                return False
            self.connected_admins.discard(sid)
        logger.info(f"[presence] admin disconnected sid={sid}")
        return True

    def is_admin_sid(self, sid: str) -> bool:
        with self._lock:
            return sid in self.connected_admins

    # ---- denylist ----

    def kick_team(self, team_id: int) -> None:
        with self._lock:
            self.kicked_teams.add(team_id)
            self.connected_teams.pop(team_id, None)
        logger.info(f"[denylist] team={team_id} kicked")
        self.schedule_save()

    def unban_team(self, team_id: int) -> bool:
        with self._lock:
            if team_id not in self.kicked_teams:
                return False
            self.kicked_teams.discard(team_id)
        logger.info(f"[denylist] team={team_id} unbanned")
        self.schedule_save()
        return True

    def is_team_kicked(self, team_id: int) -> bool:
        with self._lock:
            return team_id in self.kicked_teams
