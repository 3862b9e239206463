"""Browser-local state, as stored under the `tuna_game_state` and
`tuna_timer_state` keys.

Both records are advisory. Anything that fails to parse is reported as
`SnapshotCorrupt` and the caller treats it as absent.
"""
import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

GAME_STATE_KEY = 'tuna_game_state'
TIMER_STATE_KEY = 'tuna_timer_state'

SCREEN_LOGIN = 'login'
SCREEN_LOADING = 'loading'
SCREEN_WELCOME = 'welcome'
SCREEN_SCENARIO = 'scenario'
SCREEN_DECISION = 'decision'
SCREEN_RESULTS = 'results'
SCREEN_LEADERBOARD = 'leaderboard'
SCREEN_COMPLETE = 'complete'
SCREENS = (
    SCREEN_LOGIN, SCREEN_LOADING, SCREEN_WELCOME, SCREEN_SCENARIO,
    SCREEN_DECISION, SCREEN_RESULTS, SCREEN_LEADERBOARD, SCREEN_COMPLETE,
)


class SnapshotCorrupt(ValueError):
    pass


def _load(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise SnapshotCorrupt(f'unparseable snapshot: {exc}') from exc
    if not isinstance(data, dict):
        raise SnapshotCorrupt('snapshot is not an object')
    return data


def _number(data, key, required=True):
    value = data.get(key)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotCorrupt(f'{key} must be a number')
    return value


@dataclass
class TimerSnapshot:
    start_time: float  # epoch milliseconds
    duration: int  # seconds
    scenario_position: Optional[int] = None
    is_active: bool = True

    def remaining(self, now_ms: float) -> int:
        elapsed = math.floor((now_ms - self.start_time) / 1000)
        return max(0, int(self.duration - elapsed))

    def to_json(self) -> str:
        return json.dumps({
            'startTime': self.start_time,
            'duration': self.duration,
            'scenarioPosition': self.scenario_position,
            'isActive': self.is_active,
        })

    @classmethod
    def from_json(cls, raw: str) -> 'TimerSnapshot':
        data = _load(raw)
        position = _number(data, 'scenarioPosition', required=False)
        return cls(
            start_time=_number(data, 'startTime'),
            duration=int(_number(data, 'duration')),
            scenario_position=int(position) if position is not None else None,
            is_active=bool(data.get('isActive')),
        )


@dataclass
class ClientLocalSnapshot:
    screen: str
    tab_id: str
    timestamp: float  # epoch milliseconds
    team_id: Optional[int] = None
    game_state: Dict[str, Any] = field(default_factory=dict)
    current_scenario: Optional[Dict[str, Any]] = None
    timer_start: Optional[float] = None
    timer_duration: Optional[int] = None
    results_data: Optional[Dict[str, Any]] = None

    @property
    def position(self) -> Optional[int]:
        if self.current_scenario and self.current_scenario.get('position') is not None:
            return self.current_scenario['position']
        return self.game_state.get('currentPosition')

    def to_json(self) -> str:
        return json.dumps({
            'screen': self.screen,
            'tabId': self.tab_id,
            'timestamp': self.timestamp,
            'teamId': self.team_id,
            'gameState': self.game_state,
            'currentScenario': self.current_scenario,
            'timerStart': self.timer_start,
            'timerDuration': self.timer_duration,
            'resultsData': self.results_data,
        })

    @classmethod
    def from_json(cls, raw: str) -> 'ClientLocalSnapshot':
        data = _load(raw)
        screen = data.get('screen')
        if screen not in SCREENS:
            raise SnapshotCorrupt(f'unknown screen {screen!r}')
        tab_id = data.get('tabId')
        if not isinstance(tab_id, str) or not tab_id:
            raise SnapshotCorrupt('tabId is required')
        game_state = data.get('gameState') or {}
        scenario = data.get('currentScenario')
        results = data.get('resultsData')
        if not isinstance(game_state, dict) or not isinstance(scenario, (dict, type(None))) \
                or not isinstance(results, (dict, type(None))):
            raise SnapshotCorrupt('invalid snapshot structure')
        team_id = _number(data, 'teamId', required=False)
        return cls(
            screen=screen,
            tab_id=tab_id,
            timestamp=_number(data, 'timestamp'),
            team_id=int(team_id) if team_id is not None else None,
            game_state=game_state,
            current_scenario=scenario,
            timer_start=_number(data, 'timerStart', required=False),
            timer_duration=_number(data, 'timerDuration', required=False),
            results_data=results,
        )
