import time
from typing import Any, Dict, Optional

ADMIN_ROOM = 'admins'


def team_room(team_id: int) -> str:
    return f"team:{team_id}"


class RealtimeBroker:
    """Fan-out side of the Socket.IO channel.

    Payloads are invalidation hints: clients re-fetch authoritative state
    instead of trusting them. Delivery is fire-and-forget.
    """

    def __init__(self, socketio, cache, namespace: str = '/ws'):
        self.socketio = socketio
        self.cache = cache
        self.namespace = namespace

    def emit(self, event: str, payload: Optional[Dict[str, Any]] = None, to: Optional[str] = None) -> None:
        self.socketio.emit(event, payload or {}, to=to, namespace=self.namespace)

    def to_admins(self, event: str, payload: Dict[str, Any]) -> None:
        self.emit(event, payload, to=ADMIN_ROOM)

    def to_team(self, team_id: int, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.emit(event, payload, to=team_room(team_id))

    def broadcast(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.emit(event, payload)

    def state_payload(self) -> Dict[str, Any]:
        state = self.cache.get_game_state()
        return {
            'phase': state['phase'],
            'currentPosition': state['current_position'],
            'connectedCount': state['connected_count'],
            'timestamp': int(time.time() * 1000),
        }

    def state_update(self) -> None:
        self.broadcast('game-state-update', self.state_payload())

    # ---- typed events ----

    def phase_event(self, event: str) -> None:
        """Announce a lifecycle transition followed by the generic state update."""
        payload = self.state_payload()
        self.broadcast(event, payload)
        self.broadcast('game-state-update', payload)

    def team_connected(self, team_id: int, team_name: Optional[str]) -> None:
        self.to_admins('team-connected', {
            'teamId': team_id,
            'teamName': team_name,
            'connectedCount': len(self.cache.get_connected_teams()),
        })

    def team_disconnected(self, team_id: int, reason: str = 'disconnect') -> None:
        self.to_admins('team-disconnected', {
            'teamId': team_id,
            'reason': reason,
            'connectedCount': len(self.cache.get_connected_teams()),
        })

    def team_kicked(self, team_id: int) -> None:
        payload = {'teamId': team_id}
        self.to_team(team_id, 'team-kicked', payload)
        self.to_admins('team-kicked', payload)

    def team_progress(self, team_id: int) -> None:
        team = self.cache.get_team(team_id)
        if not team:
            return
        self.to_admins('team-progress-update', {
            'teamId': team_id,
            'teamName': team.get('name'),
            'currentPosition': team['current_position'],
            'totalScore': team['total_score'],
            'isCompleted': team['current_position'] > 7,
        })

    def decision_submitted(self, team_id: int, position: int, score: int) -> None:
        team = self.cache.get_team(team_id) or {}
        self.to_admins('team-decision-submitted', {
            'teamId': team_id,
            'teamName': team.get('name'),
            'position': position,
            'score': score,
            'totalScore': team.get('total_score'),
        })
