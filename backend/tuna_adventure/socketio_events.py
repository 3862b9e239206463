from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from tuna_adventure import socketio, db, SOCKET_NAMESPACE
from tuna_adventure.access import current_team, is_admin
from tuna_adventure.errors import GameError, ValidationError
from tuna_adventure.models import Team
from tuna_adventure.realtime import ADMIN_ROOM, team_room
from tuna_adventure.runtime import get_runtime


def _get_sid() -> str:
    return request.sid  # type: ignore


def _team_id_from(data):
    raw = (data or {}).get('teamId')
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def handle_connect(auth=None):
    get_runtime().start()
    current_app.logger.debug(f"[ws-connect] sid={_get_sid()}")


def handle_disconnect(reason=None):
    runtime = get_runtime()
    sid = _get_sid()
    runtime.cache.remove_connected_admin(sid)
    team_id = runtime.cache.team_for_sid(sid)
    # A stale socket from an earlier join must not clear the live one
    if team_id is not None and runtime.cache.remove_connected_team(team_id, sid=sid):
        runtime.broker.team_disconnected(team_id, reason='disconnect')


# ---- team events ----

def handle_team_join(data=None):
    runtime = get_runtime()
    team_id = _team_id_from(data)
    if team_id is None:
        emit('error', {'message': 'teamId is required'})
        return
    principal = current_team()
    if principal is None:
        emit('error', {'message': 'Team access required'})
        return
    if principal.id != team_id:
        emit('error', {'message': 'Cannot join as another team'})
        return
    if runtime.cache.is_team_kicked(team_id):
        emit('team-kicked', {'teamId': team_id})
        return
    team = db.session.get(Team, team_id)
    if team is None:
        emit('error', {'message': 'Team not found'})
        return

    sid = _get_sid()
    room = team_room(team_id)
    join_room(room)
    previous_sid = runtime.cache.add_connected_team(team_id, sid)
    if runtime.cache.get_team(team_id) is None:
        runtime.cache.create_or_update_team(
            team_id, name=team.name, current_position=team.current_position, total_score=team.total_score,
        )
    emit('joined', {'room': room, 'teamId': team_id})
    emit('game-state-update', runtime.broker.state_payload())
    if previous_sid != sid:
        current_app.logger.info(f"[team-join] team={team_id} sid={sid} replaced={previous_sid}")
        runtime.broker.team_connected(team_id, team.name)


def handle_team_logout(data=None):
    runtime = get_runtime()
    sid = _get_sid()
    team_id = runtime.cache.team_for_sid(sid)
    if team_id is None:
        return
    leave_room(team_room(team_id))
    if runtime.cache.remove_connected_team(team_id, sid=sid):
        runtime.broker.team_disconnected(team_id, reason='logout')


def handle_team_progress(data=None):
    runtime = get_runtime()
    team_id = runtime.cache.team_for_sid(_get_sid())
    if team_id is None:
        return
    runtime.cache.touch_team(team_id)
    # Relayed from cached values; the reported numbers are ignored
    runtime.broker.team_progress(team_id)


def handle_decision_notify(data=None):
    runtime = get_runtime()
    team_id = runtime.cache.team_for_sid(_get_sid())
    if team_id is None:
        return
    team = runtime.cache.get_team(team_id) or {}
    try:
        position = int((data or {}).get('position'))
    except (TypeError, ValueError):
        return
    recorded = next((d for d in team.get('decisions', []) if d.get('position') == position), None)
    if recorded is None:
        return
    runtime.broker.decision_submitted(team_id, position, recorded['score'])


def handle_request_game_state(data=None):
    emit('game-state-update', get_runtime().broker.state_payload())


# ---- admin events ----

def handle_admin_join(data=None):
    if not is_admin():
        emit('error', {'message': 'Admin access required'})
        return
    runtime = get_runtime()
    join_room(ADMIN_ROOM)
    runtime.cache.add_connected_admin(_get_sid())
    emit('joined', {'room': ADMIN_ROOM})
    emit('game-state-update', runtime.broker.state_payload())


def _admin_command(action):
    def handler(data=None):
        runtime = get_runtime()
        if not is_admin() or not runtime.cache.is_admin_sid(_get_sid()):
            emit('error', {'message': 'Admin access required'})
            return
        try:
            action(runtime.sessions, data or {})
        except GameError as exc:
            emit('error', {'message': str(exc)})
    return handler


def _team_command(method_name):
    def action(sessions, data):
        team_id = _team_id_from(data)
        if team_id is None:
            raise ValidationError('teamId is required')
        getattr(sessions, method_name)(team_id)
    return action


ADMIN_COMMANDS = {
    'start-all': lambda sessions, data: sessions.start_all(),
    'advance-all': lambda sessions, data: sessions.advance_all(),
    'end-all': lambda sessions, data: sessions.end_all(),
    'reset-all': lambda sessions, data: sessions.reset_all(),
    'kick-team': _team_command('kick'),
    'unban-team': _team_command('unban'),
}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the game namespace."""
    socketio.on_event('connect', handle_connect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=SOCKET_NAMESPACE)
    socketio.on_event('team-join', handle_team_join, namespace=SOCKET_NAMESPACE)
    socketio.on_event('team-logout', handle_team_logout, namespace=SOCKET_NAMESPACE)
    socketio.on_event('team-progress', handle_team_progress, namespace=SOCKET_NAMESPACE)
    socketio.on_event('decision-notify', handle_decision_notify, namespace=SOCKET_NAMESPACE)
    socketio.on_event('request-game-state', handle_request_game_state, namespace=SOCKET_NAMESPACE)
    socketio.on_event('admin-join', handle_admin_join, namespace=SOCKET_NAMESPACE)
    for event, action in ADMIN_COMMANDS.items():
        socketio.on_event(event, _admin_command(action), namespace=SOCKET_NAMESPACE)
