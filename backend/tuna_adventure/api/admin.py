from flask import Blueprint, jsonify, request
from flask_login import current_user

from tuna_adventure.access import admin_required
from tuna_adventure.errors import GameError, ValidationError
from tuna_adventure.runtime import get_runtime
from tuna_adventure.services.game import leaderboard as read_models
from tuna_adventure.services.game.archive import archive_session
from tuna_adventure.services.game.settings import get_settings, update_settings

admin = Blueprint('admin', __name__)


@admin.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify({'error': str(exc)}), exc.status_code


# ---- session state ----

@admin.route('/phase', methods=['GET'])
@admin_required
def get_phase():
    return jsonify(get_runtime().sessions.get_state())


@admin.route('/phase', methods=['PUT'])
@admin_required
def set_phase():
    data = request.get_json(silent=True) or {}
    return jsonify(get_runtime().sessions.set_phase(data.get('phase')))


@admin.route('/position', methods=['GET'])
@admin_required
def get_position():
    state = get_runtime().sessions.get_state()
    return jsonify({'current_position': state['current_position']})


@admin.route('/position', methods=['PUT'])
@admin_required
def set_position():
    data = request.get_json(silent=True) or {}
    return jsonify(get_runtime().sessions.set_position(data.get('position')))


@admin.route('/start', methods=['POST'])
@admin_required
def start():
    return jsonify(get_runtime().sessions.start_all())


@admin.route('/advance', methods=['POST'])
@admin_required
def advance():
    return jsonify(get_runtime().sessions.advance_all())


@admin.route('/end', methods=['POST'])
@admin_required
def end():
    return jsonify(get_runtime().sessions.end_all())


@admin.route('/reset', methods=['POST'])
@admin_required
def reset():
    return jsonify(get_runtime().sessions.reset_all())


# ---- teams ----

@admin.route('/teams')
@admin_required
def teams():
    return jsonify({'teams': read_models.all_teams(get_runtime().cache)})


@admin.route('/teams/<int:team_id>')
@admin_required
def team_details(team_id):
    return jsonify(read_models.team_details(team_id))


@admin.route('/teams/<int:team_id>/kick', methods=['POST'])
@admin_required
def kick_team(team_id):
    get_runtime().sessions.kick(team_id)
    return jsonify({'message': 'Team kicked', 'team_id': team_id})


@admin.route('/teams/<int:team_id>/unban', methods=['POST'])
@admin_required
def unban_team(team_id):
    was_kicked = get_runtime().sessions.unban(team_id)
    return jsonify({'message': 'Team unbanned' if was_kicked else 'Team was not kicked', 'team_id': team_id})


@admin.route('/scenarios/<position>/decisions')
@admin_required
def scenario_decisions(position):
    return jsonify(read_models.scenario_decisions(position))


@admin.route('/stats')
@admin_required
def stats():
    return jsonify(read_models.game_stats(get_runtime().cache))


# ---- settings & archive ----

@admin.route('/settings', methods=['GET'])
@admin_required
def settings():
    return jsonify({'settings': get_settings()})


@admin.route('/settings', methods=['PUT'])
@admin_required
def put_settings():
    data = request.get_json(silent=True) or {}
    payload = data.get('settings')
    if payload is None:
        raise ValidationError('Invalid settings format')
    return jsonify({'settings': update_settings(payload, updated_by=current_user.username)})


@admin.route('/archive', methods=['POST'])
@admin_required
def archive():
    return jsonify(archive_session(get_runtime().cache)), 201
