from flask import Blueprint, jsonify, request

from tuna_adventure.access import team_required, current_team
from tuna_adventure.errors import GameError
from tuna_adventure.runtime import get_runtime
from tuna_adventure.services.game.leaderboard import leaderboard as build_leaderboard, team_rank
from tuna_adventure.services.game.status import team_status, check_submission_allowed, get_scenario_for_team

game = Blueprint('game', __name__)


@game.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify({'error': str(exc)}), exc.status_code


@game.route('/status')
@team_required
def status():
    team = current_team()
    get_runtime().cache.touch_team(team.id)
    return jsonify(team_status(team))


@game.route('/decisions', methods=['POST'])
@team_required
def submit_decision():
    data = request.get_json(silent=True) or {}
    runtime = get_runtime()
    team = current_team()
    position = check_submission_allowed(team, data.get('position'), runtime.cache)
    result = runtime.decisions.submit(team.id, position, data.get('decision'), data.get('rationale'))
    return jsonify(result), 201


@game.route('/decisions/<position>')
@team_required
def get_decision(position):
    return jsonify(get_runtime().decisions.get_decision(current_team().id, position))


@game.route('/scenarios/<position>')
@team_required
def get_scenario(position):
    return jsonify(get_scenario_for_team(current_team(), position))


@game.route('/leaderboard')
@team_required
def leaderboard():
    return jsonify({'leaderboard': build_leaderboard()})


@game.route('/rank')
@team_required
def rank():
    return jsonify(team_rank(current_team().id))
