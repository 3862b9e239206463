from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user

from tuna_adventure.access import is_admin
from tuna_adventure.errors import GameError, Unauthorized, ValidationError
from tuna_adventure.models import Admin
from tuna_adventure.runtime import get_runtime
from tuna_adventure.services.game.teams import register_team, authenticate_team

auth = Blueprint('auth', __name__)


@auth.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify({'error': str(exc)}), exc.status_code


@auth.route('/register', methods=['POST'])
def register():
    team = register_team(request.get_json(silent=True), get_runtime().cache)
    login_user(team, remember=True)
    return jsonify({
        'message': 'Team registered successfully',
        'team': team.to_dict(),
    }), 201


@auth.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    team = authenticate_team(data.get('teamName'), data.get('password'), get_runtime().cache)
    login_user(team, remember=True)
    current_app.logger.info(f"[login] team={team.id}")
    return jsonify({
        'message': 'Logged in successfully.',
        'team': team.to_dict(),
    })


@auth.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})


@auth.route('/me')
@login_required
def me():
    principal = current_user._get_current_object()
    if is_admin(principal):
        return jsonify({'role': 'admin', 'admin': principal.to_dict()})
    return jsonify({'role': 'team', 'team': principal.to_dict()})


@auth.route('/admin/login', methods=['POST'])
def admin_login():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    password = data.get('password')
    if not username or not password:
        raise ValidationError('Username and password are required')
    admin = Admin.query.filter_by(username=username).first()
    if admin is None or not admin.check_password(password):
        raise Unauthorized('Invalid username or password')
    login_user(admin, remember=True)
    current_app.logger.info(f"[admin-login] admin={admin.id}")
    return jsonify({'message': 'Logged in successfully.', 'admin': admin.to_dict()})
