import re
from typing import Any, Dict, List

from flask import current_app

from tuna_adventure import db
from tuna_adventure.errors import Conflict, Unauthorized, ValidationError, Forbidden
from tuna_adventure.models import Player, Team, FIRST_POSITION

NAME_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-_]+$')


def _clean_name(raw, label: str, min_len: int, max_len: int) -> str:
    name = (raw or '').strip() if isinstance(raw, str) else ''
    if not min_len <= len(name) <= max_len:
        raise ValidationError(f'{label} must be between {min_len} and {max_len} characters')
    if not NAME_PATTERN.match(name):
        raise ValidationError(f'{label} can only contain letters, numbers, spaces, hyphens, and underscores')
    return name


def validate_registration(data) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError('Missing registration data')
    team_name = _clean_name(data.get('teamName'), 'Team name', 3, 50)
    password = data.get('password')
    if not isinstance(password, str) or len(password) < 6:
        raise ValidationError('Password must be at least 6 characters long')
    max_players = int(current_app.config.get('MAX_PLAYERS_PER_TEAM', 5))
    players = data.get('players')
    if not isinstance(players, list) or not 1 <= len(players) <= max_players:
        raise ValidationError(f'Team must have between 1 and {max_players} players')
    names: List[str] = []
    for player in players:
        raw = player.get('name') if isinstance(player, dict) else player
        names.append(_clean_name(raw, 'Player name', 2, 30))
    return {'team_name': team_name, 'password': password, 'players': names}


def register_team(data, cache) -> Team:
    cleaned = validate_registration(data)
    if Team.query.filter_by(name=cleaned['team_name']).first():
        raise Conflict('Team name already exists')

    team = Team(name=cleaned['team_name'], current_position=FIRST_POSITION, total_score=0)
    team.set_password(cleaned['password'])
    for index, name in enumerate(cleaned['players']):
        team.players.append(Player(name=name, role='leader' if index == 0 else 'member'))
    db.session.add(team)
    db.session.commit()

    cache.create_or_update_team(
        team.id,
        name=team.name,
        current_position=team.current_position,
        total_score=team.total_score,
        decisions=[],
    )
    current_app.logger.info(f"[register] team={team.id} name={team.name} players={len(team.players)}")
    return team


def authenticate_team(team_name, password, cache) -> Team:
    if not team_name or not password:
        raise ValidationError('Team name and password are required')
    team = Team.query.filter_by(name=str(team_name).strip()).first()
    if team is None or not team.check_password(password):
        raise Unauthorized('Invalid team name or password')
    if cache.is_team_kicked(team.id):
        raise Forbidden('Team has been removed from the game')
    return team
