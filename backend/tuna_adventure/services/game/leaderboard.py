from typing import Any, Dict, List

from sqlalchemy import func

from tuna_adventure import db
from tuna_adventure.errors import TeamNotFound
from tuna_adventure.models import Decision, Player, Scenario, Team, LAST_POSITION
from tuna_adventure.services.game.decisions import parse_position

LEADERBOARD_SIZE = 10


def _ranked_query():
    return Team.query.order_by(Team.total_score.desc(), Team.current_position.desc(), Team.created_at.asc(), Team.id.asc())


def leaderboard(limit: int = LEADERBOARD_SIZE) -> List[Dict[str, Any]]:
    rows = []
    for rank, team in enumerate(_ranked_query().limit(limit).all(), start=1):
        rows.append({
            'rank': rank,
            'team_id': team.id,
            'team_name': team.name,
            'total_score': team.total_score,
            'current_position': team.current_position,
            'player_count': len(team.players),
        })
    return rows


def team_rank(team_id: int) -> Dict[str, Any]:
    team = db.session.get(Team, team_id)
    if team is None:
        raise TeamNotFound()
    ahead = Team.query.filter(
        (Team.total_score > team.total_score)
        | ((Team.total_score == team.total_score) & (Team.current_position > team.current_position))
    ).count()
    return {
        'teamId': team.id,
        'teamName': team.name,
        'rank': ahead + 1,
        'totalTeams': Team.query.count(),
    }


def all_teams(cache) -> List[Dict[str, Any]]:
    """Admin roster: database progress plus live presence from the cache."""
    connected = cache.get_connected_teams()
    rows = []
    for team in _ranked_query().all():
        data = team.to_dict()
        data['is_connected'] = team.id in connected
        data['is_kicked'] = cache.is_team_kicked(team.id)
        rows.append(data)
    return rows


def team_details(team_id: int) -> Dict[str, Any]:
    team = db.session.get(Team, team_id)
    if team is None:
        raise TeamNotFound()
    decisions = []
    for decision in team.decisions.order_by(Decision.position).all():
        entry = decision.to_dict()
        scenario = Scenario.query.filter_by(position=decision.position).first()
        if scenario:
            entry['scenario'] = scenario.to_dict(include_reference=True)
        decisions.append(entry)
    return {
        'team': team.to_dict(),
        'decisions': decisions,
    }


def scenario_decisions(position) -> Dict[str, Any]:
    position = parse_position(position)
    scenario = Scenario.query.filter_by(position=position).first()
    rows = (
        db.session.query(Decision, Team)
        .join(Team, Decision.team_id == Team.id)
        .filter(Decision.position == position)
        .order_by(Decision.score.desc(), Decision.created_at.asc())
        .all()
    )
    return {
        'scenario': scenario.to_dict(include_reference=True) if scenario else None,
        'decisions': [dict(decision.to_dict(), team_name=team.name) for decision, team in rows],
    }


def game_stats(cache) -> Dict[str, Any]:
    state = cache.get_game_state()
    total_teams = Team.query.count()
    active_teams = db.session.query(func.count(func.distinct(Decision.team_id))).scalar() or 0
    completed_teams = Team.query.filter(Team.current_position > LAST_POSITION).count()
    average = db.session.query(func.avg(Decision.score)).scalar()
    per_position = dict(
        db.session.query(Decision.position, func.count(Decision.id)).group_by(Decision.position).all()
    )
    return {
        'phase': state['phase'],
        'current_position': state['current_position'],
        'session_started': state['session_started'],
        'total_teams': total_teams,
        'active_teams': active_teams,
        'completed_teams': completed_teams,
        'connected_teams': state['connected_count'],
        'total_players': Player.query.count(),
        'average_score': round(float(average), 2) if average is not None else 0.0,
        'decisions_per_position': {str(k): v for k, v in sorted(per_position.items())},
    }
