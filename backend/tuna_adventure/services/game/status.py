from typing import Any, Dict

from tuna_adventure import db
from tuna_adventure.errors import Forbidden, UnknownScenario
from tuna_adventure.models import Decision, Scenario, SessionState, Team, PHASE_RUNNING, FIRST_POSITION, LAST_POSITION
from tuna_adventure.services.game.decisions import parse_position
from tuna_adventure.services.game.settings import get_time_limit


def has_completed_step(team_id: int, position: int) -> bool:
    """The single rule for "has this team finished the announced step".

    A team has completed a step exactly when a Decision exists for it. Team
    position is not consulted: it can run ahead of or lag behind the global
    position when admins advance while a team is still answering.
    """
    if not FIRST_POSITION <= position <= LAST_POSITION:
        return False
    return db.session.query(
        Decision.query.filter_by(team_id=team_id, position=position).exists()
    ).scalar()


def team_status(team: Team) -> Dict[str, Any]:
    state = SessionState.get()
    db.session.commit()
    decisions = team.decisions.order_by(Decision.position).all()

    scenario = None
    if state.phase == PHASE_RUNNING and FIRST_POSITION <= state.current_position <= LAST_POSITION:
        scenario = Scenario.query.filter_by(position=state.current_position).first()

    return {
        'phase': state.phase,
        'currentPosition': state.current_position,
        'hasCurrentScenario': scenario is not None,
        'currentScenario': scenario.to_dict() if scenario else None,
        'completeCurrentStepForTeam': any(d.position == state.current_position for d in decisions),
        'totalScore': team.total_score,
        'teamPosition': team.current_position,
        'isComplete': team.is_complete,
        'teamName': team.name,
        'teamId': team.id,
        'completedDecisions': [{'position': d.position, 'score': d.score} for d in decisions],
        'timeLimitSeconds': get_time_limit(),
    }


def check_submission_allowed(team: Team, position, cache) -> int:
    """Position gating for team submissions; returns the parsed position."""
    position = parse_position(position)
    if cache.is_team_kicked(team.id):
        raise Forbidden('Team has been removed from the game')
    state = SessionState.get()
    db.session.commit()
    if state.phase != PHASE_RUNNING:
        raise Forbidden('Game is not running')
    if position > state.current_position:
        raise Forbidden('This scenario has not been opened yet')
    return position


def get_scenario_for_team(team: Team, position) -> Dict[str, Any]:
    position = parse_position(position)
    state = SessionState.get()
    db.session.commit()
    if position > state.current_position:
        raise Forbidden('This scenario has not been opened yet')
    scenario = Scenario.query.filter_by(position=position).first()
    if scenario is None:
        raise UnknownScenario()
    data = scenario.to_dict()
    data['completed'] = has_completed_step(team.id, position)
    return data
