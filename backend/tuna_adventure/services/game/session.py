"""Admin-driven session lifecycle.

Every command writes the database first, then mirrors the change into the
session cache, then fans out over Socket.IO.
"""
from typing import Any, Dict, List

from flask import current_app

from tuna_adventure import db
from tuna_adventure.errors import Conflict, TeamNotFound, ValidationError
from tuna_adventure.models import (
    Decision, SessionState, Team, PHASES, PHASE_ENDED, PHASE_RUNNING, PHASE_WAITING,
    FIRST_POSITION, LAST_POSITION, utcnow,
)


def roster_for_cache() -> List[Dict[str, Any]]:
    """Teams with their decision history, shaped for SessionCache.sync_from_store."""
    rows = []
    for team in Team.query.order_by(Team.id).all():
        rows.append({
            'id': team.id,
            'name': team.name,
            'current_position': team.current_position,
            'total_score': team.total_score,
            'decisions': [
                {
                    'position': d.position,
                    'score': d.score,
                    'decision': d.decision_text,
                    'rationale': d.rationale_text,
                    'timestamp': d.created_at.isoformat() if d.created_at else None,
                }
                for d in team.decisions.order_by(Decision.position).all()
            ],
        })
    return rows


class SessionService:
    def __init__(self, cache, broker):
        self.cache = cache
        self.broker = broker

    def rebuild_cache(self) -> None:
        """Resynchronize the cache from the database (database wins)."""
        state = SessionState.get()
        db.session.commit()
        self.cache.sync_from_store(
            roster_for_cache(),
            phase=state.phase,
            current_position=state.current_position,
            session_started=state.session_started_at.isoformat() if state.session_started_at else None,
        )

    def get_state(self) -> Dict[str, Any]:
        state = SessionState.get()
        db.session.commit()
        return state.to_dict()

    def _commit_state(self, state: SessionState, event: str = None) -> Dict[str, Any]:
        db.session.add(state)
        db.session.commit()
        self.cache.update_game_state(state.phase, state.current_position)
        current_app.logger.info(f"[session] phase={state.phase} position={state.current_position} event={event}")
        if event:
            self.broker.phase_event(event)
        else:
            self.broker.state_update()
        return state.to_dict()

    # ---- raw admin writes ----

    def set_phase(self, phase) -> Dict[str, Any]:
        if phase not in PHASES:
            raise ValidationError('Invalid game status')
        state = SessionState.get(for_update=True)
        previous = state.phase
        state.phase = phase
        event = None
        if phase != previous:
            if phase == PHASE_RUNNING:
                event = 'game-started'
                if not state.session_started_at:
                    state.session_started_at = utcnow()
            elif phase == PHASE_ENDED:
                event = 'game-ended'
        return self._commit_state(state, event)

    def set_position(self, position) -> Dict[str, Any]:
        if isinstance(position, bool) or not isinstance(position, int):
            raise ValidationError('Invalid game position')
        if not 0 <= position <= LAST_POSITION:
            raise ValidationError('Invalid game position')
        state = SessionState.get(for_update=True)
        if position < state.current_position:
            db.session.rollback()
            raise ValidationError('Game position can only move forward; use reset to start over')
        advanced = position > state.current_position
        state.current_position = position
        return self._commit_state(state, 'game-advanced' if advanced else None)

    # ---- commands ----

    def start_all(self) -> Dict[str, Any]:
        state = SessionState.get(for_update=True)
        if state.phase == PHASE_RUNNING:
            db.session.rollback()
            raise Conflict('Game is already running')
        if state.phase == PHASE_ENDED:
            db.session.rollback()
            raise Conflict('Game has ended; reset before starting again')
        state.phase = PHASE_RUNNING
        state.current_position = max(state.current_position, FIRST_POSITION)
        if not state.session_started_at:
            state.session_started_at = utcnow()
        return self._commit_state(state, 'game-started')

    def advance_all(self) -> Dict[str, Any]:
        state = SessionState.get(for_update=True)
        if state.phase != PHASE_RUNNING:
            db.session.rollback()
            raise Conflict('Game is not running')
        if state.current_position >= LAST_POSITION:
            db.session.rollback()
            raise Conflict('All scenarios have already been announced')
        state.current_position += 1
        return self._commit_state(state, 'game-advanced')

    def end_all(self) -> Dict[str, Any]:
        state = SessionState.get(for_update=True)
        if state.phase == PHASE_ENDED:
            db.session.rollback()
            raise Conflict('Game has already ended')
        state.phase = PHASE_ENDED
        return self._commit_state(state, 'game-ended')

    def reset_all(self) -> Dict[str, Any]:
        try:
            Decision.query.delete()
            Team.query.update({Team.current_position: FIRST_POSITION, Team.total_score: 0})
            state = SessionState.get(for_update=True)
            state.phase = PHASE_WAITING
            state.current_position = 0
            state.session_started_at = None
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        self.cache.reset_session()
        current_app.logger.info("[session] reset complete")
        self.broker.phase_event('game-reset')
        return state.to_dict()

    # ---- denylist ----

    def kick(self, team_id: int) -> None:
        team = db.session.get(Team, team_id)
        if team is None:
            raise TeamNotFound()
        self.cache.kick_team(team.id)
        current_app.logger.info(f"[kick] team={team.id} name={team.name}")
        self.broker.team_kicked(team.id)
        self.broker.team_disconnected(team.id, reason='kicked')

    def unban(self, team_id: int) -> bool:
        if db.session.get(Team, team_id) is None:
            raise TeamNotFound()
        return self.cache.unban_team(team_id)
