from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from tuna_adventure import db
from tuna_adventure.errors import (
    AlreadySubmitted, DecisionNotFound, OutOfRange, TeamNotFound,
    TransientStoreError, UnknownScenario, ValidationError,
)
from tuna_adventure.models import Decision, Scenario, Team, FIRST_POSITION, LAST_POSITION

_TRANSIENT_MARKERS = ('lock', 'deadlock', 'timeout', 'timed out', 'busy')


def parse_position(raw) -> int:
    """Coerce a client-supplied position and check it is a scenario slot."""
    if isinstance(raw, bool) or raw is None or raw == '':
        raise ValidationError('Valid position (1-7) is required')
    try:
        position = int(raw)
    except (TypeError, ValueError):
        raise ValidationError('Valid position (1-7) is required')
    if isinstance(raw, float) and raw != position:
        raise ValidationError('Valid position (1-7) is required')
    if not FIRST_POSITION <= position <= LAST_POSITION:
        raise OutOfRange()
    return position


def is_transient(exc: OperationalError) -> bool:
    text = str(getattr(exc, 'orig', exc)).lower()
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def result_block(decision: Decision, scenario: Optional[Scenario]) -> Dict[str, Any]:
    return {
        'position': decision.position,
        'score': decision.score,
        'teamDecision': decision.decision_text,
        'teamRationale': decision.rationale_text,
        'referenceAnswer': scenario.reference_answer if scenario else None,
        'referenceRationale': scenario.reference_rationale if scenario else None,
    }


class DecisionCoordinator:
    """Records a team's decision for a scenario exactly once.

    Existence check, scoring, insert and team update share one transaction.
    The (team_id, position) unique constraint is what actually prevents two
    concurrent submissions from both landing; the pre-check only saves work.
    """

    max_attempts = 2

    def __init__(self, cache, broker, scorer):
        self.cache = cache
        self.broker = broker
        self.scorer = scorer

    def submit(self, team_id: int, position, decision_text: Optional[str], rationale_text: Optional[str]) -> Dict[str, Any]:
        position = parse_position(position)
        decision_text = '' if decision_text is None else str(decision_text)
        rationale_text = '' if rationale_text is None else str(rationale_text)

        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = self._submit_once(team_id, position, decision_text, rationale_text)
                break
            except OperationalError as exc:
                db.session.rollback()
                if not is_transient(exc):
                    raise
                current_app.logger.warning(
                    f"[decision-retry] team={team_id} position={position} attempt={attempt} error={exc.orig}"
                )
                if attempt >= self.max_attempts:
                    raise TransientStoreError() from exc
            except Exception:
                db.session.rollback()
                raise

        team, decision, scenario = outcome
        response = {
            'score': decision.score,
            'newPosition': team.current_position,
            'newTotalScore': team.total_score,
            'isComplete': team.is_complete,
            'result': result_block(decision, scenario),
        }
        current_app.logger.info(
            f"[decision] team={team_id} position={position} score={decision.score} "
            f"new_position={team.current_position} total={team.total_score}"
        )

        if self.cache.get_team(team.id) is None:
            self.cache.create_or_update_team(team.id, name=team.name)
        self.cache.add_decision(
            team.id,
            position=position,
            score=decision.score,
            new_position=team.current_position,
            new_total_score=team.total_score,
            decision=decision_text,
            rationale=rationale_text,
        )
        self.broker.decision_submitted(team.id, position, decision.score)
        self.broker.team_progress(team.id)
        return response

    def _submit_once(self, team_id, position, decision_text, rationale_text):
        team = Team.query.filter_by(id=team_id).with_for_update().first()
        if team is None:
            raise TeamNotFound()

        existing = Decision.query.filter_by(team_id=team.id, position=position).first()
        if existing is not None:
            raise AlreadySubmitted()

        scenario = Scenario.query.filter_by(position=position).first()
        if scenario is None:
            raise UnknownScenario()

        score = self.scorer.score(
            decision_text, rationale_text, scenario.reference_answer, scenario.reference_rationale
        )
        decision = Decision(
            team_id=team.id,
            position=position,
            decision_text=decision_text,
            rationale_text=rationale_text,
            score=score,
        )
        db.session.add(decision)
        # Late submissions for an earlier slot must not move the team backwards
        team.current_position = max(team.current_position, position + 1)
        team.total_score = team.total_score + score
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            current_app.logger.info(
                f"[decision-conflict] team={team_id} position={position} lost race on unique constraint"
            )
            raise AlreadySubmitted() from exc
        return team, decision, scenario

    def get_decision(self, team_id: int, position) -> Dict[str, Any]:
        position = parse_position(position)
        decision = Decision.query.filter_by(team_id=team_id, position=position).first()
        if decision is None:
            raise DecisionNotFound()
        scenario = Scenario.query.filter_by(position=position).first()
        return result_block(decision, scenario)
