import pytest
from sqlalchemy.exc import OperationalError

from tuna_adventure import db
from tuna_adventure.errors import (
    AlreadySubmitted, OutOfRange, TeamNotFound, TransientStoreError, UnknownScenario, ValidationError,
)
from tuna_adventure.models import Decision, Scenario, Team
from tuna_adventure.services.game.decisions import DecisionCoordinator, parse_position
from tuna_adventure.services.game.scoring import Scorer


class FixedScorer(Scorer):
    def __init__(self, points=7):
        self.points = points
        self.calls = 0

    def score(self, decision, rationale, reference_answer, reference_rationale):
        self.calls += 1
        return self.points


class RecordingBroker:
    def __init__(self):
        self.events = []

    def decision_submitted(self, team_id, position, score):
        self.events.append(('team-decision-submitted', team_id, position, score))

    def team_progress(self, team_id):
        self.events.append(('team-progress-update', team_id))


def make_team(name='Reef Runners'):
    team = Team(name=name)
    team.set_password('secret123')
    db.session.add(team)
    db.session.commit()
    return team


@pytest.fixture()
def coordinator(runtime):
    return DecisionCoordinator(runtime.cache, RecordingBroker(), FixedScorer())


def test_parse_position_rejects_bad_input():
    assert parse_position('3') == 3
    assert parse_position(7) == 7
    for bad in (None, '', 'abc', True, 2.5):
        with pytest.raises(ValidationError):
            parse_position(bad)
    for outside in (0, 8, -1):
        with pytest.raises(OutOfRange):
            parse_position(outside)


def test_submit_records_once_and_advances(app_ctx, coordinator):
    team = make_team()
    result = coordinator.submit(team.id, 1, 'Scout ahead', 'Reduce ambiguity')
    assert result['score'] == 7
    assert result['newPosition'] == 2
    assert result['newTotalScore'] == 7
    assert result['isComplete'] is False
    assert result['result']['position'] == 1
    assert result['result']['referenceAnswer']

    with pytest.raises(AlreadySubmitted):
        coordinator.submit(team.id, 1, 'Another try', '')

    assert Decision.query.filter_by(team_id=team.id, position=1).count() == 1
    db.session.refresh(team)
    assert team.total_score == 7
    assert team.current_position == 2
    assert coordinator.broker.events == [
        ('team-decision-submitted', team.id, 1, 7),
        ('team-progress-update', team.id),
    ]


def test_empty_submission_is_accepted(app_ctx, runtime):
    team = make_team()
    coordinator = runtime.decisions
    result = coordinator.submit(team.id, 1, None, None)
    assert result['score'] == 0
    decision = Decision.query.filter_by(team_id=team.id, position=1).one()
    assert decision.decision_text == ''
    assert decision.rationale_text == ''


def test_position_never_moves_backwards(app_ctx, coordinator):
    team = make_team()
    coordinator.submit(team.id, 3, 'x', 'y')
    result = coordinator.submit(team.id, 1, 'late answer', '')
    assert result['newPosition'] == 4
    assert result['newTotalScore'] == 14


def test_last_position_completes_team(app_ctx, coordinator):
    team = make_team()
    result = coordinator.submit(team.id, 7, 'summit', 'together')
    assert result['newPosition'] == 8
    assert result['isComplete'] is True


def test_unknown_team_and_scenario(app_ctx, coordinator):
    with pytest.raises(TeamNotFound):
        coordinator.submit(9999, 1, 'x', 'y')
    team = make_team()
    Scenario.query.filter_by(position=5).delete()
    db.session.commit()
    with pytest.raises(UnknownScenario):
        coordinator.submit(team.id, 5, 'x', 'y')
    assert Decision.query.count() == 0


def test_racing_submission_loses_on_unique_constraint(app_ctx, runtime):
    team = make_team()

    class RacingScorer(Scorer):
        """Lets a competing request commit between the existence check and the insert."""

        def score(self, decision, rationale, reference_answer, reference_rationale):
            db.session.add(Decision(team_id=team.id, position=2, decision_text='first', rationale_text='', score=5))
            db.session.commit()
            return 12

    coordinator = DecisionCoordinator(runtime.cache, RecordingBroker(), RacingScorer())
    with pytest.raises(AlreadySubmitted):
        coordinator.submit(team.id, 2, 'second', '')

    rows = Decision.query.filter_by(team_id=team.id, position=2).all()
    assert len(rows) == 1
    assert rows[0].decision_text == 'first'
    db.session.refresh(team)
    assert team.total_score == 0
    assert coordinator.broker.events == []


def _locked_error():
    return OperationalError('INSERT INTO decision', {}, Exception('database is locked'))


def test_transient_error_is_retried_once(app_ctx, runtime):
    team = make_team()

    class FlakyScorer(Scorer):
        calls = 0

        def score(self, decision, rationale, reference_answer, reference_rationale):
            FlakyScorer.calls += 1
            if FlakyScorer.calls == 1:
                raise _locked_error()
            return 10

    coordinator = DecisionCoordinator(runtime.cache, RecordingBroker(), FlakyScorer())
    result = coordinator.submit(team.id, 1, 'x', 'y')
    assert result['score'] == 10
    assert FlakyScorer.calls == 2
    assert Decision.query.filter_by(team_id=team.id).count() == 1


def test_transient_error_after_retry_surfaces(app_ctx, runtime):
    team = make_team()

    class LockedScorer(Scorer):
        def score(self, decision, rationale, reference_answer, reference_rationale):
            raise _locked_error()

    coordinator = DecisionCoordinator(runtime.cache, RecordingBroker(), LockedScorer())
    with pytest.raises(TransientStoreError):
        coordinator.submit(team.id, 1, 'x', 'y')
    assert Decision.query.count() == 0


def test_non_transient_operational_error_propagates(app_ctx, runtime):
    team = make_team()

    class BrokenScorer(Scorer):
        def score(self, decision, rationale, reference_answer, reference_rationale):
            raise OperationalError('SELECT', {}, Exception('no such table: scenario'))

    coordinator = DecisionCoordinator(runtime.cache, RecordingBroker(), BrokenScorer())
    with pytest.raises(OperationalError):
        coordinator.submit(team.id, 1, 'x', 'y')


def test_cache_mirrors_committed_decision(app_ctx, runtime):
    team = make_team()
    runtime.decisions.submit(team.id, 1, 'Scout ahead', 'Reduce ambiguity')
    cached = runtime.cache.get_team(team.id)
    assert cached['current_position'] == 2
    assert [d['position'] for d in cached['decisions']] == [1]
