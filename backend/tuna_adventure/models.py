from datetime import datetime, timezone
import json

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from tuna_adventure import db, bcrypt

PHASE_WAITING = 'waiting'
PHASE_RUNNING = 'running'
PHASE_ENDED = 'ended'
PHASES = (PHASE_WAITING, PHASE_RUNNING, PHASE_ENDED)

FIRST_POSITION = 1
LAST_POSITION = 7
COMPLETE_POSITION = LAST_POSITION + 1


def utcnow():
    return datetime.now(timezone.utc)


class Admin(UserMixin, db.Model):
    __tablename__ = 'admin'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    is_admin = True

    def get_id(self):
        return f'admin:{self.id}'

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Team(UserMixin, db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    current_position = db.Column(db.Integer, default=FIRST_POSITION, nullable=False)
    total_score = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    players = db.relationship('Player', back_populates='team', cascade='all, delete-orphan',
                              order_by='Player.id')
    decisions = db.relationship('Decision', back_populates='team', lazy='dynamic',
                                cascade='all, delete-orphan')

    is_admin = False

    def get_id(self):
        return f'team:{self.id}'

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_complete(self):
        return self.current_position > LAST_POSITION

    def to_dict(self, include_players=True):
        data = {
            'id': self.id,
            'name': self.name,
            'current_position': self.current_position,
            'total_score': self.total_score,
            'is_complete': self.is_complete,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_players:
            data['players'] = [p.to_dict() for p in self.players]
        return data


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(16), nullable=False, default='member')  # leader, member
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    team = db.relationship('Team', back_populates='players')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role,
            'team_id': self.team_id,
        }


class Scenario(db.Model):
    __tablename__ = 'scenario'
    id = db.Column(db.Integer, primary_key=True)
    position = db.Column(db.Integer, unique=True, nullable=False, index=True)
    title = db.Column(db.String(128), nullable=False)
    prompt = db.Column(db.Text, nullable=False)
    reference_answer = db.Column(db.Text, nullable=False)
    reference_rationale = db.Column(db.Text, nullable=False)
    max_score = db.Column(db.Integer, nullable=False, default=15)

    def to_dict(self, include_reference=False):
        data = {
            'position': self.position,
            'title': self.title,
            'prompt': self.prompt,
            'max_score': self.max_score,
        }
        if include_reference:
            data['reference_answer'] = self.reference_answer
            data['reference_rationale'] = self.reference_rationale
        return data


class Decision(db.Model):
    __tablename__ = 'decision'
    __table_args__ = (
        db.UniqueConstraint('team_id', 'position', name='uq_decision_team_position'),
    )
    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    decision_text = db.Column(db.Text, nullable=False, default='')
    rationale_text = db.Column(db.Text, nullable=False, default='')
    score = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    team = db.relationship('Team', back_populates='decisions')

    def to_dict(self):
        return {
            'team_id': self.team_id,
            'position': self.position,
            'decision': self.decision_text,
            'rationale': self.rationale_text,
            'score': self.score,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class SessionState(db.Model):
    """Single-row table holding the global phase and announced scenario."""
    __tablename__ = 'session_state'
    id = db.Column(db.Integer, primary_key=True)
    phase = db.Column(db.String(16), nullable=False, default=PHASE_WAITING)
    current_position = db.Column(db.Integer, nullable=False, default=0)
    session_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @classmethod
    def get(cls, for_update=False):
        query = cls.query.filter_by(id=1)
        if for_update:
            query = query.with_for_update()
        state = query.first()
        if state is None:
            state = cls(id=1, phase=PHASE_WAITING, current_position=0)
            db.session.add(state)
            db.session.flush()
        return state

    def to_dict(self):
        return {
            'phase': self.phase,
            'current_position': self.current_position,
            'session_started_at': self.session_started_at.isoformat() if self.session_started_at else None,
        }


class GameSetting(db.Model):
    __tablename__ = 'game_setting'
    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.String(256), nullable=False)
    description = db.Column(db.String(256), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'value': self.value,
            'description': self.description,
            'updated_by': self.updated_by,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class SessionArchive(db.Model):
    __tablename__ = 'session_archive'
    id = db.Column(db.Integer, primary_key=True)
    session_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    summary = db.Column(db.Text, nullable=False)  # JSON-encoded standings

    def to_dict(self):
        return {
            'id': self.id,
            'session_started_at': self.session_started_at.isoformat() if self.session_started_at else None,
            'archived_at': self.archived_at.isoformat() if self.archived_at else None,
            'summary': json.loads(self.summary) if self.summary else None,
        }
