from onlyyours import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import enum
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_epoch_millis(value):
    if value is None:
        return None
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)


class SessionStatus(enum.Enum):
    INVITED = 'INVITED'
    ROUND1 = 'ROUND1'
    ROUND2 = 'ROUND2'
    COMPLETED = 'COMPLETED'
    DECLINED = 'DECLINED'
    EXPIRED = 'EXPIRED'


ACTIVE_STATUSES = frozenset({SessionStatus.INVITED, SessionStatus.ROUND1, SessionStatus.ROUND2})


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'name': self.name,
        }


class Couple(db.Model):
    __tablename__ = 'couple'
    id = db.Column(db.Integer, primary_key=True)
    user1_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    user2_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)

    user1 = db.relationship('User', foreign_keys=[user1_id])
    user2 = db.relationship('User', foreign_keys=[user2_id])

    def has_member(self, user_id) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def partner_id_of(self, user_id):
        return self.user2_id if self.user1_id == user_id else self.user1_id


class QuestionCategory(db.Model):
    __tablename__ = 'question_category'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_sensitive = db.Column(db.Boolean, default=False, nullable=False)
    questions = db.relationship('Question', back_populates='category', lazy='dynamic')


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey('question_category.id'), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    option_a = db.Column(db.String(255), nullable=False)
    option_b = db.Column(db.String(255), nullable=False)
    option_c = db.Column(db.String(255), nullable=False)
    option_d = db.Column(db.String(255), nullable=False)
    category = db.relationship('QuestionCategory', back_populates='questions')


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    couple_id = db.Column(db.Integer, db.ForeignKey('couple.id'), nullable=False, index=True)
    # Equals couple_id while the session is INVITED/ROUND1/ROUND2, NULL once terminal.
    # The unique constraint is what keeps a couple down to one active session.
    active_couple_id = db.Column(db.Integer, unique=True, nullable=True)
    status = db.Column(
        db.Enum(SessionStatus, name='session_status', native_enum=False, length=16),
        nullable=False,
        default=SessionStatus.INVITED,
        index=True,
    )
    category_id = db.Column(db.Integer, db.ForeignKey('question_category.id'), nullable=False)
    question_order = db.Column(db.JSON, nullable=True)
    current_question_index = db.Column(db.Integer, nullable=False, default=0)
    player1_score = db.Column(db.Integer, nullable=True)
    player2_score = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    last_activity_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    couple = db.relationship('Couple')
    answers = db.relationship('GameAnswer', back_populates='session', lazy='dynamic')

    @property
    def reference_time(self):
        """completed_at, falling back to started_at, then created_at."""
        return self.completed_at or self.started_at or self.created_at

    def score_of(self, user_id) -> int:
        if self.couple.user1_id == user_id:
            return self.player1_score or 0
        return self.player2_score or 0

    def partner_score_of(self, user_id) -> int:
        if self.couple.user1_id == user_id:
            return self.player2_score or 0
        return self.player1_score or 0

    def to_dict(self):
        return {
            'id': self.id,
            'couple_id': self.couple_id,
            'status': self.status.value,
            'category_id': self.category_id,
            'question_order': list(self.question_order or []),
            'current_question_index': self.current_question_index,
            'player1_score': self.player1_score,
            'player2_score': self.player2_score,
            'created_at': to_epoch_millis(self.created_at),
            'started_at': to_epoch_millis(self.started_at),
            'completed_at': to_epoch_millis(self.completed_at),
            'expires_at': to_epoch_millis(self.expires_at),
            'last_activity_at': to_epoch_millis(self.last_activity_at),
        }


class GameAnswer(db.Model):
    __tablename__ = 'game_answer'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'question_id', 'user_id', name='uq_game_answer_session_question_user'),
    )
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(36), db.ForeignKey('game_session.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    round1_answer = db.Column(db.String(1), nullable=False)
    round2_guess = db.Column(db.String(1), nullable=True)

    session = db.relationship('GameSession', back_populates='answers')
    question = db.relationship('Question')
