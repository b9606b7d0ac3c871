from harmonia import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import enum


def _utcnow():
    return datetime.now(timezone.utc)


class Role(enum.Enum):
    PLAYER = 'player'
    ADMIN = 'admin'
    ADMINPRO = 'adminpro'
    SUPREME = 'supreme'


class Profile(UserMixin, db.Model):
    __tablename__ = 'profile'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    nom = db.Column(db.String(64), nullable=True)
    prenom = db.Column(db.String(64), nullable=True)
    avatar_url = db.Column(db.String(512), nullable=True)
    role = db.Column(
        db.Enum(Role, name='profile_role', native_enum=False, length=16,
                values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
        default=Role.PLAYER,
    )
    # Spendable balance, debited on paid session entry
    solde_cfa = db.Column(db.Integer, nullable=False, default=0)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'nom': self.nom or '',
            'prenom': self.prenom or '',
            'avatar_url': self.avatar_url,
            'role': self.role.value,
            'solde_cfa': self.solde_cfa,
        }


class GameType(db.Model):
    """Immutable catalog entry naming a kind of game (e.g. true/false)."""
    __tablename__ = 'game'
    id = db.Column(db.Integer, primary_key=True)
    key_name = db.Column(db.String(64), unique=True, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    def to_dict(self):
        return {'id': self.id, 'key_name': self.key_name, 'name': self.name}


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.Integer, db.ForeignKey('game.id'), nullable=False, index=True)
    title = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    price_cfa = db.Column(db.Integer, nullable=False, default=0)
    category = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    game = db.relationship('GameType')
    parties = db.relationship('Party', back_populates='session', cascade='all, delete-orphan',
                              order_by='Party.id')
    entries = db.relationship('SessionEntry', cascade='all, delete-orphan')

    @property
    def initial_party(self):
        return next((p for p in self.parties if p.is_initial), None)

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'title': self.title,
            'description': self.description,
            'is_paid': self.is_paid,
            'price_cfa': self.price_cfa,
            'category': self.category,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Party(db.Model):
    __tablename__ = 'party'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_session.id'), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    is_initial = db.Column(db.Boolean, nullable=False, default=False)
    # Optional eligibility gate, evaluated against the initial party standings
    min_score = db.Column(db.Integer, nullable=True)
    min_rank = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    session = db.relationship('GameSession', back_populates='parties')
    players = db.relationship('PartyPlayer', back_populates='party', cascade='all, delete-orphan')
    runs = db.relationship('Run', back_populates='party', cascade='all, delete-orphan', order_by='Run.id')

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'name': self.name,
            'is_initial': self.is_initial,
            'min_score': self.min_score,
            'min_rank': self.min_rank,
        }


class PartyPlayer(db.Model):
    __tablename__ = 'party_player'
    __table_args__ = (db.UniqueConstraint('party_id', 'user_id', name='uq_party_player_party_user'),)
    id = db.Column(db.Integer, primary_key=True)
    party_id = db.Column(db.Integer, db.ForeignKey('party.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False, index=True)
    # Cumulative, includes points of runs that are not revealed yet
    score = db.Column(db.Integer, nullable=False, default=0)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    party = db.relationship('Party', back_populates='players')
    user = db.relationship('Profile')

    def to_dict(self):
        return {
            'id': self.id,
            'party_id': self.party_id,
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'score': self.score,
        }


class SessionEntry(db.Model):
    """One paid entry of a user into a paid session."""
    __tablename__ = 'session_entry'
    __table_args__ = (db.UniqueConstraint('session_id', 'user_id', name='uq_session_entry_session_user'),)
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('game_session.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False, index=True)
    amount_cfa = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)


class Run(db.Model):
    __tablename__ = 'game_run'
    __table_args__ = (
        # reveal can never precede closure
        db.CheckConstraint('NOT reveal_answers OR is_closed', name='ck_game_run_reveal_after_close'),
    )
    id = db.Column(db.Integer, primary_key=True)
    party_id = db.Column(db.Integer, db.ForeignKey('party.id'), nullable=False, index=True)
    title = db.Column(db.String(128), nullable=False)
    is_started = db.Column(db.Boolean, nullable=False, default=False)
    is_visible = db.Column(db.Boolean, nullable=False, default=False)
    is_closed = db.Column(db.Boolean, nullable=False, default=False)
    reveal_answers = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    party = db.relationship('Party', back_populates='runs')
    questions = db.relationship('RunQuestion', back_populates='run', cascade='all, delete-orphan',
                                order_by='RunQuestion.id')

    @property
    def is_revealed(self):
        return bool(self.is_closed and self.reveal_answers)

    @property
    def is_mid_play(self):
        return bool(self.is_started and not self.is_closed)

    def flags(self):
        return {
            'is_started': self.is_started,
            'is_visible': self.is_visible,
            'is_closed': self.is_closed,
            'reveal_answers': self.reveal_answers,
        }

    def to_dict(self):
        payload = {
            'id': self.id,
            'party_id': self.party_id,
            'title': self.title,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
        }
        payload.update(self.flags())
        return payload


class RunQuestion(db.Model):
    __tablename__ = 'run_question'
    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.Integer, db.ForeignKey('game_run.id'), nullable=False, index=True)
    question_text = db.Column(db.Text, nullable=False)
    # Never serialized to a player before the run is revealed
    correct_answer = db.Column(db.Boolean, nullable=False)
    score = db.Column(db.Integer, nullable=False, default=10)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    run = db.relationship('Run', back_populates='questions')
    answers = db.relationship('UserRunAnswer', back_populates='question', cascade='all, delete-orphan')

    def to_admin_dict(self):
        return {
            'id': self.id,
            'run_id': self.run_id,
            'question_text': self.question_text,
            'correct_answer': self.correct_answer,
            'score': self.score,
        }


class UserRunAnswer(db.Model):
    __tablename__ = 'user_run_answer'
    __table_args__ = (db.UniqueConstraint('user_id', 'run_question_id', name='uq_user_run_answer_user_question'),)
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False, index=True)
    run_question_id = db.Column(db.Integer, db.ForeignKey('run_question.id'), nullable=False, index=True)
    run_id = db.Column(db.Integer, db.ForeignKey('game_run.id'), nullable=False, index=True)
    answer = db.Column(db.Boolean, nullable=False)
    score_awarded = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    question = db.relationship('RunQuestion', back_populates='answers')
