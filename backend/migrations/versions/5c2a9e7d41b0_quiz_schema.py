"""quiz schema: profiles, catalog, parties, runs, answers, session entries

Revision ID: 5c2a9e7d41b0
Revises:
Create Date: 2026-09-02 10:12:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e7d41b0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'profile',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('nom', sa.String(length=64), nullable=True),
        sa.Column('prenom', sa.String(length=64), nullable=True),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='player'),
        sa.Column('solde_cfa', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_profile_username', 'profile', ['username'], unique=True)

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key_name', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
    )
    op.create_index('ix_game_key_name', 'game', ['key_name'], unique=True)

    op.create_table(
        'game_session',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('title', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('price_cfa', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_game_session_game_id', 'game_session', ['game_id'])

    op.create_table(
        'party',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('game_session.id'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_initial', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('min_score', sa.Integer(), nullable=True),
        sa.Column('min_rank', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_party_session_id', 'party', ['session_id'])

    op.create_table(
        'party_player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('party_id', sa.Integer(), sa.ForeignKey('party.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profile.id'), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('party_id', 'user_id', name='uq_party_player_party_user'),
    )
    op.create_index('ix_party_player_party_id', 'party_player', ['party_id'])
    op.create_index('ix_party_player_user_id', 'party_player', ['user_id'])

    op.create_table(
        'game_run',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('party_id', sa.Integer(), sa.ForeignKey('party.id'), nullable=False),
        sa.Column('title', sa.String(length=128), nullable=False),
        sa.Column('is_started', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_visible', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_closed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reveal_answers', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        # reveal can never precede closure
        sa.CheckConstraint('NOT reveal_answers OR is_closed', name='ck_game_run_reveal_after_close'),
    )
    op.create_index('ix_game_run_party_id', 'game_run', ['party_id'])

    op.create_table(
        'run_question',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('run_id', sa.Integer(), sa.ForeignKey('game_run.id'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('correct_answer', sa.Boolean(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_run_question_run_id', 'run_question', ['run_id'])

    op.create_table(
        'user_run_answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profile.id'), nullable=False),
        sa.Column('run_question_id', sa.Integer(), sa.ForeignKey('run_question.id'), nullable=False),
        sa.Column('run_id', sa.Integer(), sa.ForeignKey('game_run.id'), nullable=False),
        sa.Column('answer', sa.Boolean(), nullable=False),
        sa.Column('score_awarded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('user_id', 'run_question_id', name='uq_user_run_answer_user_question'),
    )
    op.create_index('ix_user_run_answer_user_id', 'user_run_answer', ['user_id'])
    op.create_index('ix_user_run_answer_run_question_id', 'user_run_answer', ['run_question_id'])
    op.create_index('ix_user_run_answer_run_id', 'user_run_answer', ['run_id'])

    op.create_table(
        'session_entry',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('game_session.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profile.id'), nullable=False),
        sa.Column('amount_cfa', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('session_id', 'user_id', name='uq_session_entry_session_user'),
    )
    op.create_index('ix_session_entry_session_id', 'session_entry', ['session_id'])
    op.create_index('ix_session_entry_user_id', 'session_entry', ['user_id'])


def downgrade():
    op.drop_table('session_entry')
    op.drop_table('user_run_answer')
    op.drop_table('run_question')
    op.drop_table('game_run')
    op.drop_table('party_player')
    op.drop_table('party')
    op.drop_table('game_session')
    op.drop_table('game')
    op.drop_table('profile')
