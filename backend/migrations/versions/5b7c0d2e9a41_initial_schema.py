"""initial schema: users, couples, question bank, game sessions and answers

Revision ID: 5b7c0d2e9a41
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7c0d2e9a41'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'couple',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user1_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False, unique=True),
        sa.Column('user2_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False, unique=True),
    )

    op.create_table(
        'question_category',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_sensitive', sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('question_category.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('option_a', sa.String(length=255), nullable=False),
        sa.Column('option_b', sa.String(length=255), nullable=False),
        sa.Column('option_c', sa.String(length=255), nullable=False),
        sa.Column('option_d', sa.String(length=255), nullable=False),
    )
    op.create_index('ix_question_category_id', 'question', ['category_id'])

    op.create_table(
        'game_session',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('couple_id', sa.Integer(), sa.ForeignKey('couple.id'), nullable=False),
        sa.Column('active_couple_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('question_category.id'), nullable=False),
        sa.Column('question_order', sa.JSON(), nullable=True),
        sa.Column('current_question_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('player1_score', sa.Integer(), nullable=True),
        sa.Column('player2_score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_game_session_couple_id', 'game_session', ['couple_id'])
    op.create_index('ix_game_session_status', 'game_session', ['status'])
    op.create_index('ix_game_session_expires_at', 'game_session', ['expires_at'])

    op.create_table(
        'game_answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.String(length=36), sa.ForeignKey('game_session.id'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('round1_answer', sa.String(length=1), nullable=False),
        sa.Column('round2_guess', sa.String(length=1), nullable=True),
        sa.UniqueConstraint('session_id', 'question_id', 'user_id', name='uq_game_answer_session_question_user'),
    )
    op.create_index('ix_game_answer_session_id', 'game_answer', ['session_id'])


def downgrade():
    op.drop_index('ix_game_answer_session_id', table_name='game_answer')
    op.drop_table('game_answer')
    op.drop_index('ix_game_session_expires_at', table_name='game_session')
    op.drop_index('ix_game_session_status', table_name='game_session')
    op.drop_index('ix_game_session_couple_id', table_name='game_session')
    op.drop_table('game_session')
    op.drop_index('ix_question_category_id', table_name='question')
    op.drop_table('question')
    op.drop_table('question_category')
    op.drop_table('couple')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
