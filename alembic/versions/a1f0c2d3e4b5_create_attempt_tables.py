"""create quizzes, attempts, answers, winners and reward_claims

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1f0c2d3e4b5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'quizzes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('creator_wallet', sa.String(64), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('questions_json', sa.JSON(), nullable=False),
        sa.Column('reward_token', sa.String(64), nullable=False),
        sa.Column('reward_amount', sa.String(78), nullable=False),
        sa.Column('winner_limit', sa.Integer(), nullable=False),
        sa.Column('current_winners', sa.Integer(), server_default='0', nullable=False),
        sa.Column('time_per_question', sa.Integer(), nullable=False),
        sa.Column('reward_pools', sa.JSON(), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('stake_token', sa.String(64), nullable=True),
        sa.Column('stake_amount', sa.String(78), nullable=True),
        sa.Column('nft_enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('nft_artwork_url', sa.String(512), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('current_winners <= winner_limit', name='ck_quiz_winners_within_limit'),
    )
    op.create_index('ix_quizzes_id', 'quizzes', ['id'])
    op.create_index('ix_quizzes_creator_wallet', 'quizzes', ['creator_wallet'])
    op.create_index('ix_quizzes_status', 'quizzes', ['status'])

    op.create_table(
        'attempts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quizzes.id'), nullable=False),
        sa.Column('wallet_address', sa.String(64), nullable=False),
        sa.Column('start_time_ms', sa.BigInteger(), nullable=False),
        sa.Column('end_time_ms', sa.BigInteger(), nullable=True),
        sa.Column('question_order', sa.JSON(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('completion_time_ms', sa.BigInteger(), nullable=True),
        sa.Column('is_winner', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('quiz_id', 'wallet_address', name='uq_attempt_quiz_wallet'),
    )
    op.create_index('ix_attempts_id', 'attempts', ['id'])
    op.create_index('ix_attempts_session_id', 'attempts', ['session_id'], unique=True)
    op.create_index('ix_attempts_quiz_id', 'attempts', ['quiz_id'])
    op.create_index('ix_attempts_wallet_address', 'attempts', ['wallet_address'])

    op.create_table(
        'answers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('attempt_id', sa.Integer(), sa.ForeignKey('attempts.id'), nullable=False),
        sa.Column('ordinal', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.String(64), nullable=False),
        sa.Column('selected_index', sa.Integer(), nullable=False),
        sa.Column('client_timestamp', sa.BigInteger(), nullable=True),
        sa.Column('server_timestamp', sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_answer_attempt_question'),
        sa.UniqueConstraint('attempt_id', 'ordinal', name='uq_answer_attempt_ordinal'),
    )
    op.create_index('ix_answers_id', 'answers', ['id'])
    op.create_index('ix_answers_attempt_id', 'answers', ['attempt_id'])

    op.create_table(
        'winners',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quizzes.id'), nullable=False),
        sa.Column('attempt_id', sa.Integer(), sa.ForeignKey('attempts.id'), nullable=False, unique=True),
        sa.Column('wallet_address', sa.String(64), nullable=False),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('completion_time_ms', sa.BigInteger(), nullable=False),
        sa.Column('reward_amount', sa.String(78), nullable=False),
        sa.Column('tx_hash', sa.String(128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('quiz_id', 'rank', name='uq_winner_quiz_rank'),
    )
    op.create_index('ix_winners_id', 'winners', ['id'])
    op.create_index('ix_winners_quiz_id', 'winners', ['quiz_id'])
    op.create_index('ix_winners_wallet_address', 'winners', ['wallet_address'])

    op.create_table(
        'reward_claims',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quizzes.id'), nullable=False),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('winners.id'), nullable=False, unique=True),
        sa.Column('wallet_address', sa.String(64), nullable=False),
        sa.Column('pool_tier', sa.Integer(), nullable=False),
        sa.Column('rank_in_pool', sa.Integer(), nullable=False),
        sa.Column('reward_amount', sa.String(78), nullable=False),
        sa.Column('needs_review', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('tx_hash', sa.String(128), nullable=True),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_reward_claims_id', 'reward_claims', ['id'])
    op.create_index('ix_reward_claims_quiz_id', 'reward_claims', ['quiz_id'])
    op.create_index('ix_reward_claims_wallet_address', 'reward_claims', ['wallet_address'])
    op.create_index('ix_reward_claims_status', 'reward_claims', ['status'])


def downgrade() -> None:
    op.drop_table('reward_claims')
    op.drop_table('winners')
    op.drop_table('answers')
    op.drop_table('attempts')
    op.drop_table('quizzes')
