"""Call sessions and call counter

Revision ID: 001
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'call_sessions',
        sa.Column('meeting_id', sa.String(), nullable=False),
        sa.Column('transaction_id', sa.String(), nullable=False),
        sa.Column('leg_a', sa.String(), nullable=True),
        sa.Column('leg_b', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('meeting_id')
    )
    op.create_index(op.f('ix_call_sessions_transaction_id'), 'call_sessions', ['transaction_id'], unique=True)

    call_counters = op.create_table(
        'call_counters',
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('calls', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('name')
    )
    op.bulk_insert(call_counters, [{'name': 'currentCalls', 'calls': 0}])


def downgrade() -> None:
    op.drop_table('call_counters')
    op.drop_index(op.f('ix_call_sessions_transaction_id'), table_name='call_sessions')
    op.drop_table('call_sessions')
