"""create outcome_record, script_cursor and tier_history

Revision ID: 5b7c1e9a2f40
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7c1e9a2f40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'outcome_record',
        sa.Column('address', sa.String(length=255), primary_key=True),
        sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_wager', sa.Integer(), nullable=True),
        sa.Column('last_verdict', sa.String(length=1), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.Float(), nullable=False),
    )
    op.create_table(
        'script_cursor',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('address', sa.String(length=255), sa.ForeignKey('outcome_record.address'), nullable=False),
        sa.Column('bucket', sa.String(length=32), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('address', 'bucket', name='uq_script_cursor_address_bucket'),
    )
    op.create_index('ix_script_cursor_address', 'script_cursor', ['address'])
    op.create_table(
        'tier_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('address', sa.String(length=255), sa.ForeignKey('outcome_record.address'), nullable=False),
        sa.Column('wager', sa.Integer(), nullable=False),
        sa.Column('games_played', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rematch_granted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('address', 'wager', name='uq_tier_history_address_wager'),
    )
    op.create_index('ix_tier_history_address', 'tier_history', ['address'])


def downgrade():
    op.drop_index('ix_tier_history_address', table_name='tier_history')
    op.drop_table('tier_history')
    op.drop_index('ix_script_cursor_address', table_name='script_cursor')
    op.drop_table('script_cursor')
    op.drop_table('outcome_record')
