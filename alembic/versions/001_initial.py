"""Initial schema: api_keys table for provider key rotation

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'api_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('secret', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('daily_usage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_reset', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_api_keys_id', 'api_keys', ['id'])
    op.create_index('ix_api_keys_provider', 'api_keys', ['provider'])
    op.create_index('idx_api_keys_provider_active', 'api_keys', ['provider', 'is_active'])


def downgrade() -> None:
    op.drop_index('idx_api_keys_provider_active', table_name='api_keys')
    op.drop_index('ix_api_keys_provider', table_name='api_keys')
    op.drop_index('ix_api_keys_id', table_name='api_keys')
    op.drop_table('api_keys')
