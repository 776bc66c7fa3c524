"""create policies table

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
    bind = op.get_bind()
    is_sqlite = bind.dialect.name == 'sqlite'

    timestamp_default = sa.text("(datetime('now'))") if is_sqlite else sa.text('now()')

    # Plain JSON (not JSONB) keeps rule and assignment key order
    op.create_table(
        'policies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('policy_id', sa.String(length=255), nullable=False),
        sa.Column('version', sa.String(length=100), nullable=False),
        sa.Column('tenant_id', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('rules', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('assignments', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=timestamp_default),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('policy_id'),
    )
    op.create_index('ix_policies_id', 'policies', ['id'])
    op.create_index('ix_policies_policy_id', 'policies', ['policy_id'], unique=True)
    op.create_index('ix_policies_tenant_id', 'policies', ['tenant_id'])
    op.create_index('ix_policies_status', 'policies', ['status'])


def downgrade() -> None:
    op.drop_index('ix_policies_status', table_name='policies')
    op.drop_index('ix_policies_tenant_id', table_name='policies')
    op.drop_index('ix_policies_policy_id', table_name='policies')
    op.drop_index('ix_policies_id', table_name='policies')
    op.drop_table('policies')
