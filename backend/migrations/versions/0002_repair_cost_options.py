"""repair cost option catalog

Revision ID: 0002_repair_cost_options
Revises: 0001_initial_repairs
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0002_repair_cost_options'
down_revision = '0001_initial_repairs'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('repair_cost_options',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('service_type', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cost', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_repair_cost_options_service_type', 'repair_cost_options', ['service_type'])


def downgrade():
    op.drop_index('ix_repair_cost_options_service_type', table_name='repair_cost_options')
    op.drop_table('repair_cost_options')
