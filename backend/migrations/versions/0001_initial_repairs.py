"""initial repair tables

Revision ID: 0001_initial_repairs
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_repairs'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='customer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('repair_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.String(length=32), nullable=False, unique=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('assigned_technician_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('assigned_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scheduled_date_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('calendly_event_id', sa.String(length=128), nullable=True),
        sa.Column('calendly_event_uri', sa.String(length=255), nullable=True),
        sa.Column('service_type', sa.String(length=64), nullable=False),
        sa.Column('problem_description', sa.Text(), nullable=False),
        sa.Column('service_description', sa.Text(), nullable=True),
        sa.Column('boat_details', sa.JSON(), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=True),
        sa.Column('service_location', sa.JSON(), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('work_performed', sa.Text(), nullable=True),
        sa.Column('parts_used', sa.JSON(), nullable=True),
        sa.Column('labor_hours', sa.Float(), nullable=True),
        sa.Column('labor_rate', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
    )
    op.create_index('ix_repair_requests_booking_id', 'repair_requests', ['booking_id'])
    op.create_index('ix_repair_requests_customer_id', 'repair_requests', ['customer_id'])
    op.create_index('ix_repair_requests_status', 'repair_requests', ['status'])
    op.create_index('ix_repair_requests_assigned_technician_id', 'repair_requests', ['assigned_technician_id'])

    op.create_table('repair_costs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_id', sa.Integer(), sa.ForeignKey('repair_requests.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('advance_payment', sa.Integer(), nullable=False),
        sa.Column('estimated_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('final_cost', sa.Integer(), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='advance_paid'),
        sa.Column('invoice_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('final_payment_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
    )

    op.create_table('payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payment_id', sa.String(length=48), nullable=False, unique=True),
        sa.Column('external_transaction_ref', sa.String(length=128), nullable=False, unique=True),
        sa.Column('service_id', sa.String(length=32), nullable=False),
        sa.Column('service_type', sa.String(length=32), nullable=False, server_default='boat_repair'),
        sa.Column('service_description', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='lkr'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='card'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_payments_payment_id', 'payments', ['payment_id'])
    op.create_index('ix_payments_external_transaction_ref', 'payments', ['external_transaction_ref'])
    op.create_index('ix_payments_service_id', 'payments', ['service_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table('repair_notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=128), nullable=False),
        sa.Column('message', sa.String(length=512), nullable=False),
        sa.Column('repair_booking_id', sa.String(length=32), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_repair_notifications_user_id', 'repair_notifications', ['user_id'])
    op.create_index('ix_repair_notifications_repair_booking_id', 'repair_notifications', ['repair_booking_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('repair_notifications')
    op.drop_table('payments')
    op.drop_table('repair_costs')
    op.drop_table('repair_requests')
    op.drop_table('users')
