# alembic/versions/001_initial_migration.py
"""Initial billing schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    ]


def upgrade() -> None:
    # Plan catalog
    op.create_table(
        'plans',
        sa.Column('tier', sa.String(20), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('price', sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column('yearly_discount_percent', sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column('max_vehicles', sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column('max_users', sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column('max_customers', sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column('max_branches', sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='plans_price_check'),
        sa.CheckConstraint(
            'yearly_discount_percent >= 0 AND yearly_discount_percent <= 100',
            name='plans_yearly_discount_check',
        ),
    )

    # Tenants
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('plan_tier', sa.String(20), nullable=False, server_default=sa.text("'FREE'")),
        sa.Column('subscription_status', sa.String(20), nullable=False),
        sa.Column('billing_period', sa.String(10)),
        sa.Column('trial_ends_at', sa.DateTime),
        sa.Column('subscription_ends_at', sa.DateTime),
        sa.Column('past_due_since', sa.DateTime),
        sa.Column('suspended_at', sa.DateTime),
        sa.Column('scheduled_deletion_at', sa.DateTime),
        sa.Column('cancelled_at', sa.DateTime),
        sa.Column('purged_at', sa.DateTime),
        sa.Column('version', sa.Integer, nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint(
            "subscription_status IN ('TRIAL', 'ACTIVE', 'PAST_DUE', 'SUSPENDED', 'CANCELLED')",
            name='subscriptionstatus',
        ),
    )
    op.create_index('ix_tenants_plan_tier', 'tenants', ['plan_tier'])
    op.create_index('ix_tenants_subscription_status', 'tenants', ['subscription_status'])
    op.create_index('ix_tenants_scheduled_deletion_at', 'tenants', ['scheduled_deletion_at'])

    op.create_table(
        'tenant_status_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('old_status', sa.String(20), nullable=False),
        sa.Column('new_status', sa.String(20), nullable=False),
        sa.Column('triggered_by', sa.String(20), nullable=False),
        sa.Column('actor_id', sa.String(100)),
        sa.Column('reason', sa.Text),
        sa.Column('reference_id', sa.String(36)),
        sa.Column('occurred_at', sa.DateTime, nullable=False),
        *_timestamps(),
    )

    # Invoices (never deleted)
    op.create_table(
        'invoices',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('invoice_number', sa.String(40), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('plan_tier', sa.String(20), nullable=False),
        sa.Column('billing_period', sa.String(10), nullable=False),
        sa.Column('amount', sa.Integer, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, index=True),
        sa.Column('due_date', sa.DateTime, nullable=False),
        sa.Column('payment_proof_url', sa.String(500)),
        sa.Column('proof_uploaded_at', sa.DateTime),
        sa.Column('verified_by', sa.String(100)),
        sa.Column('verified_at', sa.DateTime),
        sa.Column('rejection_note', sa.Text),
        sa.Column('paid_at', sa.DateTime),
        sa.Column('period_start', sa.DateTime),
        sa.Column('period_end', sa.DateTime),
        sa.Column('version', sa.Integer, nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'sequence', name='invoices_tenant_sequence_key'),
        sa.UniqueConstraint('tenant_id', 'invoice_number', name='invoices_tenant_number_key'),
        sa.CheckConstraint(
            "status IN ('PENDING', 'VERIFYING', 'PAID', 'REJECTED', 'OVERDUE')",
            name='invoicestatus',
        ),
    )

    # Approval queue
    op.create_table(
        'approval_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, index=True),
        sa.Column('payload', sa.Text, nullable=False),
        sa.Column('requested_by', sa.String(100), nullable=False),
        sa.Column('requested_at', sa.DateTime, nullable=False),
        sa.Column('processed_by', sa.String(100)),
        sa.Column('processed_at', sa.DateTime),
        sa.Column('note', sa.Text),
        sa.Column('version', sa.Integer, nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name='approvalstatus',
        ),
    )

    op.create_table(
        'payment_methods',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('provider', sa.String(100), nullable=False),
        sa.Column('account_name', sa.String(255), nullable=False),
        sa.Column('account_number', sa.String(100), nullable=False),
        sa.Column('instructions', sa.Text),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), index=True),
        sa.Column('actor_id', sa.String(100), index=True),
        sa.Column('action', sa.String(100), nullable=False, index=True),
        sa.Column('resource_type', sa.String(50)),
        sa.Column('resource_id', sa.String(100)),
        sa.Column('details', sa.JSON),
        *_timestamps(),
    )

    # Quota-counted resources owned by other subsystems
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('full_name', sa.String(255)),
        sa.Column('role', sa.String(20), nullable=False, server_default=sa.text("'STAFF'")),
        *_timestamps(),
    )
    op.create_table(
        'branches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        *_timestamps(),
    )
    for table in ('vehicles', 'customers'):
        op.create_table(
            table,
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id'), nullable=False, index=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('deleted_at', sa.DateTime),
            *_timestamps(),
        )


def downgrade() -> None:
    op.drop_table('customers')
    op.drop_table('vehicles')
    op.drop_table('branches')
    op.drop_table('users')
    op.drop_table('audit_logs')
    op.drop_table('payment_methods')
    op.drop_table('approval_requests')
    op.drop_table('invoices')
    op.drop_table('tenant_status_history')
    op.drop_index('ix_tenants_scheduled_deletion_at', table_name='tenants')
    op.drop_index('ix_tenants_subscription_status', table_name='tenants')
    op.drop_index('ix_tenants_plan_tier', table_name='tenants')
    op.drop_table('tenants')
    op.drop_table('plans')
