"""Membership lifecycle - plans, versioned membership records, plan change requests, cancellations, ledger

Revision ID: 20261016_0900_membership_lifecycle
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '20261016_0900_membership_lifecycle'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MEMBER_ROLE = ('member', 'trainer', 'front_desk', 'nutritionist', 'admin')
MEMBERSHIP_STATUS = ('active', 'paused', 'cancelled')
MEMBERSHIP_EVENT_TYPE = (
    'signup', 'plan_change', 'pause', 'resume', 'auto_resume',
    'cancel', 'reactivate', 'auto_renew_changed',
)
PLAN_CHANGE_STATUS = ('calculated', 'confirmed', 'applied', 'expired')
BALANCE_TRANSACTION_TYPE = (
    'proration_credit', 'plan_charge', 'payment', 'credit_forfeited', 'plan_purchase',
)

ENUMS = {
    'memberrole': MEMBER_ROLE,
    'membershipstatus': MEMBERSHIP_STATUS,
    'membershipeventtype': MEMBERSHIP_EVENT_TYPE,
    'planchangestatus': PLAN_CHANGE_STATUS,
    'balancetransactiontype': BALANCE_TRANSACTION_TYPE,
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Create ENUMs (no-op on SQLite)
    bind = op.get_bind()
    for name in ENUMS:
        _enum(name).create(bind, checkfirst=True)

    # =====================================================
    # MEMBERS
    # =====================================================
    op.create_table(
        'members',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('emergency_contact_name', sa.String(length=200), nullable=True),
        sa.Column('emergency_contact_phone', sa.String(length=20), nullable=True),
        sa.Column('role', _enum('memberrole'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_members')),
    )
    op.create_index(op.f('ix_members_email'), 'members', ['email'], unique=True)

    # =====================================================
    # PLAN CATALOG
    # =====================================================
    op.create_table(
        'membership_plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_minor_units', sa.Integer(), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('max_classes_per_month', sa.Integer(), nullable=False),
        sa.Column('includes_personal_training', sa.Boolean(), nullable=False),
        sa.Column('includes_nutrition_consultation', sa.Boolean(), nullable=False),
        sa.Column('is_retired', sa.Boolean(), nullable=False),
        sa.Column('retired_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('price_minor_units >= 0', name=op.f('ck_membership_plans_price_non_negative')),
        sa.CheckConstraint('duration_months >= 0', name=op.f('ck_membership_plans_duration_non_negative')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_membership_plans')),
    )

    # =====================================================
    # MEMBERSHIP RECORDS (versioned)
    # =====================================================
    op.create_table(
        'membership_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('is_current', sa.Boolean(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', _enum('membershipstatus'), nullable=False),
        sa.Column('auto_renew', sa.Boolean(), nullable=False),
        sa.Column('pause_start', sa.DateTime(), nullable=True),
        sa.Column('pause_end', sa.DateTime(), nullable=True),
        sa.Column('pause_duration_days', sa.Integer(), nullable=True),
        sa.Column('pause_reason', sa.String(length=500), nullable=True),
        sa.Column('change_reason', _enum('membershipeventtype'), nullable=False),
        sa.Column('superseded_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('end_date > start_date', name=op.f('ck_membership_records_end_after_start')),
        sa.ForeignKeyConstraint(
            ['member_id'], ['members.id'],
            name=op.f('fk_membership_records_member_id_members'), ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['plan_id'], ['membership_plans.id'],
            name=op.f('fk_membership_records_plan_id_membership_plans'), ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_membership_records')),
        sa.UniqueConstraint('member_id', 'version', name='uq_membership_records_member_version'),
    )
    op.create_index(op.f('ix_membership_records_member_id'), 'membership_records', ['member_id'])
    # At most one current row per member
    op.create_index(
        'uq_membership_records_current_member',
        'membership_records',
        ['member_id'],
        unique=True,
        sqlite_where=sa.text('is_current = 1'),
        postgresql_where=sa.text('is_current'),
    )

    # =====================================================
    # PLAN CHANGE REQUESTS
    # =====================================================
    op.create_table(
        'plan_change_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('from_plan_id', sa.Integer(), nullable=False),
        sa.Column('to_plan_id', sa.Integer(), nullable=False),
        sa.Column('membership_version', sa.Integer(), nullable=False),
        sa.Column('days_remaining', sa.Integer(), nullable=False),
        sa.Column('days_total', sa.Integer(), nullable=False),
        sa.Column('current_plan_balance', sa.Integer(), nullable=False),
        sa.Column('new_plan_price', sa.Integer(), nullable=False),
        sa.Column('balance_difference', sa.Integer(), nullable=False),
        sa.Column('payment_required', sa.Boolean(), nullable=False),
        sa.Column('status', _enum('planchangestatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('applied_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('payment_reference', sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(
            ['member_id'], ['members.id'],
            name=op.f('fk_plan_change_requests_member_id_members'), ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['from_plan_id'], ['membership_plans.id'],
            name=op.f('fk_plan_change_requests_from_plan_id_membership_plans'), ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['to_plan_id'], ['membership_plans.id'],
            name=op.f('fk_plan_change_requests_to_plan_id_membership_plans'), ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_plan_change_requests')),
        sa.UniqueConstraint('payment_reference', name=op.f('uq_plan_change_requests_payment_reference')),
    )
    op.create_index(op.f('ix_plan_change_requests_member_id'), 'plan_change_requests', ['member_id'])

    # =====================================================
    # CANCELLATIONS & EVENTS (append-only)
    # =====================================================
    op.create_table(
        'cancellation_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('membership_version', sa.Integer(), nullable=False),
        sa.Column('days_left_at_cancellation', sa.Integer(), nullable=False),
        sa.Column('value_lost_minor_units', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['member_id'], ['members.id'],
            name=op.f('fk_cancellation_records_member_id_members'), ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['plan_id'], ['membership_plans.id'],
            name=op.f('fk_cancellation_records_plan_id_membership_plans'), ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cancellation_records')),
    )
    op.create_index(op.f('ix_cancellation_records_member_id'), 'cancellation_records', ['member_id'])

    op.create_table(
        'membership_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('event_type', _enum('membershipeventtype'), nullable=False),
        sa.Column('from_version', sa.Integer(), nullable=True),
        sa.Column('to_version', sa.Integer(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['member_id'], ['members.id'],
            name=op.f('fk_membership_events_member_id_members'), ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_membership_events')),
    )
    op.create_index(op.f('ix_membership_events_member_id'), 'membership_events', ['member_id'])

    # =====================================================
    # BALANCE LEDGER
    # =====================================================
    op.create_table(
        'member_balance_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('transaction_type', _enum('balancetransactiontype'), nullable=False),
        sa.Column('amount_minor_units', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['member_id'], ['members.id'],
            name=op.f('fk_member_balance_transactions_member_id_members'), ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_member_balance_transactions')),
        sa.UniqueConstraint(
            'member_id', 'sequence', name='uq_member_balance_transactions_member_sequence',
        ),
    )
    op.create_index(
        op.f('ix_member_balance_transactions_member_id'), 'member_balance_transactions', ['member_id'],
    )


def downgrade() -> None:
    op.drop_index(op.f('ix_member_balance_transactions_member_id'), table_name='member_balance_transactions')
    op.drop_table('member_balance_transactions')
    op.drop_index(op.f('ix_membership_events_member_id'), table_name='membership_events')
    op.drop_table('membership_events')
    op.drop_index(op.f('ix_cancellation_records_member_id'), table_name='cancellation_records')
    op.drop_table('cancellation_records')
    op.drop_index(op.f('ix_plan_change_requests_member_id'), table_name='plan_change_requests')
    op.drop_table('plan_change_requests')
    op.drop_index('uq_membership_records_current_member', table_name='membership_records')
    op.drop_index(op.f('ix_membership_records_member_id'), table_name='membership_records')
    op.drop_table('membership_records')
    op.drop_table('membership_plans')
    op.drop_index(op.f('ix_members_email'), table_name='members')
    op.drop_table('members')

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        _enum(name).drop(bind, checkfirst=True)
