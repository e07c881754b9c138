"""Create referral ledger tables

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '20261019_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.DECIMAL(18, 8)
RATE = sa.DECIMAL(10, 4)
JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    # Account mirror
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('provider_customer_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_users')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index(
        'ix_users_provider_customer_id', 'users',
        ['provider_customer_id'], unique=True
    )

    # Policy templates
    op.create_table(
        'referral_profiles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column(
            'type', sa.String(length=20), nullable=False,
            comment='CUSTOMER or AFFILIATE'
        ),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column(
            'is_active', sa.Boolean(), nullable=False,
            server_default=sa.true()
        ),
        sa.Column('config', JSON, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_referral_profiles'),
        sa.UniqueConstraint('name', name='uq_referral_profiles_name')
    )
    op.create_index(
        'ix_referral_profiles_type', 'referral_profiles', ['type'], unique=False
    )

    # Referrer assignments
    op.create_table(
        'referral_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('profile_id', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(length=32), nullable=False),
        sa.Column('custom_slug', sa.String(length=64), nullable=True),
        sa.Column(
            'status', sa.String(length=20),
            nullable=False, server_default='ACTIVE'
        ),
        sa.Column('config_override', JSON, nullable=True),
        sa.Column(
            'payout_method', sa.String(length=32),
            nullable=False, server_default='MANUAL'
        ),
        sa.Column('total_clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_referrals', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_converted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned', MONEY, nullable=False, server_default='0'),
        sa.Column('total_paid_out', MONEY, nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'total_earned >= 0',
            name='ck_referral_assignments_total_earned_non_negative'
        ),
        sa.CheckConstraint(
            'total_paid_out >= 0',
            name='ck_referral_assignments_total_paid_out_non_negative'
        ),
        sa.ForeignKeyConstraint(
            ['user_id'], ['users.id'], ondelete='CASCADE',
            name='fk_referral_assignments_user_id_users'
        ),
        sa.ForeignKeyConstraint(
            ['profile_id'], ['referral_profiles.id'], ondelete='RESTRICT',
            name='fk_referral_assignments_profile_id_referral_profiles'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_referral_assignments'),
        sa.UniqueConstraint('user_id', name='uq_referral_assignments_user_id')
    )
    op.create_index(
        'ix_referral_assignments_profile_id', 'referral_assignments',
        ['profile_id'], unique=False
    )
    op.create_index(
        'ix_referral_assignments_referral_code', 'referral_assignments',
        ['referral_code'], unique=True
    )
    op.create_index(
        'ix_referral_assignments_custom_slug', 'referral_assignments',
        ['custom_slug'], unique=True
    )
    op.create_index(
        'ix_referral_assignments_status', 'referral_assignments',
        ['status'], unique=False
    )

    # Referred people, one row per email
    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('referred_email', sa.String(length=255), nullable=False),
        sa.Column('referred_user_id', sa.Integer(), nullable=True),
        sa.Column(
            'status', sa.String(length=20),
            nullable=False, server_default='REGISTERED'
        ),
        sa.Column('source_ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('utm_source', sa.String(length=100), nullable=True),
        sa.Column('utm_medium', sa.String(length=100), nullable=True),
        sa.Column('utm_campaign', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('clicked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('registered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('qualified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['assignment_id'], ['referral_assignments.id'], ondelete='CASCADE',
            name='fk_referrals_assignment_id_referral_assignments'
        ),
        sa.ForeignKeyConstraint(
            ['referred_user_id'], ['users.id'], ondelete='SET NULL',
            name='fk_referrals_referred_user_id_users'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_referrals'),
        sa.UniqueConstraint('referred_email', name='uq_referrals_referred_email')
    )
    op.create_index(
        'ix_referrals_assignment_id', 'referrals', ['assignment_id'], unique=False
    )
    op.create_index('ix_referrals_status', 'referrals', ['status'], unique=False)
    op.create_index(
        'idx_referrals_user_status', 'referrals',
        ['referred_user_id', 'status'], unique=False
    )

    # Payout requests
    op.create_table(
        'referral_payouts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column(
            'method', sa.String(length=32),
            nullable=False, server_default='MANUAL'
        ),
        sa.Column(
            'status', sa.String(length=20),
            nullable=False, server_default='PENDING'
        ),
        sa.Column('external_reference', sa.String(length=255), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['assignment_id'], ['referral_assignments.id'], ondelete='CASCADE',
            name='fk_referral_payouts_assignment_id_referral_assignments'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_referral_payouts')
    )
    op.create_index(
        'ix_referral_payouts_assignment_id', 'referral_payouts',
        ['assignment_id'], unique=False
    )
    op.create_index(
        'ix_referral_payouts_status', 'referral_payouts', ['status'], unique=False
    )

    # Ledger: one row per rewarded payment
    op.create_table(
        'referral_commissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('referral_id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.String(length=255), nullable=False),
        sa.Column('invoice_id', sa.String(length=255), nullable=True),
        sa.Column('base_amount', MONEY, nullable=False),
        sa.Column('commission_rate', RATE, nullable=False, server_default='0'),
        sa.Column('fixed_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('adjusted_amount', MONEY, nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column(
            'status', sa.String(length=20),
            nullable=False, server_default='PENDING'
        ),
        sa.Column('adjustment_reason', sa.Text(), nullable=True),
        sa.Column('payout_id', sa.Integer(), nullable=True),
        sa.Column('qualifies_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('qualified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'total_amount >= 0',
            name='ck_referral_commissions_total_amount_non_negative'
        ),
        sa.CheckConstraint(
            'adjusted_amount IS NULL OR adjusted_amount >= 0',
            name='ck_referral_commissions_adjusted_amount_non_negative'
        ),
        sa.ForeignKeyConstraint(
            ['assignment_id'], ['referral_assignments.id'], ondelete='CASCADE',
            name='fk_referral_commissions_assignment_id_referral_assignments'
        ),
        sa.ForeignKeyConstraint(
            ['referral_id'], ['referrals.id'], ondelete='CASCADE',
            name='fk_referral_commissions_referral_id_referrals'
        ),
        sa.ForeignKeyConstraint(
            ['payout_id'], ['referral_payouts.id'], ondelete='SET NULL',
            name='fk_referral_commissions_payout_id_referral_payouts'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_referral_commissions'),
        # Idempotency key: duplicate deliveries fail here
        sa.UniqueConstraint(
            'payment_id', name='uq_referral_commissions_payment_id'
        )
    )
    op.create_index(
        'ix_referral_commissions_referral_id', 'referral_commissions',
        ['referral_id'], unique=False
    )
    op.create_index(
        'ix_referral_commissions_status', 'referral_commissions',
        ['status'], unique=False
    )
    op.create_index(
        'ix_referral_commissions_payout_id', 'referral_commissions',
        ['payout_id'], unique=False
    )
    op.create_index(
        'idx_commissions_status_qualifies', 'referral_commissions',
        ['status', 'qualifies_at'], unique=False
    )
    op.create_index(
        'idx_commissions_assignment_created', 'referral_commissions',
        ['assignment_id', 'created_at'], unique=False
    )

    # Link visits
    op.create_table(
        'referral_clicks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('referer', sa.String(length=1024), nullable=True),
        sa.Column('landing_page', sa.String(length=1024), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['assignment_id'], ['referral_assignments.id'], ondelete='CASCADE',
            name='fk_referral_clicks_assignment_id_referral_assignments'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_referral_clicks')
    )
    op.create_index(
        'ix_referral_clicks_assignment_id', 'referral_clicks',
        ['assignment_id'], unique=False
    )

    # Append-only audit trail
    op.create_table(
        'referral_audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=False),
        sa.Column(
            'actor_type', sa.String(length=20),
            nullable=False, server_default='SYSTEM'
        ),
        sa.Column('metadata', JSON, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['assignment_id'], ['referral_assignments.id'], ondelete='SET NULL',
            name='fk_referral_audit_logs_assignment_id_referral_assignments'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_referral_audit_logs')
    )
    op.create_index(
        'ix_referral_audit_logs_assignment_id', 'referral_audit_logs',
        ['assignment_id'], unique=False
    )
    op.create_index(
        'ix_referral_audit_logs_action', 'referral_audit_logs',
        ['action'], unique=False
    )


def downgrade() -> None:
    op.drop_index('ix_referral_audit_logs_action', table_name='referral_audit_logs')
    op.drop_index(
        'ix_referral_audit_logs_assignment_id', table_name='referral_audit_logs'
    )
    op.drop_table('referral_audit_logs')
    op.drop_index('ix_referral_clicks_assignment_id', table_name='referral_clicks')
    op.drop_table('referral_clicks')
    op.drop_index(
        'idx_commissions_assignment_created', table_name='referral_commissions'
    )
    op.drop_index(
        'idx_commissions_status_qualifies', table_name='referral_commissions'
    )
    op.drop_index(
        'ix_referral_commissions_payout_id', table_name='referral_commissions'
    )
    op.drop_index('ix_referral_commissions_status', table_name='referral_commissions')
    op.drop_index(
        'ix_referral_commissions_referral_id', table_name='referral_commissions'
    )
    op.drop_table('referral_commissions')
    op.drop_index('ix_referral_payouts_status', table_name='referral_payouts')
    op.drop_index('ix_referral_payouts_assignment_id', table_name='referral_payouts')
    op.drop_table('referral_payouts')
    op.drop_index('idx_referrals_user_status', table_name='referrals')
    op.drop_index('ix_referrals_status', table_name='referrals')
    op.drop_index('ix_referrals_assignment_id', table_name='referrals')
    op.drop_table('referrals')
    op.drop_index(
        'ix_referral_assignments_status', table_name='referral_assignments'
    )
    op.drop_index(
        'ix_referral_assignments_custom_slug', table_name='referral_assignments'
    )
    op.drop_index(
        'ix_referral_assignments_referral_code', table_name='referral_assignments'
    )
    op.drop_index(
        'ix_referral_assignments_profile_id', table_name='referral_assignments'
    )
    op.drop_table('referral_assignments')
    op.drop_index('ix_referral_profiles_type', table_name='referral_profiles')
    op.drop_table('referral_profiles')
    op.drop_index('ix_users_provider_customer_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
