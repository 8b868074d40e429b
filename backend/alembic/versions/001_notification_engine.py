"""Notification engine schema

Revision ID: 001_notification_engine
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision = '001_notification_engine'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('mfa_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('phone_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'tenants',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('plan', sa.String(), nullable=False, server_default='core'),
        sa.Column('subscription_status', sa.String(), nullable=True),
        sa.Column('license_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('trial_expires_at', sa.DateTime(), nullable=True),
        sa.Column('deletion_requested_at', sa.DateTime(), nullable=True),
        sa.Column('deletion_scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tenants_status', 'tenants', ['status'], unique=False)
    op.create_index('ix_tenants_subscription_status', 'tenants', ['subscription_status'], unique=False)

    op.create_table(
        'tenant_members',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('is_owner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'user_id', name='uq_tenant_members_tenant_user')
    )
    op.create_index('ix_tenant_members_tenant_id', 'tenant_members', ['tenant_id'], unique=False)
    op.create_index('ix_tenant_members_user_id', 'tenant_members', ['user_id'], unique=False)

    op.create_table(
        'tenant_security_configs',
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('require_mfa', sa.Boolean(), nullable=True),
        sa.Column('mfa_deadline_days', sa.Integer(), nullable=True),
        sa.Column('require_phone_verification', sa.Boolean(), nullable=True),
        sa.Column('phone_verification_deadline_days', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('tenant_id')
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('action_route', sa.String(), nullable=True),
        sa.Column('action_label', sa.String(), nullable=True),
        sa.Column('severity', sa.String(), nullable=False, server_default='info'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_inbox', 'notifications', ['user_id', 'tenant_id', 'created_at'], unique=False)
    op.create_index('ix_notifications_expires_at', 'notifications', ['expires_at'], unique=False)

    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('email_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('in_app_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sound_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sound_volume', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('dnd_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('dnd_start_time', sa.String(length=5), nullable=True),
        sa.Column('dnd_end_time', sa.String(length=5), nullable=True),
        sa.Column('category_preferences', JSONB(), nullable=True),
        sa.Column('paused_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'tenant_id', name='uq_notification_preferences_user_tenant'),
        sa.CheckConstraint('sound_volume BETWEEN 0 AND 100', name='ck_notification_preferences_volume')
    )
    op.create_index('ix_notification_preferences_user_id', 'notification_preferences', ['user_id'], unique=False)
    op.create_index('ix_notification_preferences_tenant_id', 'notification_preferences', ['tenant_id'], unique=False)

    # Ledger rows outlive users and tenants, so no foreign keys here.
    op.create_table(
        'reminder_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('tenant_id', sa.String(), nullable=True),
        sa.Column('subject_key', sa.String(), nullable=False),
        sa.Column('reminder_type', sa.String(), nullable=False),
        sa.Column('stage', sa.String(), nullable=False),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('email_error', sa.Text(), nullable=True),
        sa.Column('in_app_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('in_app_sent_at', sa.DateTime(), nullable=True),
        sa.Column('deadline_at', sa.DateTime(), nullable=True),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subject_key', 'reminder_type', 'stage', name='uq_reminder_logs_subject_type_stage')
    )
    op.create_index('ix_reminder_logs_user_id', 'reminder_logs', ['user_id'], unique=False)
    op.create_index('ix_reminder_logs_tenant_id', 'reminder_logs', ['tenant_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_reminder_logs_tenant_id', table_name='reminder_logs')
    op.drop_index('ix_reminder_logs_user_id', table_name='reminder_logs')
    op.drop_table('reminder_logs')
    op.drop_index('ix_notification_preferences_tenant_id', table_name='notification_preferences')
    op.drop_index('ix_notification_preferences_user_id', table_name='notification_preferences')
    op.drop_table('notification_preferences')
    op.drop_index('ix_notifications_expires_at', table_name='notifications')
    op.drop_index('ix_notifications_inbox', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('tenant_security_configs')
    op.drop_index('ix_tenant_members_user_id', table_name='tenant_members')
    op.drop_index('ix_tenant_members_tenant_id', table_name='tenant_members')
    op.drop_table('tenant_members')
    op.drop_index('ix_tenants_subscription_status', table_name='tenants')
    op.drop_index('ix_tenants_status', table_name='tenants')
    op.drop_table('tenants')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
