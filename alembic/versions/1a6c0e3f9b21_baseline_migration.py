"""baseline_migration

Revision ID: 1a6c0e3f9b21
Revises: 
Create Date: 2026-10-19 09:12:44.118203

Creates every table when it does not exist yet, so databases created by
init_db can be stamped and upgraded in place.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '1a6c0e3f9b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def _user_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE')


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('password_hash', sa.String(), nullable=False),
            sa.Column('phone_number', sa.String(), nullable=False),
            sa.Column('nickname', sa.String(), nullable=True),
            sa.Column('info', sa.Text(), nullable=True),
            sa.Column('timezone', sa.String(), nullable=True),
            sa.Column('credits', sa.Float(), nullable=False),
            sa.Column('credits_left', sa.Float(), nullable=False),
            sa.Column('sub_tier', sa.String(), nullable=True),
            sa.Column('discount_tier', sa.String(), nullable=True),
            sa.Column('preferred_number', sa.String(), nullable=True),
            sa.Column('phone_number_country', sa.String(), nullable=True),
            sa.Column('is_admin', sa.Boolean(), nullable=False),
            sa.Column('verified', sa.Boolean(), nullable=False),
            sa.Column('notify', sa.Boolean(), nullable=False),
            sa.Column('charge_when_under', sa.Boolean(), nullable=False),
            sa.Column('charge_back_threshold', sa.Float(), nullable=True),
            sa.Column('charge_back_amount', sa.Float(), nullable=True),
            sa.Column('last_credits_notification', sa.Integer(), nullable=True),
            sa.Column('stripe_customer_id', sa.String(), nullable=True),
            sa.Column('stripe_payment_method_id', sa.String(), nullable=True),
            sa.Column('matrix_username', sa.String(), nullable=True),
            sa.Column('encrypted_matrix_access_token', sa.Text(), nullable=True),
            sa.Column('matrix_device_id', sa.String(), nullable=True),
            sa.Column('encrypted_matrix_password', sa.Text(), nullable=True),
            sa.Column('twilio_account_sid', sa.String(), nullable=True),
            sa.Column('twilio_auth_token', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
        op.create_index(op.f('ix_users_phone_number'), 'users', ['phone_number'], unique=True)
        op.create_index(op.f('ix_users_stripe_customer_id'), 'users', ['stripe_customer_id'], unique=False)

    if not table_exists('user_settings'):
        op.create_table('user_settings',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('agent_language', sa.String(), nullable=False),
            sa.Column('notification_type', sa.String(), nullable=True),
            sa.Column('save_context', sa.Integer(), nullable=True),
            sa.Column('elevenlabs_phone_number_id', sa.String(), nullable=True),
            sa.Column('notify_about_calls', sa.Boolean(), nullable=False),
            _user_fk(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id')
        )
        op.create_index(op.f('ix_user_settings_id'), 'user_settings', ['id'], unique=False)

    if not table_exists('subscriptions'):
        op.create_table('subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('paddle_subscription_id', sa.String(), nullable=False),
            sa.Column('paddle_customer_id', sa.String(), nullable=False),
            sa.Column('stage', sa.String(), nullable=True),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('next_bill_date', sa.String(), nullable=True),
            sa.Column('is_scheduled_to_cancel', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            _user_fk(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('paddle_subscription_id')
        )
        op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
        op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'], unique=False)

    if not table_exists('conversations'):
        op.create_table('conversations',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('conversation_sid', sa.String(), nullable=False),
            sa.Column('service_sid', sa.String(), nullable=True),
            sa.Column('twilio_number', sa.String(), nullable=False),
            sa.Column('user_number', sa.String(), nullable=False),
            sa.Column('active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            _user_fk(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('conversation_sid')
        )
        op.create_index(op.f('ix_conversations_id'), 'conversations', ['id'], unique=False)
        op.create_index(op.f('ix_conversations_user_id'), 'conversations', ['user_id'], unique=False)

    if not table_exists('message_history'):
        op.create_table('message_history',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('role', sa.String(), nullable=False),
            sa.Column('encrypted_content', sa.Text(), nullable=False),
            sa.Column('tool_name', sa.String(), nullable=True),
            sa.Column('tool_call_id', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            _user_fk(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_message_history_id'), 'message_history', ['id'], unique=False)
        op.create_index(op.f('ix_message_history_user_id'), 'message_history', ['user_id'], unique=False)
        op.create_index(op.f('ix_message_history_created_at'), 'message_history', ['created_at'], unique=False)

    if not table_exists('usage_logs'):
        op.create_table('usage_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('sid', sa.String(), nullable=True),
            sa.Column('activity_type', sa.String(), nullable=False),
            sa.Column('credits', sa.Float(), nullable=True),
            sa.Column('success', sa.Boolean(), nullable=True),
            sa.Column('reason', sa.String(), nullable=True),
            sa.Column('status', sa.String(), nullable=True),
            sa.Column('time_consumed', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            _user_fk(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_usage_user_created', 'usage_logs', ['user_id', 'created_at'], unique=False)
        op.create_index(op.f('ix_usage_logs_id'), 'usage_logs', ['id'], unique=False)
        op.create_index(op.f('ix_usage_logs_user_id'), 'usage_logs', ['user_id'], unique=False)
        op.create_index(op.f('ix_usage_logs_created_at'), 'usage_logs', ['created_at'], unique=False)

    if not table_exists('waiting_checks'):
        op.create_table('waiting_checks',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('content', sa.Text(), nullable=False),
            sa.Column('service_type', sa.String(), nullable=False),
            sa.Column('noti_type', sa.String(), nullable=True),
            sa.Column('due_date', sa.Integer(), nullable=True),
            sa.Column('remove_when_found', sa.Boolean(), nullable=False),
            _user_fk(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_waiting_checks_id'), 'waiting_checks', ['id'], unique=False)
        op.create_index(op.f('ix_waiting_checks_user_id'), 'waiting_checks', ['user_id'], unique=False)

    if not table_exists('bridges'):
        op.create_table('bridges',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('bridge_type', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('room_id', sa.String(), nullable=True),
            sa.Column('data', sa.Text(), nullable=True),
            sa.Column('created_at', sa.Integer(), nullable=True),
            sa.Column('last_seen_online', sa.Integer(), nullable=True),
            _user_fk(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_bridges_id'), 'bridges', ['id'], unique=False)
        op.create_index(op.f('ix_bridges_user_id'), 'bridges', ['user_id'], unique=False)

    if not table_exists('unipile_connections'):
        op.create_table('unipile_connections',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('provider', sa.String(), nullable=True),
            sa.Column('account_id', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            _user_fk(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('account_id')
        )
        op.create_index(op.f('ix_unipile_connections_id'), 'unipile_connections', ['id'], unique=False)
        op.create_index(op.f('ix_unipile_connections_user_id'), 'unipile_connections', ['user_id'], unique=False)

    if not table_exists('google_calendar'):
        op.create_table('google_calendar',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('encrypted_access_token', sa.Text(), nullable=False),
            sa.Column('encrypted_refresh_token', sa.Text(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('description', sa.String(), nullable=True),
            sa.Column('expires_in', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            _user_fk(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_google_calendar_id'), 'google_calendar', ['id'], unique=False)
        op.create_index(op.f('ix_google_calendar_user_id'), 'google_calendar', ['user_id'], unique=False)

    if not table_exists('imap_connection'):
        op.create_table('imap_connection',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('method', sa.String(), nullable=False),
            sa.Column('description', sa.String(), nullable=False),
            sa.Column('encrypted_password', sa.Text(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('imap_server', sa.String(), nullable=True),
            sa.Column('imap_port', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            _user_fk(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_imap_connection_id'), 'imap_connection', ['id'], unique=False)
        op.create_index(op.f('ix_imap_connection_user_id'), 'imap_connection', ['user_id'], unique=False)

    if not table_exists('outbox_jobs'):
        op.create_table('outbox_jobs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('kind', sa.String(), nullable=False),
            sa.Column('payload', sa.Text(), nullable=False),
            sa.Column('dedupe_key', sa.String(), nullable=True),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('attempts', sa.Integer(), nullable=False),
            sa.Column('max_attempts', sa.Integer(), nullable=False),
            sa.Column('last_error', sa.Text(), nullable=True),
            sa.Column('next_attempt_at', sa.DateTime(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_outbox_status_next', 'outbox_jobs', ['status', 'next_attempt_at'], unique=False)
        op.create_index(op.f('ix_outbox_jobs_id'), 'outbox_jobs', ['id'], unique=False)
        op.create_index(op.f('ix_outbox_jobs_kind'), 'outbox_jobs', ['kind'], unique=False)
        op.create_index(op.f('ix_outbox_jobs_dedupe_key'), 'outbox_jobs', ['dedupe_key'], unique=False)


def downgrade() -> None:
    for table in (
        'outbox_jobs', 'imap_connection', 'google_calendar', 'unipile_connections', 'bridges',
        'waiting_checks', 'usage_logs', 'message_history', 'conversations', 'subscriptions',
        'user_settings', 'users',
    ):
        if table_exists(table):
            op.drop_table(table)
