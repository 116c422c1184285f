"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # users
    # ========================================================================
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('token_balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('token_balance >= 0', name='ck_users_balance_non_negative'),
        sa.CheckConstraint("role IN ('user', 'admin')", name='ck_users_role'),
    )
    op.create_index('idx_users_email', 'users', ['email'])

    # ========================================================================
    # anonymous_sessions
    # ========================================================================
    op.create_table(
        'anonymous_sessions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('session_id', sa.String(255), nullable=False, unique=True),
        sa.Column('tokens_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_activity', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('tokens_used >= 0', name='ck_sessions_tokens_used_non_negative'),
    )
    op.create_index('idx_anonymous_sessions_session_id', 'anonymous_sessions', ['session_id'])

    # ========================================================================
    # token_usage (append-only ledger)
    # ========================================================================
    op.create_table(
        'token_usage',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('session_id', sa.String(255), nullable=True),
        sa.Column('event_type', sa.String(20), nullable=False),
        sa.Column('tokens_used', sa.BigInteger(), nullable=False),
        sa.Column('tokens_remaining', sa.BigInteger(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('(user_id IS NULL) <> (session_id IS NULL)', name='ck_token_usage_single_owner'),
        sa.CheckConstraint(
            "event_type IN ('analysis', 'upload', 'purchase', 'adjustment')",
            name='ck_token_usage_event_type',
        ),
    )
    op.create_index('idx_token_usage_user_created', 'token_usage', ['user_id', 'created_at'])
    op.create_index('idx_token_usage_session_created', 'token_usage', ['session_id', 'created_at'])

    # ========================================================================
    # documents
    # ========================================================================
    op.create_table(
        'documents',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('word_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_documents_user_uploaded', 'documents', ['user_id', 'uploaded_at'])

    # ========================================================================
    # analysis_requests
    # ========================================================================
    op.create_table(
        'analysis_requests',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('analysis_type', sa.String(20), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint(
            "analysis_type IN ('cognitive', 'comprehensive')", name='ck_analysis_requests_type'
        ),
    )
    op.create_index('idx_analysis_requests_user_created', 'analysis_requests', ['user_id', 'created_at'])

    # ========================================================================
    # comprehensive_reports
    # ========================================================================
    op.create_table(
        'comprehensive_reports',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('analysis_request_id', UUID(as_uuid=True), sa.ForeignKey('analysis_requests.id'), nullable=False),
        sa.Column('report_type', sa.String(50), nullable=False, server_default='comprehensive'),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('report_data', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index(
        'idx_comprehensive_reports_user_created', 'comprehensive_reports', ['user_id', 'created_at']
    )

    # ========================================================================
    # payments
    # ========================================================================
    op.create_table(
        'payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=False, unique=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('tokens_purchased', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('amount_cents > 0', name='ck_payments_amount_positive'),
        sa.CheckConstraint('tokens_purchased > 0', name='ck_payments_tokens_positive'),
        sa.CheckConstraint("status IN ('pending', 'succeeded', 'failed')", name='ck_payments_status'),
    )
    op.create_index('idx_payments_user_created', 'payments', ['user_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('payments')
    op.drop_table('comprehensive_reports')
    op.drop_table('analysis_requests')
    op.drop_table('documents')
    op.drop_table('token_usage')
    op.drop_table('anonymous_sessions')
    op.drop_table('users')
