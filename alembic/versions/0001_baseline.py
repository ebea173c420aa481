"""Baseline: message queue, webhook ledger, customers, conversations.

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Creates:
- message_queue (due-message partial index)
- webhook_events (unique idempotency key)
- customers
- conversations
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_baseline'
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    # ==========================================================================
    # message_queue
    # ==========================================================================
    op.create_table(
        'message_queue',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(100), nullable=False),

        # Content
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('subject', sa.String(500), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('message_type', sa.String(50), nullable=False),

        # Lifecycle
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('max_attempts', sa.Integer(), server_default=sa.text('3'), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('dead_lettered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dead_letter_reason', sa.Text(), nullable=True),

        # Provider
        sa.Column('provider_message_id', sa.String(255), nullable=True),
        sa.Column('provider_status', sa.String(50), nullable=True),
        sa.Column('provider_name', sa.String(50), nullable=True),
        sa.Column('cost', sa.Numeric(10, 4), nullable=True),

        # Weak references
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('conversation_id', sa.Uuid(), nullable=True),
        sa.Column('appointment_id', sa.String(255), nullable=True),
        sa.Column('call_id', sa.String(255), nullable=True),

        sa.Column('metadata', JSONType, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'idx_message_queue_due',
        'message_queue',
        ['status', 'scheduled_for'],
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index('idx_message_queue_tenant', 'message_queue', ['tenant_id', 'created_at'])
    op.create_index('idx_message_queue_appointment', 'message_queue', ['appointment_id'])
    op.create_index('idx_message_queue_status', 'message_queue', ['status'])

    # ==========================================================================
    # webhook_events
    # ==========================================================================
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(100), nullable=False),
        sa.Column('call_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('idempotency_key', sa.String(512), nullable=False),
        sa.Column('payload', JSONType, nullable=False),
        sa.Column('processed', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'uq_webhook_events_idempotency', 'webhook_events', ['idempotency_key'], unique=True
    )
    op.create_index('idx_webhook_events_call', 'webhook_events', ['tenant_id', 'call_id'])

    # ==========================================================================
    # customers
    # ==========================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(30), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('crm_contact_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('uq_customers_tenant_phone', 'customers', ['tenant_id', 'phone'], unique=True)

    # ==========================================================================
    # conversations
    # ==========================================================================
    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(100), nullable=False),
        sa.Column('call_id', sa.String(255), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('direction', sa.String(20), nullable=True),
        sa.Column('from_number', sa.String(30), nullable=True),
        sa.Column('to_number', sa.String(30), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),
        sa.Column('transcript', sa.Text(), nullable=True),
        sa.Column('intent', sa.String(50), nullable=True),
        sa.Column('intent_confidence', sa.Float(), nullable=True),
        sa.Column('urgency', sa.String(20), nullable=True),
        sa.Column('sentiment', sa.String(20), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('analysis', JSONType, nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('uq_conversations_call', 'conversations', ['tenant_id', 'call_id'], unique=True)


def downgrade() -> None:
    op.drop_table('conversations')
    op.drop_table('customers')
    op.drop_table('webhook_events')
    op.drop_table('message_queue')
