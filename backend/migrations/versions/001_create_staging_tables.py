"""Create product, durable_record and audit_log tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Catalog: current price and tax truth
    op.create_table(
        'product',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('code', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_product'),
        sa.UniqueConstraint('code', name='uq_product_code'),
    )
    op.create_index('ix_product_active', 'product', ['active'])

    # SQL system of record for committed drafts
    op.create_table(
        'durable_record',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('record_type', sa.Text(), nullable=False),
        sa.Column('idempotency_key', sa.Text(), nullable=False,
                  comment='Unique key for idempotent commit writes'),
        sa.Column('session_id', sa.Text(), nullable=False),
        sa.Column('owner_id', sa.Text(), nullable=False),
        sa.Column('payload_json', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        sa.Column('privilege', sa.Text(), nullable=False),
        sa.Column('access_modifier', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_durable_record'),
        sa.UniqueConstraint('idempotency_key', name='uq_durable_record_idempotency_key'),
        sa.CheckConstraint(
            "record_type IN ('order_product', 'membership_category', 'membership_employment', "
            "'membership_practices', 'membership_preferences')",
            name='ck_durable_record_record_type'
        ),
    )
    op.create_index('idx_durable_record_owner_type', 'durable_record', ['owner_id', 'record_type'])
    op.create_index('idx_durable_record_session', 'durable_record', ['session_id'])

    # Append-only event sink
    op.create_table(
        'audit_log',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('event_name', sa.Text(), nullable=False),
        sa.Column('session_id', sa.Text(), nullable=True),
        sa.Column('actor_id', sa.Text(), nullable=True),
        sa.Column('operation_id', sa.Text(), nullable=True),
        sa.Column('metadata_json', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_audit_log'),
    )
    op.create_index('ix_audit_log_session_id', 'audit_log', ['session_id'])
    op.create_index('ix_audit_log_event_created_at', 'audit_log', ['event_name', 'created_at'])


def downgrade():
    op.drop_index('ix_audit_log_event_created_at', table_name='audit_log')
    op.drop_index('ix_audit_log_session_id', table_name='audit_log')
    op.drop_table('audit_log')

    op.drop_index('idx_durable_record_session', table_name='durable_record')
    op.drop_index('idx_durable_record_owner_type', table_name='durable_record')
    op.drop_table('durable_record')

    op.drop_index('ix_product_active', table_name='product')
    op.drop_table('product')
