"""Create payments table

Revision ID: 20261018_000003
Revises: 20261018_000002
Create Date: 2026-10-18

Receipt numbers are unique per company; gateway transaction ids and
reference numbers are unique per company when present (filtered indexes).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000003'
down_revision: Union[str, None] = '20261018_000002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PAYMENT_STATUSES = ('pending', 'approved', 'completed', 'rejected')


def upgrade() -> None:
    """Create the payments table."""
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=False),
        sa.Column('transaction_id', sa.String(length=100), nullable=True),
        sa.Column('reference_number', sa.String(length=100), nullable=True),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('lease_id', sa.Integer(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_method', sa.String(length=50), nullable=False),
        sa.Column('payment_type', sa.String(length=50), nullable=False, server_default='rent'),
        sa.Column('payment_period', sa.String(length=100), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.Column(
            'status',
            sa.Enum(*PAYMENT_STATUSES, name='payment_status', create_constraint=True),
            nullable=False,
            server_default='pending'
        ),
        sa.Column('received_from', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['tenant_id'],
            ['tenants.id'],
            name='fk_payments_tenant_id',
            ondelete='NO ACTION'
        ),
        sa.ForeignKeyConstraint(
            ['invoice_id'],
            ['invoices.id'],
            name='fk_payments_invoice_id',
            ondelete='SET NULL'
        ),
        sa.UniqueConstraint('company_id', 'receipt_number', name='uq_payments_company_receipt'),
    )

    op.create_index('ix_payments_company_id', 'payments', ['company_id'])
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_payment_date', 'payments', ['payment_date'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    # Unique only where present so many payments may omit them
    op.create_index(
        'uq_payments_company_transaction_id',
        'payments',
        ['company_id', 'transaction_id'],
        unique=True,
        postgresql_where=sa.text('transaction_id IS NOT NULL'),
        sqlite_where=sa.text('transaction_id IS NOT NULL'),
        mssql_where=sa.text('transaction_id IS NOT NULL'),
    )
    op.create_index(
        'uq_payments_company_reference_number',
        'payments',
        ['company_id', 'reference_number'],
        unique=True,
        postgresql_where=sa.text('reference_number IS NOT NULL'),
        sqlite_where=sa.text('reference_number IS NOT NULL'),
        mssql_where=sa.text('reference_number IS NOT NULL'),
    )


def downgrade() -> None:
    """Drop the payments table."""
    op.drop_index('uq_payments_company_reference_number', table_name='payments')
    op.drop_index('uq_payments_company_transaction_id', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_payment_date', table_name='payments')
    op.drop_index('ix_payments_invoice_id', table_name='payments')
    op.drop_index('ix_payments_tenant_id', table_name='payments')
    op.drop_index('ix_payments_company_id', table_name='payments')
    op.drop_table('payments')

    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP TYPE IF EXISTS payment_status")
