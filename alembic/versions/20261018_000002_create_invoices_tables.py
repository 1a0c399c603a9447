"""Create invoices and invoice_line_items tables

Revision ID: 20261018_000002
Revises: 20261018_000001
Create Date: 2026-10-18

Invoice numbers are unique per company. Line items carry typed metadata
(rent / utility / other) as JSON.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000002'
down_revision: Union[str, None] = '20261018_000001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

INVOICE_STATUSES = ('draft', 'sent', 'overdue', 'paid', 'canceled')


def upgrade() -> None:
    """Create the invoices and invoice_line_items tables."""
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('issued_by', sa.Integer(), nullable=False),
        sa.Column('issued_to', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('invoice_type', sa.String(length=50), nullable=False, server_default='monthly_rent'),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.Column(
            'status',
            sa.Enum(*INVOICE_STATUSES, name='invoice_status', create_constraint=True),
            nullable=False,
            server_default='draft'
        ),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('payment_reference', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['issued_to'],
            ['tenants.id'],
            name='fk_invoices_issued_to',
            ondelete='NO ACTION'
        ),
        sa.UniqueConstraint('company_id', 'invoice_number', name='uq_invoices_company_number'),
    )

    # Create indexes for common queries
    op.create_index('ix_invoices_company_id', 'invoices', ['company_id'])
    op.create_index('ix_invoices_issued_to', 'invoices', ['issued_to'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])

    op.create_table(
        'invoice_line_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=10, scale=2), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['invoice_id'],
            ['invoices.id'],
            name='fk_invoice_line_items_invoice_id',
            ondelete='CASCADE'
        ),
    )
    op.create_index('ix_invoice_line_items_invoice_id', 'invoice_line_items', ['invoice_id'])


def downgrade() -> None:
    """Drop the invoices and invoice_line_items tables."""
    op.drop_index('ix_invoice_line_items_invoice_id', table_name='invoice_line_items')
    op.drop_table('invoice_line_items')
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_index('ix_invoices_due_date', table_name='invoices')
    op.drop_index('ix_invoices_issued_to', table_name='invoices')
    op.drop_index('ix_invoices_company_id', table_name='invoices')
    op.drop_table('invoices')

    # Drop the enum type
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP TYPE IF EXISTS invoice_status")
