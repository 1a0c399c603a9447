"""Create tenants and sequence_counters tables

Revision ID: 20261018_000001
Revises: None
Create Date: 2026-10-18

Tenants are the billed parties; sequence_counters hold one row per
(company, sequence) used to allocate invoice and receipt numbers.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the tenants and sequence_counters tables."""
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tenants_company_id', 'tenants', ['company_id'])

    op.create_table(
        'sequence_counters',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('current_value', sa.BigInteger(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_sequence_counters_company_name'),
    )


def downgrade() -> None:
    """Drop the tenants and sequence_counters tables."""
    op.drop_table('sequence_counters')
    op.drop_index('ix_tenants_company_id', table_name='tenants')
    op.drop_table('tenants')
