"""add_loyalty_programs_and_inventory_adjustments

Revision ID: 8b2e4d6f1a93
Revises: 3f1c9a7d2b10
Create Date: 2026-10-18 15:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8b2e4d6f1a93'
down_revision: Union[str, None] = '3f1c9a7d2b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _tenant_fk():
    return sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenant.id', ondelete='CASCADE'), nullable=False)


def upgrade() -> None:
    op.create_table(
        'loyalty_program',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('points_per_dollar', sa.Integer(), nullable=False),
        sa.Column('minimum_redemption', sa.BigInteger(), nullable=False),
        sa.Column('expiration_months', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_loyalty_program_tenant_id', 'loyalty_program', ['tenant_id'])

    # Existing accounts become the program-less account of their customer
    op.add_column(
        'loyalty_account',
        sa.Column('program_id', sa.Integer(), sa.ForeignKey('loyalty_program.id'), nullable=True)
    )
    op.create_index('ix_loyalty_account_program_id', 'loyalty_account', ['program_id'])
    op.drop_constraint('uq_loyalty_account_tenant_customer', 'loyalty_account', type_='unique')
    op.create_index(
        'uq_loyalty_account_tenant_customer_program',
        'loyalty_account',
        ['tenant_id', 'customer_id', 'program_id'],
        unique=True
    )
    op.create_index(
        'uq_loyalty_account_tenant_customer_default',
        'loyalty_account',
        ['tenant_id', 'customer_id'],
        unique=True,
        postgresql_where=sa.text('program_id IS NULL')
    )

    op.add_column('loyalty_transaction', sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True))
    op.create_index('ix_loyalty_transaction_order_id', 'loyalty_transaction', ['order_id'])

    op.create_table(
        'inventory_adjustment',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('product.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'adjustment_type',
            sa.Enum('increase', 'decrease', 'correction', name='inventory_adjustment_type'),
            nullable=False
        ),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column(
            'reason',
            sa.Enum(
                'waste', 'sample', 'personal', 'recount', 'damage', 'theft', 'expired', 'other',
                name='inventory_adjustment_reason'
            ),
            nullable=False
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('previous_quantity', sa.Integer(), nullable=True),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_inventory_adjustment_tenant_id', 'inventory_adjustment', ['tenant_id'])
    op.create_index('ix_inventory_adjustment_product_id', 'inventory_adjustment', ['product_id'])


def downgrade() -> None:
    op.drop_table('inventory_adjustment')

    op.drop_index('ix_loyalty_transaction_order_id', table_name='loyalty_transaction')
    op.drop_column('loyalty_transaction', 'expires_at')

    # Program accounts have no place in the old one-account-per-customer layout
    op.execute('DELETE FROM loyalty_account WHERE program_id IS NOT NULL')
    op.drop_index('uq_loyalty_account_tenant_customer_default', table_name='loyalty_account')
    op.drop_index('uq_loyalty_account_tenant_customer_program', table_name='loyalty_account')
    op.create_unique_constraint(
        'uq_loyalty_account_tenant_customer', 'loyalty_account', ['tenant_id', 'customer_id']
    )
    op.drop_index('ix_loyalty_account_program_id', table_name='loyalty_account')
    op.drop_column('loyalty_account', 'program_id')

    op.drop_table('loyalty_program')

    bind = op.get_bind()
    for enum_name in ('inventory_adjustment_reason', 'inventory_adjustment_type'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
