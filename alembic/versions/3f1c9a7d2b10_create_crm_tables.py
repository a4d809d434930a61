"""create_crm_tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
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
    """Create tenant, membership, catalogue, order, ledger and delivery tables."""
    op.create_table(
        'tenant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('plan_type', sa.String(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'membership',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('role', sa.String(50), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'tenant_id', name='uq_membership_user_tenant'),
    )
    op.create_index('ix_membership_tenant_id', 'membership', ['tenant_id'])
    op.create_index('ix_membership_user_id', 'membership', ['user_id'])

    op.create_table(
        'invitation',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('token', sa.String(), nullable=False),
        sa.Column('invited_by', sa.String(), nullable=False),
        sa.Column('accepted_by', sa.String(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_invitation_tenant_id', 'invitation', ['tenant_id'])
    op.create_index('ix_invitation_token', 'invitation', ['token'], unique=True)

    op.create_table(
        'customer',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_customer_tenant_id', 'customer', ['tenant_id'])

    op.create_table(
        'product',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.BigInteger(), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_product_tenant_sku'),
    )
    op.create_index('ix_product_tenant_id', 'product', ['tenant_id'])

    op.create_table(
        'customer_order',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customer.id'), nullable=True),
        sa.Column('status', sa.Enum('pending', 'paid', 'fulfilled', 'cancelled', name='order_status'), nullable=False),
        sa.Column('payment_method', sa.Enum('cash', 'card', 'credit', name='payment_method'), nullable=False),
        sa.Column('total_cents', sa.BigInteger(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_customer_order_tenant_id', 'customer_order', ['tenant_id'])
    op.create_index('ix_customer_order_customer_id', 'customer_order', ['customer_id'])

    op.create_table(
        'order_item',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('customer_order.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('product.id'), nullable=True),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.BigInteger(), nullable=False),
        sa.Column('line_total_cents', sa.BigInteger(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_order_item_order_id', 'order_item', ['order_id'])

    op.create_table(
        'credit_account',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customer.id'), nullable=False),
        sa.Column('credit_limit', sa.BigInteger(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('active', 'suspended', 'closed', 'defaulted', name='credit_account_status'),
            nullable=False
        ),
        sa.Column('payment_customer_ref', sa.String(), nullable=True),
        sa.Column('payment_method_ref', sa.String(), nullable=True),
        sa.Column('setup_intent_id', sa.String(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'customer_id', name='uq_credit_account_tenant_customer'),
    )
    op.create_index('ix_credit_account_tenant_id', 'credit_account', ['tenant_id'])

    op.create_table(
        'credit_transaction',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('credit_id', sa.Integer(), sa.ForeignKey('credit_account.id'), nullable=False),
        sa.Column(
            'transaction_type',
            sa.Enum('charge', 'payment', 'fee', 'adjustment', name='credit_transaction_type'),
            nullable=False
        ),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'completed', 'failed', 'reversed', name='credit_transaction_status'),
            nullable=False
        ),
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('customer_order.id'), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reversal_of_id', sa.Integer(), sa.ForeignKey('credit_transaction.id'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'idempotency_key', name='uq_credit_transaction_tenant_key'),
        sa.UniqueConstraint('reversal_of_id', name='uq_credit_transaction_reversal_of'),
    )
    op.create_index('ix_credit_transaction_tenant_id', 'credit_transaction', ['tenant_id'])
    op.create_index('ix_credit_transaction_credit_id', 'credit_transaction', ['credit_id'])

    op.create_table(
        'loyalty_account',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customer.id'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'customer_id', name='uq_loyalty_account_tenant_customer'),
    )
    op.create_index('ix_loyalty_account_tenant_id', 'loyalty_account', ['tenant_id'])

    op.create_table(
        'loyalty_transaction',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('loyalty_account.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'type',
            sa.Enum('accrual', 'redemption', 'adjustment', name='loyalty_transaction_type'),
            nullable=False
        ),
        sa.Column('points', sa.BigInteger(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('customer_order.id'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_loyalty_transaction_tenant_id', 'loyalty_transaction', ['tenant_id'])
    op.create_index('ix_loyalty_transaction_account_id', 'loyalty_transaction', ['account_id'])

    op.create_table(
        'delivery',
        sa.Column('id', sa.Integer(), primary_key=True),
        _tenant_fk(),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('customer_order.id', ondelete='SET NULL'), nullable=True),
        sa.Column('method', sa.Enum('pickup', 'local', 'mail', name='delivery_method'), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'in_transit', 'delivered', 'cancelled', name='delivery_status'),
            nullable=False
        ),
        sa.Column('cost_cents', sa.BigInteger(), nullable=False),
        sa.Column('address', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_delivery_tenant_id', 'delivery', ['tenant_id'])


def downgrade() -> None:
    """Drop all CRM tables and enum types."""
    for table in (
        'delivery', 'loyalty_transaction', 'loyalty_account', 'credit_transaction',
        'credit_account', 'order_item', 'customer_order', 'product', 'customer',
        'invitation', 'membership', 'tenant',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in (
        'delivery_status', 'delivery_method', 'loyalty_transaction_type', 'credit_transaction_status',
        'credit_transaction_type', 'credit_account_status', 'payment_method', 'order_status',
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
