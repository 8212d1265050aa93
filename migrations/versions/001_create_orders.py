"""
Alembic migration: Create order, order item and receipt tables.

Creates the orders table with catalog-derived totals and payment tracking,
the order_items table holding price snapshots, and the order_receipts table
with at most one receipt per order.

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:12:41.318204
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_status = sa.Enum(
    'PENDING',
    'PAID',
    'CANCELLED',
    name='order_status',
    create_constraint=True,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema with the order tables.

    Creates orders, order_items and order_receipts with their constraints
    and indexes.
    """
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False, comment='Unique identifier for the record'),
        sa.Column(
            'total_amount',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            comment='Sum of item price times quantity',
        ),
        sa.Column('total_items', sa.Integer(), nullable=False, comment='Sum of item quantities'),
        sa.Column('status', order_status, nullable=False, comment='Current order status'),
        sa.Column(
            'paid',
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
            comment='Whether payment has been recorded',
        ),
        sa.Column(
            'paid_at',
            sa.DateTime(timezone=True),
            nullable=True,
            comment='When payment completion was recorded',
        ),
        sa.Column(
            'external_charge_id',
            sa.String(length=255),
            nullable=True,
            comment='Payment gateway charge identifier',
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_amount_non_negative'),
        sa.CheckConstraint('total_items > 0', name='ck_orders_total_items_positive'),
        comment='Purchase orders',
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False, comment='Unique identifier for the record'),
        sa.Column('order_id', sa.Uuid(), nullable=False, comment='Parent order identifier'),
        sa.Column('product_id', sa.Integer(), nullable=False, comment='Catalog product identifier'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='Quantity ordered'),
        sa.Column(
            'price',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            comment='Catalog unit price snapshot at order creation',
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('price >= 0', name='ck_order_items_price_non_negative'),
        comment='Order line items',
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'order_receipts',
        sa.Column('id', sa.Uuid(), nullable=False, comment='Unique identifier for the record'),
        sa.Column('order_id', sa.Uuid(), nullable=False, comment='Paid order identifier'),
        sa.Column(
            'receipt_url',
            sa.String(length=2048),
            nullable=False,
            comment='Gateway-hosted receipt URL',
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('order_id', name='uq_order_receipts_order_id'),
        comment='Payment receipts, one per paid order',
    )


def downgrade() -> None:
    """
    Downgrade database schema by dropping the order tables.

    Drops tables in reverse dependency order, then the status enum type.
    """
    op.drop_table('order_receipts')
    op.drop_index('ix_order_items_product_id', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_table('orders')
    order_status.drop(op.get_bind(), checkfirst=True)
