"""initial storefront schema

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c2a9b7d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # 库存
    op.create_table(
        'inventory',
        sa.Column('product_id', sa.String(100), primary_key=True, comment='商品ID'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0', comment='实物库存'),
        sa.Column('reserved', sa.Integer(), nullable=False, server_default='0', comment='结算中预留数量'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10', comment='低库存阈值'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1', comment='乐观锁版本'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_non_negative'),
        sa.CheckConstraint('reserved >= 0', name='ck_inventory_reserved_non_negative'),
        sa.CheckConstraint('reserved <= quantity', name='ck_inventory_reserved_within_quantity'),
        sa.CheckConstraint('low_stock_threshold >= 0', name='ck_inventory_threshold_non_negative'),
    )
    op.create_index('ix_inventory_quantity', 'inventory', ['quantity'])

    # 库存变更日志（只追加）
    op.create_table(
        'inventory_change_log',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('product_id', sa.String(100), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False, comment='带符号的变更数量'),
        sa.Column('reason', sa.String(20), nullable=False),
        sa.Column('reference', sa.String(100), nullable=True, comment='关联单据'),
        sa.Column('performed_by', sa.String(100), nullable=False, server_default='system'),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "reason IN ('sale','return','adjustment','restock','damage','reservation','release')",
            name='ck_inventory_change_log_reason'
        ),
    )
    op.create_index('ix_inventory_change_log_product_time', 'inventory_change_log', ['product_id', 'timestamp'])
    op.create_index('ix_inventory_change_log_reference', 'inventory_change_log', ['reference'])

    # 购物车
    op.create_table(
        'carts',
        sa.Column('user_id', sa.String(100), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'cart_items',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(100), sa.ForeignKey('carts.user_id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0', comment='加入顺序'),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_cart_items_user_product'),
    )

    # 订单
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('shipping_address', sa.Text(), nullable=False),
        sa.Column('shipping_method', sa.String(50), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), nullable=False, comment='运费快照'),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_transaction_id', sa.String(100), nullable=True),
        sa.Column('payment_failure_reason', sa.Text(), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending','paid','shipped','delivered','cancelled')",
            name='ck_orders_status'
        ),
        sa.CheckConstraint(
            "payment_status IN ('pending','processing','completed','failed')",
            name='ck_orders_payment_status'
        ),
        sa.CheckConstraint("payment_method IN ('pix','card')", name='ck_orders_payment_method'),
    )
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_updated', 'orders', ['payment_status', 'updated_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(100), nullable=False),
        sa.Column('product_name', sa.Text(), nullable=False, comment='商品名称快照'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_at_purchase', sa.Numeric(12, 2), nullable=False, comment='下单时单价快照'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
    )
    op.create_index('ix_order_items_order', 'order_items', ['order_id'])


def downgrade() -> None:
    op.drop_index('ix_order_items_order', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_payment_updated', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_created', table_name='orders')
    op.drop_table('orders')
    op.drop_table('cart_items')
    op.drop_table('carts')
    op.drop_index('ix_inventory_change_log_reference', table_name='inventory_change_log')
    op.drop_index('ix_inventory_change_log_product_time', table_name='inventory_change_log')
    op.drop_table('inventory_change_log')
    op.drop_index('ix_inventory_quantity', table_name='inventory')
    op.drop_table('inventory')
