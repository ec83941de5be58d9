"""create_payment_tables

Revision ID: 3c1f9a6b2d40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c1f9a6b2d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False, comment='订单ID'),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='用户ID'),
        sa.Column('total_amount', sa.Integer(), nullable=False, comment='订单总额 FCFA'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='订单状态'),
        sa.Column('payment_reference', sa.String(length=100), nullable=True, comment='支付交易号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)

    # Payments: id 与提供商交易号无关；状态只由对账流程 CAS 更新
    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False, comment='支付ID'),
        sa.Column('order_id', sa.String(length=36), nullable=True, comment='订单ID'),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='用户ID'),
        sa.Column('amount', sa.Integer(), nullable=False, comment='支付金额 FCFA'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, comment='支付方式: orange/mtn/moov/wave/kkiapay'),
        sa.Column('phone_number', sa.String(length=20), nullable=True, comment='付款手机号'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending',
                  comment='支付状态: pending/processing/completed/failed/cancelled/refunded'),
        sa.Column('transaction_id', sa.String(length=100), nullable=True, comment='提供商交易号'),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True,
                  server_default=sa.text("'{}'::jsonb"), comment='提供商原始字段与中间事件时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.CheckConstraint(
            "status IN ('pending','processing','completed','failed','cancelled','refunded')",
            name='ck_payments_status',
        ),
        sa.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=False)
    op.create_index('ix_payments_user_id', 'payments', ['user_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'], unique=False)
    op.create_index('ix_payments_order_created', 'payments', ['order_id', 'created_at'], unique=False)
    op.create_index('ix_payments_status_amount', 'payments', ['status', 'amount'], unique=False)
    op.create_index('ix_payments_user_created', 'payments', ['user_id', 'created_at'], unique=False)

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='接收用户ID'),
        sa.Column('type', sa.String(length=50), nullable=False, comment='通知类型: payment'),
        sa.Column('title', sa.String(length=200), nullable=False, comment='标题'),
        sa.Column('message', sa.Text(), nullable=False, comment='内容'),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='附加数据'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false', comment='是否已读'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'], unique=False)
    op.create_index('ix_notifications_user_created', 'notifications', ['user_id', 'created_at'], unique=False)

    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='用户ID'),
        sa.Column('endpoint', sa.Text(), nullable=False, comment='浏览器推送端点'),
        sa.Column('p256dh', sa.String(length=255), nullable=False, comment='客户端公钥'),
        sa.Column('auth', sa.String(length=255), nullable=False, comment='客户端认证密钥'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('endpoint', name='uq_push_subscriptions_endpoint'),
    )
    op.create_index('ix_push_subscriptions_user_id', 'push_subscriptions', ['user_id'], unique=False)

    op.create_table(
        'user_roles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='用户ID'),
        sa.Column('role', sa.String(length=20), nullable=False, comment='角色: admin/user'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'], unique=False)
    op.create_index('ix_user_roles_role', 'user_roles', ['role'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_user_roles_role', table_name='user_roles')
    op.drop_index('ix_user_roles_user_id', table_name='user_roles')
    op.drop_table('user_roles')

    op.drop_index('ix_push_subscriptions_user_id', table_name='push_subscriptions')
    op.drop_table('push_subscriptions')

    op.drop_index('ix_notifications_user_created', table_name='notifications')
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')

    op.drop_index('ix_payments_user_created', table_name='payments')
    op.drop_index('ix_payments_status_amount', table_name='payments')
    op.drop_index('ix_payments_order_created', table_name='payments')
    op.drop_index('ix_payments_transaction_id', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_user_id', table_name='payments')
    op.drop_index('ix_payments_order_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
