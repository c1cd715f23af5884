"""create wareflow tables

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _soft_delete_and_timestamps():
    return [
        sa.Column('del_flag', sa.Boolean(), nullable=False, server_default=sa.false(), comment='软删除标记'),
        sa.Column('mod_flag', sa.Boolean(), nullable=False, server_default=sa.false(), comment='修改标记'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Upgrade database schema"""
    op.create_table(
        'warehouses',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False, unique=True, comment='仓库名称'),
        sa.Column('location', sa.String(500), nullable=False, comment='地址'),
        sa.Column('description', sa.Text(), comment='描述'),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='0', comment='容量'),
        sa.Column('type', sa.String(20), nullable=False, server_default='main', comment='仓库类型'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('manager_id', sa.BigInteger(), comment='负责人ID'),
        sa.Column('created_by', sa.BigInteger()),
        sa.Column('modified_by', sa.BigInteger()),
        *_soft_delete_and_timestamps(),
        sa.CheckConstraint('capacity >= 0', name='ck_warehouses_capacity'),
        sa.CheckConstraint(
            "type IN ('main','secondary','cold','frozen','distribution')", name='ck_warehouses_type'
        ),
    )

    op.create_table(
        'transports',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('type', sa.String(50), nullable=False, comment='车型'),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('location', sa.String(500)),
        sa.Column('vehicle_number', sa.String(50), nullable=False, unique=True, comment='车牌号'),
        sa.Column('driver_name', sa.String(100)),
        sa.Column('driver_contact', sa.String(50)),
        sa.Column('status', sa.String(20), nullable=False, server_default='available', comment='运输状态'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.BigInteger()),
        *_soft_delete_and_timestamps(),
        sa.CheckConstraint("status IN ('available','in-use','maintenance')", name='ck_transports_status'),
    )
    op.create_index('ix_transports_status', 'transports', ['status'])

    op.create_table(
        'products',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False, unique=True, comment='商品SKU'),
        sa.Column('category', sa.String(100)),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Numeric(18, 2), nullable=False, server_default='0', comment='标价'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0', comment='库存总数（冗余）'),
        sa.Column('created_by', sa.BigInteger()),
        *_soft_delete_and_timestamps(),
    )

    op.create_table(
        'stock_batches',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('product_id', sa.BigInteger(), sa.ForeignKey('products.id'), nullable=False, comment='商品ID'),
        sa.Column('warehouse_id', sa.BigInteger(), sa.ForeignKey('warehouses.id'), nullable=False, comment='仓库ID'),
        sa.Column('batch_number', sa.String(50), nullable=False, comment='批次号'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='入库数量'),
        sa.Column('remaining_quantity', sa.Integer(), nullable=False, comment='剩余数量'),
        sa.Column('unit_cost', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('original_unit_cost', sa.Numeric(18, 2), comment='原始采购单价'),
        sa.Column('shipping_cost_per_unit', sa.Numeric(18, 2), nullable=False, server_default='0', comment='单位分摊运费'),
        sa.Column('selling_price', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('expiry_date', sa.DateTime(timezone=True), comment='过期日期'),
        sa.Column('quality_grade', sa.String(1), nullable=False, server_default='A'),
        sa.Column('notes', sa.Text()),
        sa.Column('is_depleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('depleted_at', sa.DateTime(timezone=True)),
        sa.Column('created_by', sa.BigInteger()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
                  comment='入库时间（FIFO 排序依据）'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity > 0', name='ck_stock_batches_quantity'),
        sa.CheckConstraint('remaining_quantity >= 0', name='ck_stock_batches_remaining_nonneg'),
        sa.CheckConstraint('remaining_quantity <= quantity', name='ck_stock_batches_remaining_le_qty'),
        sa.CheckConstraint("quality_grade IN ('A','B','C')", name='ck_stock_batches_grade'),
    )
    op.create_index(
        'ix_stock_batches_fifo', 'stock_batches', ['warehouse_id', 'product_id', 'is_depleted', 'created_at']
    )
    op.create_index('ix_stock_batches_expiry', 'stock_batches', ['expiry_date'])

    op.create_table(
        'shipments',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('shipment_number', sa.String(50), nullable=False, unique=True, comment='发运单号'),
        sa.Column('tracking_number', sa.String(50), nullable=False, unique=True, comment='运单号'),
        sa.Column('origin_warehouse_id', sa.BigInteger(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('destination_warehouse_id', sa.BigInteger(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('transport_id', sa.BigInteger(), sa.ForeignKey('transports.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.String(10), nullable=False, server_default='medium'),
        sa.Column('scheduled_pickup_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actual_pickup_date', sa.DateTime(timezone=True)),
        sa.Column('estimated_delivery_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actual_delivery_date', sa.DateTime(timezone=True)),
        sa.Column('total_value', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('total_items', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_location', sa.JSON()),
        sa.Column('location_history', sa.JSON(), nullable=False),
        sa.Column('temperature_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('min_temperature', sa.Numeric(5, 1)),
        sa.Column('max_temperature', sa.Numeric(5, 1)),
        sa.Column('current_temperature', sa.Numeric(5, 1)),
        sa.Column('insured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('insurance_value', sa.Numeric(18, 2)),
        sa.Column('quality_check', sa.JSON()),
        sa.Column('delivery_notes', sa.Text()),
        sa.Column('notes', sa.Text()),
        sa.Column('created_by', sa.BigInteger()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_soft_delete_and_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending','in-transit','delivered','cancelled','delayed','damaged')",
            name='ck_shipments_status'
        ),
        sa.CheckConstraint("priority IN ('low','medium','high','urgent')", name='ck_shipments_priority'),
    )
    op.create_index('ix_shipments_status_pickup', 'shipments', ['status', 'scheduled_pickup_date'])
    op.create_index('ix_shipments_transport', 'shipments', ['transport_id'])

    op.create_table(
        'shipment_items',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('shipment_id', sa.BigInteger(), sa.ForeignKey('shipments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.BigInteger(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 2), nullable=False),
        sa.Column('total_value', sa.Numeric(18, 2), nullable=False),
        sa.Column('condition', sa.String(20), nullable=False, server_default='good'),
        sa.Column('batch_number', sa.String(50)),
        sa.Column('expiry_date', sa.DateTime(timezone=True)),
        sa.Column('notes', sa.Text()),
        sa.CheckConstraint('quantity > 0', name='ck_shipment_items_quantity'),
        sa.CheckConstraint("condition IN ('excellent','good','damaged')", name='ck_shipment_items_condition'),
    )
    op.create_index('ix_shipment_items_shipment', 'shipment_items', ['shipment_id'])

    op.create_table(
        'sales',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('warehouse_id', sa.BigInteger(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('sale_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('payment_method', sa.String(10), nullable=False, server_default='cash'),
        sa.Column('total_revenue', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('profit', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('created_by', sa.BigInteger()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("payment_method IN ('cash','card','mobile')", name='ck_sales_payment_method'),
    )
    op.create_index('ix_sales_warehouse_date', 'sales', ['warehouse_id', 'sale_date'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('sale_id', sa.BigInteger(), sa.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.BigInteger(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 2), nullable=False),
        sa.Column('total', sa.Numeric(18, 2), nullable=False),
        sa.Column('cost_of_goods', sa.Numeric(18, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sale_items_quantity'),
    )
    op.create_index('ix_sale_items_product', 'sale_items', ['product_id'])

    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('transfer_number', sa.String(50), nullable=False, unique=True),
        sa.Column('from_warehouse_id', sa.BigInteger(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('to_warehouse_id', sa.BigInteger(), sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('requested_by', sa.BigInteger(), nullable=False),
        sa.Column('approved_by', sa.BigInteger()),
        sa.Column('shipment_id', sa.BigInteger(), sa.ForeignKey('shipments.id')),
        sa.Column('transfer_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_date', sa.DateTime(timezone=True)),
        sa.Column('reason', sa.String(500), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending','in-transit','completed','cancelled')", name='ck_stock_transfers_status'
        ),
    )
    op.create_index('ix_stock_transfers_status', 'stock_transfers', ['status'])
    op.create_index('ix_stock_transfers_warehouses', 'stock_transfers', ['from_warehouse_id', 'to_warehouse_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('user_id', sa.BigInteger(), comment='用户ID'),
        sa.Column('module', sa.String(50), nullable=False, comment='模块名'),
        sa.Column('action', sa.String(50), nullable=False, comment='操作类型'),
        sa.Column('table_name', sa.String(100), nullable=False, comment='表名'),
        sa.Column('record_id', sa.String(100), nullable=False, comment='记录ID'),
        sa.Column('changes', sa.JSON(), comment='变更详情（字段级）'),
        sa.Column('request_id', sa.String(100), comment='请求ID（trace_id）'),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_module', 'audit_logs', ['module'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('idx_audit_logs_record_lookup', 'audit_logs', ['table_name', 'record_id'])
    op.create_index('idx_audit_logs_module_time', 'audit_logs', ['module', 'created_at'])


def downgrade() -> None:
    """Downgrade database schema"""
    op.drop_table('audit_logs')
    op.drop_table('stock_transfers')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('shipment_items')
    op.drop_table('shipments')
    op.drop_table('stock_batches')
    op.drop_table('products')
    op.drop_table('transports')
    op.drop_table('warehouses')
