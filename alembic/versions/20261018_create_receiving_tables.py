"""Create receiving schema: purchase orders, goods receipts, stock, tolerances

Revision ID: 20261018_receiving
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20261018_receiving'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    """Create all receiving tables."""

    # ====================
    # MASTER DATA
    # ====================
    op.create_table(
        'companies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_company_tenant_code'),
    )

    op.create_table(
        'suppliers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('contact_email', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'code', name='uq_supplier_company_code'),
    )

    op.create_table(
        'warehouses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('code', sa.String(20), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'code', name='uq_warehouse_company_code'),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('base_unit', sa.String(20), server_default='PCS', nullable=False),
        sa.Column('is_batch_tracked', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_perishable', sa.Boolean(), server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'code', name='uq_product_company_code'),
    )
    op.create_index('ix_product_company_category', 'products', ['company_id', 'category'])

    # ====================
    # PURCHASE ORDERS
    # ====================
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('po_number', sa.String(30), nullable=False),
        sa.Column('po_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(50), server_default='DRAFT', nullable=False),
        sa.Column('supplier_id', sa.Uuid(), sa.ForeignKey('suppliers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('warehouse_id', sa.Uuid(), sa.ForeignKey('warehouses.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'po_number', name='uq_po_company_number'),
    )
    op.create_index('ix_po_supplier_date', 'purchase_orders', ['supplier_id', 'po_date'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('purchase_order_id', sa.Uuid(), sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('line_number', sa.Integer(), server_default='1'),
        sa.Column('quantity', sa.Numeric(15, 3), nullable=False),
        sa.Column('received_qty', sa.Numeric(15, 3), server_default='0', nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), server_default='0', nullable=False),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='chk_po_item_quantity_positive'),
        sa.CheckConstraint('received_qty >= 0', name='chk_po_item_received_non_negative'),
    )

    # ====================
    # GOODS RECEIPTS
    # ====================
    op.create_table(
        'goods_receipts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('grn_number', sa.String(30), nullable=False),
        sa.Column('grn_date', sa.Date(), nullable=False, index=True),
        sa.Column('status', sa.String(50), server_default='PENDING', nullable=False),
        sa.Column('purchase_order_id', sa.Uuid(), sa.ForeignKey('purchase_orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('warehouse_id', sa.Uuid(), sa.ForeignKey('warehouses.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('supplier_id', sa.Uuid(), sa.ForeignKey('suppliers.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('supplier_invoice', sa.String(100), nullable=True),
        sa.Column('supplier_do_number', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('receive_notes', sa.Text(), nullable=True),
        sa.Column('inspection_notes', sa.Text(), nullable=True),
        sa.Column('acceptance_notes', sa.Text(), nullable=True),
        sa.Column('rejection_notes', sa.Text(), nullable=True),
        sa.Column('item_count', sa.Integer(), server_default='0'),
        sa.Column('received_by', sa.Uuid(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('inspected_by', sa.Uuid(), nullable=True),
        sa.Column('inspected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'grn_number', name='uq_grn_company_number'),
    )
    op.create_index('ix_grn_po', 'goods_receipts', ['purchase_order_id'])
    op.create_index('ix_grn_company_status', 'goods_receipts', ['company_id', 'status'])

    op.create_table(
        'goods_receipt_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('goods_receipt_id', sa.Uuid(), sa.ForeignKey('goods_receipts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('purchase_order_item_id', sa.Uuid(), sa.ForeignKey('purchase_order_items.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('line_number', sa.Integer(), server_default='1'),
        sa.Column('batch_number', sa.String(100), nullable=True),
        sa.Column('manufacture_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('ordered_qty', sa.Numeric(15, 3), nullable=False),
        sa.Column('received_qty', sa.Numeric(15, 3), nullable=False),
        sa.Column('accepted_qty', sa.Numeric(15, 3), server_default='0', nullable=False),
        sa.Column('rejected_qty', sa.Numeric(15, 3), server_default='0', nullable=False),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('quality_note', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('rejection_disposition', sa.String(50), nullable=True),
        sa.Column('disposition_notes', sa.Text(), nullable=True),
        sa.Column('disposition_resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disposition_resolved_by', sa.Uuid(), nullable=True),
        sa.Column('disposition_resolved_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('goods_receipt_id', 'purchase_order_item_id', name='uq_grn_item_po_item'),
        sa.CheckConstraint('received_qty >= 0', name='chk_grn_item_received_non_negative'),
        sa.CheckConstraint('accepted_qty >= 0', name='chk_grn_item_accepted_non_negative'),
        sa.CheckConstraint('rejected_qty >= 0', name='chk_grn_item_rejected_non_negative'),
        sa.CheckConstraint(
            'accepted_qty + rejected_qty <= received_qty',
            name='chk_grn_item_accepted_rejected_within_received'
        ),
    )

    # ====================
    # STOCK & BATCHES
    # ====================
    op.create_table(
        'warehouse_stocks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('warehouse_id', sa.Uuid(), sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('quantity', sa.Numeric(15, 3), server_default='0', nullable=False),
        sa.Column('minimum_stock', sa.Numeric(15, 3), server_default='0', nullable=False),
        sa.Column('maximum_stock', sa.Numeric(15, 3), server_default='0', nullable=False),
        sa.Column('location', sa.String(100), nullable=True),
        sa.Column('last_receipt_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('warehouse_id', 'product_id', name='uq_warehouse_stock_warehouse_product'),
        sa.CheckConstraint('quantity >= 0', name='chk_warehouse_stock_quantity_non_negative'),
    )

    op.create_table(
        'product_batches',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('batch_number', sa.String(100), nullable=False),
        sa.Column('warehouse_stock_id', sa.Uuid(), sa.ForeignKey('warehouse_stocks.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('manufacture_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True, index=True),
        sa.Column('receipt_date', sa.Date(), nullable=True),
        sa.Column('quantity', sa.Numeric(15, 3), server_default='0', nullable=False),
        sa.Column('goods_receipt_id', sa.Uuid(), sa.ForeignKey('goods_receipts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(50), server_default='AVAILABLE', nullable=False),
        sa.Column('quality_status', sa.String(50), server_default='GOOD', nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'batch_number', name='uq_product_batch_product_number'),
        sa.CheckConstraint('quantity >= 0', name='chk_product_batch_quantity_non_negative'),
    )

    # ====================
    # DELIVERY TOLERANCES
    # ====================
    op.create_table(
        'delivery_tolerances',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('level', sa.String(20), nullable=False),
        sa.Column('category_name', sa.String(100), server_default='', nullable=False),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('under_delivery_tolerance', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('over_delivery_tolerance', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('unlimited_over_delivery', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('updated_by', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'level', 'category_name', 'product_id', name='uq_delivery_tolerance_scope'),
        sa.CheckConstraint(
            'under_delivery_tolerance >= 0 AND under_delivery_tolerance <= 100',
            name='chk_delivery_tolerance_under_range'
        ),
        sa.CheckConstraint(
            'over_delivery_tolerance >= 0 AND over_delivery_tolerance <= 100',
            name='chk_delivery_tolerance_over_range'
        ),
    )
    op.create_index('ix_delivery_tolerance_lookup', 'delivery_tolerances', ['company_id', 'level', 'is_active'])

    # ====================
    # PURCHASE INVOICES (read by invoice status)
    # ====================
    op.create_table(
        'purchase_invoices',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(50), server_default='DRAFT', nullable=False),
        sa.Column('supplier_id', sa.Uuid(), sa.ForeignKey('suppliers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('goods_receipt_id', sa.Uuid(), sa.ForeignKey('goods_receipts.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'purchase_invoice_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('purchase_invoice_id', sa.Uuid(), sa.ForeignKey('purchase_invoices.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('goods_receipt_item_id', sa.Uuid(), sa.ForeignKey('goods_receipt_items.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('product_id', sa.Uuid(), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('quantity', sa.Numeric(15, 3), nullable=False),
    )

    # ====================
    # SUPPORT TABLES
    # ====================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('company_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('document_type', sa.String(10), nullable=False),
        sa.Column('period', sa.String(6), nullable=False),
        sa.Column('current_number', sa.Integer(), server_default='0', nullable=False),
        sa.Column('padding_length', sa.Integer(), server_default='4'),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'document_type', 'period', name='uq_document_sequence_company_type_period'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('tenant_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('company_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action', sa.String(50), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False, index=True),
        sa.Column('entity_id', sa.Uuid(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )


def downgrade():
    """Drop receiving tables in reverse dependency order."""
    op.drop_table('audit_logs')
    op.drop_table('document_sequences')
    op.drop_table('purchase_invoice_items')
    op.drop_table('purchase_invoices')
    op.drop_table('delivery_tolerances')
    op.drop_table('product_batches')
    op.drop_table('warehouse_stocks')
    op.drop_table('goods_receipt_items')
    op.drop_table('goods_receipts')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('products')
    op.drop_table('warehouses')
    op.drop_table('suppliers')
    op.drop_table('companies')
