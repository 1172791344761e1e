"""Create reference, inventory bucket, stock ledger and document counter tables

Revision ID: 001_create_stock_ledger_tables
Revises:
Create Date: 2026-10-19

Note: Using IF NOT EXISTS pattern to make migration idempotent.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision = '001_create_stock_ledger_tables'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(conn, table_name):
    """Check if a table exists in the database."""
    result = conn.execute(text(
        "SELECT EXISTS (SELECT FROM information_schema.tables WHERE table_name = :table_name)"
    ), {"table_name": table_name})
    return result.scalar()


def upgrade():
    """Create products, warehouses, shelves, inventory_buckets, stock_adjustments, document_counters."""
    conn = op.get_bind()

    if not table_exists(conn, 'products'):
        op.create_table(
            'products',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('product_code', sa.String(100), nullable=False, unique=True, index=True),
            sa.Column('brand', sa.String(255), nullable=False),
            sa.Column('type', sa.String(255), nullable=True),
            sa.Column('category', sa.String(100), nullable=True, index=True),
            sa.Column('description', sa.Text, nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        print("Created products table")

    if not table_exists(conn, 'warehouses'):
        op.create_table(
            'warehouses',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('warehouse_code', sa.String(50), nullable=False, unique=True),
            sa.Column('warehouse_name', sa.String(255), nullable=False),
            sa.Column('description', sa.Text, nullable=True),
        )
        print("Created warehouses table")

    if not table_exists(conn, 'shelves'):
        op.create_table(
            'shelves',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('shelf_code', sa.String(50), nullable=False, unique=True),
            sa.Column('shelf_name', sa.String(255), nullable=False),
            sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id'), nullable=False, index=True),
            sa.Column('description', sa.Text, nullable=True),
        )
        print("Created shelves table")

    if not table_exists(conn, 'inventory_buckets'):
        op.create_table(
            'inventory_buckets',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('product_id', UUID(as_uuid=True), sa.ForeignKey('products.id'), nullable=False, index=True),
            sa.Column('warehouse_id', UUID(as_uuid=True), sa.ForeignKey('warehouses.id'), nullable=False, index=True),
            sa.Column('shelf_id', UUID(as_uuid=True), sa.ForeignKey('shelves.id'), nullable=True, index=True),
            sa.Column('condition', sa.String(20), nullable=False, server_default='Good'),
            sa.Column('bucket_key', sa.String(160), nullable=False, unique=True),
            sa.Column('on_hand', sa.Integer, nullable=False, server_default='0'),
            sa.Column('on_loan', sa.Integer, nullable=False, server_default='0'),
            sa.Column('last_in_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('last_out_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint('on_hand >= 0', name='ck_inventory_buckets_on_hand_non_negative'),
            sa.CheckConstraint('on_loan >= 0', name='ck_inventory_buckets_on_loan_non_negative'),
        )
        op.create_index('ix_inventory_buckets_location', 'inventory_buckets', ['warehouse_id', 'shelf_id'])
        print("Created inventory_buckets table")

    # No foreign key to inventory_buckets: rows outlive the buckets they describe
    if not table_exists(conn, 'stock_adjustments'):
        op.create_table(
            'stock_adjustments',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('bucket_id', UUID(as_uuid=True), nullable=False, index=True),
            sa.Column('field', sa.String(10), nullable=False),
            sa.Column('delta', sa.Integer, nullable=False),
            sa.Column('qty_before', sa.Integer, nullable=False),
            sa.Column('qty_after', sa.Integer, nullable=False),
            sa.Column('reason_code', sa.String(30), nullable=False, index=True),
            sa.Column('reason_note', sa.String(500), nullable=True),
            sa.Column('actor_kind', sa.String(20), nullable=False),
            sa.Column('actor_id', sa.String(64), nullable=True),
            sa.Column('actor_name', sa.String(200), nullable=False),
            sa.Column('correlation_id', UUID(as_uuid=True), nullable=False, index=True),
            sa.Column('correlation', sa.JSON, nullable=False),
            sa.Column('loan_number', sa.String(50), nullable=True, index=True),
            sa.Column('snapshot', sa.JSON, nullable=False),
            sa.Column('product_code', sa.String(100), nullable=True, index=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint('delta <> 0', name='ck_stock_adjustments_delta_non_zero'),
            sa.CheckConstraint('qty_after = qty_before + delta', name='ck_stock_adjustments_after_matches'),
        )
        op.create_index(
            'ix_stock_adjustments_created_at', 'stock_adjustments', [sa.text('created_at DESC')]
        )
        op.create_index('ix_stock_adjustments_bucket_field', 'stock_adjustments', ['bucket_id', 'field'])
        print("Created stock_adjustments table")

    if not table_exists(conn, 'document_counters'):
        op.create_table(
            'document_counters',
            sa.Column('prefix', sa.String(20), primary_key=True),
            sa.Column('seq', sa.Integer, nullable=False, server_default='0'),
        )
        print("Created document_counters table")


def downgrade():
    op.drop_table('document_counters')
    op.drop_index('ix_stock_adjustments_bucket_field', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_created_at', table_name='stock_adjustments')
    op.drop_table('stock_adjustments')
    op.drop_index('ix_inventory_buckets_location', table_name='inventory_buckets')
    op.drop_table('inventory_buckets')
    op.drop_table('shelves')
    op.drop_table('warehouses')
    op.drop_table('products')
