"""vendor sync schema

Revision ID: 001_vendor_sync
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_vendor_sync'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'vendor',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slug', sa.String(length=48), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_vendor_id', 'vendor', ['id'])
    op.create_index('ix_vendor_slug', 'vendor', ['slug'], unique=True)

    op.create_table(
        'vendor_integration',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('vendor_id', sa.Integer(), sa.ForeignKey('vendor.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('scraper_path', sa.String(), nullable=True),
        sa.Column('api_base_url', sa.String(), nullable=True),
        sa.Column('api_auth_type', sa.String(), nullable=True),
        sa.Column('api_key', sa.String(), nullable=True),
        sa.Column('last_test_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_test_ok', sa.Boolean(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_vendor_integration_id', 'vendor_integration', ['id'])

    op.create_table(
        'product',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('vendor', sa.String(length=48), nullable=True),
        sa.Column('catalog_id', sa.String(), nullable=True),
        sa.Column('variant_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('brand', sa.String(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('color', sa.String(), nullable=True),
        sa.Column('size_label', sa.String(), nullable=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('usage', sa.String(), nullable=True),
        sa.Column('supplier', sa.String(), nullable=True),
        sa.Column('catalog_url', sa.String(), nullable=True),
        sa.Column('delisted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_product_id', 'product', ['id'])
    op.create_index('ix_product_sku', 'product', ['sku'], unique=True)
    op.create_index('ix_product_vendor', 'product', ['vendor'])
    op.create_index('ix_product_catalog_id', 'product', ['catalog_id'])
    # SKU lookups from the applier are case-insensitive
    op.execute('CREATE INDEX ix_product_sku_lower ON product (lower(sku))')

    op.create_table(
        'store_stock',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('store_id', sa.String(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('product.id', ondelete='CASCADE'), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('barcode', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('store_id', 'product_id', name='uq_store_stock_store_product'),
        sa.CheckConstraint('qty >= 0', name='ck_store_stock_qty_non_negative'),
    )
    op.create_index('ix_store_stock_id', 'store_stock', ['id'])
    op.create_index('ix_store_stock_store_id', 'store_stock', ['store_id'])
    op.create_index('ix_store_stock_product_id', 'store_stock', ['product_id'])

    op.create_table(
        'vendor_sync_run',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('vendor', sa.String(length=48), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Pending'),
        sa.Column('actor', sa.String(), nullable=True),
        sa.Column('dry_run', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('source_path', sa.String(), nullable=True),
        sa.Column('hash', sa.String(length=64), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('counts', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
    )
    op.create_index('ix_vendor_sync_run_vendor', 'vendor_sync_run', ['vendor'])
    op.create_index('ix_vendor_sync_run_status', 'vendor_sync_run', ['status'])
    op.create_index('ix_vendor_sync_run_started_at', 'vendor_sync_run', ['started_at'])
    op.create_index('ix_vendor_sync_run_vendor_started', 'vendor_sync_run', ['vendor', 'started_at'])

    op.create_table(
        'vendor_sync_run_diff',
        sa.Column('run_id', sa.String(length=64), sa.ForeignKey('vendor_sync_run.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('aggregates', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )

    op.create_table(
        'vendor_sync_state',
        sa.Column('vendor', sa.String(length=48), primary_key=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_by', sa.String(), nullable=True),
        sa.Column('last_duration_ms', sa.Integer(), nullable=True),
        sa.Column('total_items', sa.Integer(), nullable=True),
        sa.Column('last_source', sa.String(), nullable=True),
        sa.Column('last_hash', sa.String(length=64), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('vendor_sync_state')
    op.drop_table('vendor_sync_run_diff')
    op.drop_index('ix_vendor_sync_run_vendor_started', table_name='vendor_sync_run')
    op.drop_index('ix_vendor_sync_run_started_at', table_name='vendor_sync_run')
    op.drop_index('ix_vendor_sync_run_status', table_name='vendor_sync_run')
    op.drop_index('ix_vendor_sync_run_vendor', table_name='vendor_sync_run')
    op.drop_table('vendor_sync_run')
    op.drop_table('store_stock')
    op.execute('DROP INDEX IF EXISTS ix_product_sku_lower')
    op.drop_table('product')
    op.drop_table('vendor_integration')
    op.drop_table('vendor')
