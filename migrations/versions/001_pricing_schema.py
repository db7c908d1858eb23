"""Pricing tables: default and private prices, audit log, price views

Revision ID: 001_pricing_schema
Revises: 
Create Date: 2026-10-18 12:00:00.000000

The catalog tables (tenants, products) are owned by the marketplace
backend and must already exist.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_pricing_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create default_prices table
    op.create_table(
        'default_prices',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('effective_from', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('effective_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.CheckConstraint('price >= 0', name='check_default_price_non_negative')
    )
    op.create_index('idx_default_prices_product_active', 'default_prices', ['product_id', 'is_active'])
    # At most one active default price per product
    op.create_index(
        'uq_default_prices_active_product',
        'default_prices',
        ['product_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
    )

    # Create private_prices table
    op.create_table(
        'private_prices',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('discount_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('effective_from', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('effective_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['company_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.CheckConstraint('(price IS NULL) <> (discount_percentage IS NULL)', name='check_private_price_exclusive_mode'),
        sa.CheckConstraint('price IS NULL OR price >= 0', name='check_private_price_non_negative'),
        sa.CheckConstraint(
            'discount_percentage IS NULL OR (discount_percentage >= 0 AND discount_percentage <= 100)',
            name='check_private_discount_range'
        )
    )
    op.create_index('ix_private_prices_company_id', 'private_prices', ['company_id'])
    op.create_index('idx_private_prices_scope_active', 'private_prices', ['product_id', 'company_id', 'is_active'])
    # At most one active private price per (product, company)
    op.create_index(
        'uq_private_prices_active_scope',
        'private_prices',
        ['product_id', 'company_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
    )

    # Create price_audit_logs table
    op.create_table(
        'price_audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('price_type', sa.String(length=10), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('old_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('new_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('old_discount_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('new_discount_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('change_reason', sa.Text(), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['company_id'], ['tenants.id'], ondelete='SET NULL'),
        sa.CheckConstraint("price_type IN ('default', 'private')", name='check_audit_price_type')
    )
    op.create_index('idx_price_audit_logs_product_changed', 'price_audit_logs', ['product_id', 'changed_at'])
    op.create_index('ix_price_audit_logs_company_id', 'price_audit_logs', ['company_id'])
    op.create_index('ix_price_audit_logs_changed_by', 'price_audit_logs', ['changed_by'])

    # Create price_views table
    op.create_table(
        'price_views',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('price_type', sa.String(length=10), nullable=False),
        sa.Column('viewed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['company_id'], ['tenants.id'], ondelete='CASCADE')
    )
    op.create_index('idx_price_views_product_viewed', 'price_views', ['product_id', 'viewed_at'])
    op.create_index('ix_price_views_company_id', 'price_views', ['company_id'])


def downgrade() -> None:
    op.drop_table('price_views')
    op.drop_table('price_audit_logs')
    op.drop_table('private_prices')
    op.drop_table('default_prices')
