"""
SQLAlchemy ORM Models for the Price Engine
==========================================

Tenants and products belong to the marketplace catalog and are only read
here. Default prices, private prices, the price audit log and price views
are owned by this service.

Single-active-row invariants are enforced by partial unique indexes so
they hold even when two writers race past the application checks.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from price_engine.schemas.domain import DiscountPrice, FixedPrice, PrivatePriceMode
from price_engine.utils.clock import utcnow

PRICE_NUMERIC = Numeric(12, 2)
PERCENT_NUMERIC = Numeric(5, 2)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UUIDMixin:
    """Mixin for UUID primary key."""

    id: Mapped[UUID] = mapped_column(
        primary_key=True,
        default=uuid4,
        nullable=False,
    )


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# =============================================================================
# Catalog (read-only for this service)
# =============================================================================


class Tenant(Base, UUIDMixin):
    """Supplier or company account boundary."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name!r}, type={self.type})>"


class Product(Base, UUIDMixin):
    """Catalog product, owned by exactly one supplier tenant."""

    __tablename__ = "products"

    supplier_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name={self.name!r}, supplier_id={self.supplier_id})>"


# =============================================================================
# Prices
# =============================================================================


class DefaultPrice(Base, UUIDMixin):
    """
    Supplier-wide price of a product.

    Versioned by insertion: every change deactivates the previous active
    row and inserts a new one. Rows are never deleted.

    Constraints:
        - check_default_price_non_negative: price >= 0
        - uq_default_prices_active_product: one active row per product
    """

    __tablename__ = "default_prices"
    __table_args__ = (
        CheckConstraint("price >= 0", name="check_default_price_non_negative"),
        Index(
            "uq_default_prices_active_product",
            "product_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_default_prices_product_active", "product_id", "is_active"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(PRICE_NUMERIC, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    effective_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    effective_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<DefaultPrice(id={self.id}, product_id={self.product_id}, "
            f"price={self.price} {self.currency}, active={self.is_active})>"
        )


class PrivatePrice(Base, UUIDMixin, TimestampMixin):
    """
    Company-specific override of a product's price.

    Exactly one of ``price`` (fixed) and ``discount_percentage`` is set.
    Updated in place; superseded rows are deactivated, never deleted.

    Constraints:
        - check_private_price_exclusive_mode: price XOR discount_percentage
        - check_private_price_non_negative: price >= 0
        - check_private_discount_range: 0 <= discount_percentage <= 100
        - uq_private_prices_active_scope: one active row per (product, company)
    """

    __tablename__ = "private_prices"
    __table_args__ = (
        CheckConstraint(
            "(price IS NULL) <> (discount_percentage IS NULL)",
            name="check_private_price_exclusive_mode",
        ),
        CheckConstraint(
            "price IS NULL OR price >= 0", name="check_private_price_non_negative"
        ),
        CheckConstraint(
            "discount_percentage IS NULL OR "
            "(discount_percentage >= 0 AND discount_percentage <= 100)",
            name="check_private_discount_range",
        ),
        Index(
            "uq_private_prices_active_scope",
            "product_id",
            "company_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_private_prices_scope_active", "product_id", "company_id", "is_active"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price: Mapped[Optional[Decimal]] = mapped_column(PRICE_NUMERIC, nullable=True)
    discount_percentage: Mapped[Optional[Decimal]] = mapped_column(
        PERCENT_NUMERIC, nullable=True
    )
    # NULL on discount rows means "follow the default price's currency"
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    effective_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    effective_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def mode(self) -> PrivatePriceMode:
        """Pricing mode of this row as a tagged variant."""
        if self.discount_percentage is not None:
            return DiscountPrice(self.discount_percentage)
        return FixedPrice(self.price)

    def __repr__(self) -> str:
        return (
            f"<PrivatePrice(id={self.id}, product_id={self.product_id}, "
            f"company_id={self.company_id}, mode={self.mode}, active={self.is_active})>"
        )


# =============================================================================
# Audit and analytics
# =============================================================================


class PriceAuditLog(Base, UUIDMixin):
    """
    Append-only record of one price mutation.

    Written in the same transaction as the change it describes. The
    discount columns are filled for private prices in discount mode so that
    the derived ``new_price`` can be traced back to its inputs.
    """

    __tablename__ = "price_audit_logs"
    __table_args__ = (
        CheckConstraint(
            "price_type IN ('default', 'private')", name="check_audit_price_type"
        ),
        Index("idx_price_audit_logs_product_changed", "product_id", "changed_at"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    price_type: Mapped[str] = mapped_column(String(10), nullable=False)
    company_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    old_price: Mapped[Optional[Decimal]] = mapped_column(PRICE_NUMERIC, nullable=True)
    new_price: Mapped[Optional[Decimal]] = mapped_column(PRICE_NUMERIC, nullable=True)
    old_discount_percentage: Mapped[Optional[Decimal]] = mapped_column(
        PERCENT_NUMERIC, nullable=True
    )
    new_discount_percentage: Mapped[Optional[Decimal]] = mapped_column(
        PERCENT_NUMERIC, nullable=True
    )
    changed_by: Mapped[UUID] = mapped_column(nullable=False, index=True)
    change_reason: Mapped[str] = mapped_column(Text, nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PriceAuditLog(id={self.id}, product_id={self.product_id}, "
            f"type={self.price_type}, {self.old_price} -> {self.new_price})>"
        )


class PriceView(Base, UUIDMixin):
    """A company looked at a product's price. Analytics only."""

    __tablename__ = "price_views"
    __table_args__ = (
        Index("idx_price_views_product_viewed", "product_id", "viewed_at"),
    )

    product_id: Mapped[UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    price_type: Mapped[str] = mapped_column(String(10), nullable=False)
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


__all__ = [
    "Base",
    "Tenant",
    "Product",
    "DefaultPrice",
    "PrivatePrice",
    "PriceAuditLog",
    "PriceView",
]
