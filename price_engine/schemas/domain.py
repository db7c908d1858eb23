"""
Domain Types
============

Plain value types shared by the resolver, the mutator and the API layer.

``PrivatePriceMode`` is a tagged variant: a private price is either a
``FixedPrice`` or a ``DiscountPrice``, so "both" and "neither" cannot be
expressed once input has passed the request schemas.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from price_engine.utils.clock import utcnow

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    """Round half-up to currency granularity (2 decimal places)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class PriceType(str, Enum):
    """Which kind of price row produced a value."""

    DEFAULT = "default"
    PRIVATE = "private"


class TenantType(str, Enum):
    """Tenant account kinds."""

    SUPPLIER = "supplier"
    COMPANY = "company"


@dataclass(frozen=True)
class FixedPrice:
    """Private price set to an absolute amount."""

    price: Decimal

    def describe(self) -> str:
        return f"fixed price {self.price}"


@dataclass(frozen=True)
class DiscountPrice:
    """Private price expressed as a percentage off the default price."""

    percentage: Decimal

    def apply(self, base_price: Decimal) -> Decimal:
        """Discounted amount for ``base_price``, rounded half-up to cents."""
        return round_money(base_price * (1 - self.percentage / HUNDRED))

    def describe(self) -> str:
        return f"{self.percentage}% discount"


PrivatePriceMode = FixedPrice | DiscountPrice


class _Unset(Enum):
    UNSET = "UNSET"


# Marks a partial-update field that was not supplied (distinct from None)
UNSET = _Unset.UNSET


@dataclass(frozen=True)
class ResolvedPrice:
    """The single applicable price for a (product, viewer) pair."""

    price: Decimal
    currency: str
    price_type: PriceType
    effective_from: datetime
    has_private_price: bool = False


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller identity supplied by the gateway."""

    user_id: UUID
    tenant_id: UUID
    tenant_type: TenantType
    role: str | None = None

    @property
    def is_supplier(self) -> bool:
        return self.tenant_type == TenantType.SUPPLIER

    @property
    def is_company(self) -> bool:
        return self.tenant_type == TenantType.COMPANY


@dataclass(frozen=True)
class AuditContext:
    """Request metadata recorded alongside every audit row."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class PrivatePriceChanges:
    """
    Partial update of a private price row.

    ``mode`` switches the pricing mode (clearing the other one); ``None``
    keeps the current mode. Other fields use ``UNSET`` for "not supplied"
    because ``effective_until`` and ``notes`` may legitimately be cleared.
    """

    mode: PrivatePriceMode | None = None
    currency: str | _Unset = UNSET
    effective_from: datetime | _Unset = UNSET
    effective_until: datetime | None | _Unset = UNSET
    notes: str | None | _Unset = UNSET
    is_active: bool | _Unset = UNSET


class PriceChangeEvent(BaseModel):
    """
    ``price:updated`` notification payload.

    A hint for consumers to re-resolve, never a source of truth.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event: str = "price:updated"
    product_id: UUID
    product_name: str
    price_type: PriceType
    new_price: Decimal
    currency: str
    supplier_id: UUID
    company_id: UUID | None = None
    updated_at: datetime = Field(default_factory=utcnow)

    def to_message(self) -> str:
        """Serialize for the pub/sub transport."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def log_context(self) -> dict[str, Any]:
        return {
            "product_id": str(self.product_id),
            "price_type": self.price_type.value,
            "supplier_id": str(self.supplier_id),
            "company_id": str(self.company_id) if self.company_id else None,
        }
