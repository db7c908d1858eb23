"""
Pydantic Response Models
========================

Response bodies for the price endpoints. Money is serialized as a decimal
string ("85.00") so no precision is lost in transit; datetimes are UTC.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from price_engine.schemas.domain import PriceType
from price_engine.utils.clock import as_utc

UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]


class _ResponseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class DefaultPriceOut(_ResponseModel):
    """A default price row."""

    id: UUID
    product_id: UUID
    price: Decimal
    currency: str
    effective_from: UTCDateTime
    effective_until: UTCDateTime | None = None
    is_active: bool
    created_at: UTCDateTime


class PrivatePriceOut(_ResponseModel):
    """A private price row. Exactly one of price/discountPercentage is set."""

    id: UUID
    product_id: UUID
    company_id: UUID
    price: Decimal | None = None
    discount_percentage: Decimal | None = None
    currency: str | None = None
    effective_from: UTCDateTime
    effective_until: UTCDateTime | None = None
    notes: str | None = None
    is_active: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


class AuditEntryOut(_ResponseModel):
    """One price audit log row."""

    id: UUID
    product_id: UUID
    price_type: Literal["default", "private"]
    company_id: UUID | None = None
    old_price: Decimal | None = None
    new_price: Decimal | None = None
    old_discount_percentage: Decimal | None = None
    new_discount_percentage: Decimal | None = None
    changed_by: UUID
    change_reason: str
    changed_at: UTCDateTime
    ip_address: str | None = None
    user_agent: str | None = None


class CompanyPriceOut(_ResponseModel):
    """
    The price a company sees for a product.

    Attributes:
        price_type: Which row produced the price (default or private)
        has_private_price: Whether a private price applied
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "productId": "550e8400-e29b-41d4-a716-446655440000",
                "productName": "Copper cable 3x2.5",
                "supplierId": "123e4567-e89b-12d3-a456-426614174000",
                "price": "85.00",
                "priceType": "private",
                "currency": "USD",
                "hasPrivatePrice": True,
                "effectiveFrom": "2026-01-01T00:00:00Z",
            }
        }
    )

    product_id: UUID
    product_name: str
    supplier_id: UUID
    price: Decimal
    price_type: PriceType
    currency: str
    has_private_price: bool
    effective_from: UTCDateTime


class CompanyOut(_ResponseModel):
    id: UUID
    name: str


class DefaultPriceResponse(_ResponseModel):
    default_price: Annotated[DefaultPriceOut, Field(description="The new active default price")]


class PrivatePriceResponse(_ResponseModel):
    private_price: PrivatePriceOut


class PrivatePriceListResponse(_ResponseModel):
    private_prices: list[PrivatePriceOut]


class PriceHistoryResponse(_ResponseModel):
    history: list[AuditEntryOut]


class CompanyPriceResponse(_ResponseModel):
    price: CompanyPriceOut


class CompanyListResponse(_ResponseModel):
    companies: list[CompanyOut]


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: Annotated[str, Field(description="Error class name", examples=["NotFoundError"])]
    message: str
    details: dict = Field(default_factory=dict)
