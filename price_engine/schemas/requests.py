"""
Pydantic Request Models
=======================

Request bodies for the price endpoints. Field names are camelCase on the
wire; snake_case is accepted as well.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from price_engine.schemas.domain import (
    DiscountPrice,
    FixedPrice,
    PrivatePriceChanges,
    PrivatePriceMode,
)

Money = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]
Percentage = Annotated[Decimal, Field(ge=0, le=100, max_digits=5, decimal_places=2)]


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("currency", mode="before", check_fields=False)
    @classmethod
    def normalize_currency(cls, value):
        if isinstance(value, str):
            value = value.strip().upper()
            if len(value) != 3 or not value.isalpha():
                raise ValueError("currency must be a 3-letter ISO 4217 code")
        return value


class DefaultPriceRequest(_RequestModel):
    """
    Request body for PUT /products/{product_id}/default-price.

    Attributes:
        price: New default price (non-negative, 2 decimal places)
        currency: ISO 4217 code, defaults to the configured currency
        effective_from: Start of validity, defaults to now
        effective_until: End of validity, open-ended when omitted
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"price": "100.00", "currency": "USD"},
        }
    )

    price: Annotated[Money, Field(description="Default price")]
    currency: Annotated[
        str | None,
        Field(description="ISO 4217 currency code", examples=["USD", "EUR"]),
    ] = None
    effective_from: Annotated[
        datetime | None,
        Field(description="Start of validity (defaults to now)"),
    ] = None
    effective_until: Annotated[
        datetime | None,
        Field(description="End of validity (open-ended when omitted)"),
    ] = None


class PrivatePriceCreateRequest(_RequestModel):
    """
    Request body for POST /products/{product_id}/private-prices.

    Exactly one of ``price`` and ``discount_percentage`` must be given.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "companyId": "123e4567-e89b-12d3-a456-426614174000",
                "discountPercentage": "15",
            }
        }
    )

    company_id: Annotated[UUID, Field(description="Company receiving the price")]
    price: Annotated[Money | None, Field(description="Fixed private price")] = None
    discount_percentage: Annotated[
        Percentage | None,
        Field(description="Discount off the default price, 0-100"),
    ] = None
    currency: Annotated[str | None, Field(description="ISO 4217 currency code")] = None
    effective_from: datetime | None = None
    effective_until: datetime | None = None
    notes: Annotated[str | None, Field(max_length=2000)] = None

    @model_validator(mode="after")
    def require_single_mode(self) -> Self:
        """Exactly one pricing mode must be supplied."""
        if self.price is None and self.discount_percentage is None:
            raise ValueError("Either price or discountPercentage is required")
        if self.price is not None and self.discount_percentage is not None:
            raise ValueError("Provide either price or discountPercentage, not both")
        return self

    @property
    def mode(self) -> PrivatePriceMode:
        if self.price is not None:
            return FixedPrice(self.price)
        return DiscountPrice(self.discount_percentage)


class PrivatePriceUpdateRequest(_RequestModel):
    """
    Request body for PUT /private-prices/{private_price_id}.

    Every field is optional; only supplied fields change. Supplying
    ``price`` switches the row to a fixed price and supplying
    ``discount_percentage`` switches it to a discount.
    """

    price: Money | None = None
    discount_percentage: Percentage | None = None
    currency: str | None = None
    effective_from: datetime | None = None
    effective_until: datetime | None = None
    notes: Annotated[str | None, Field(max_length=2000)] = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def reject_both_modes(self) -> Self:
        if self.price is not None and self.discount_percentage is not None:
            raise ValueError("Provide either price or discountPercentage, not both")
        for field in ("effective_from", "currency", "is_active"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{to_camel(field)} cannot be null")
        return self

    def to_changes(self) -> PrivatePriceChanges:
        """Translate the supplied fields into a partial update."""
        changes = PrivatePriceChanges()
        if self.price is not None:
            changes.mode = FixedPrice(self.price)
        elif self.discount_percentage is not None:
            changes.mode = DiscountPrice(self.discount_percentage)

        for field in ("currency", "effective_from", "effective_until", "notes", "is_active"):
            if field in self.model_fields_set:
                setattr(changes, field, getattr(self, field))
        return changes
