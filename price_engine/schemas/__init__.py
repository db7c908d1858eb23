"""
Schemas Package
===============

Domain value types plus Pydantic models for API requests and responses.
"""

from price_engine.schemas.domain import (
    UNSET,
    AuditContext,
    CallerContext,
    DiscountPrice,
    FixedPrice,
    PriceChangeEvent,
    PriceType,
    PrivatePriceChanges,
    PrivatePriceMode,
    ResolvedPrice,
    TenantType,
)
from price_engine.schemas.requests import (
    DefaultPriceRequest,
    PrivatePriceCreateRequest,
    PrivatePriceUpdateRequest,
)
from price_engine.schemas.responses import (
    AuditEntryOut,
    CompanyListResponse,
    CompanyPriceResponse,
    DefaultPriceResponse,
    ErrorResponse,
    PriceHistoryResponse,
    PrivatePriceListResponse,
    PrivatePriceResponse,
)

__all__ = [
    "UNSET",
    "AuditContext",
    "AuditEntryOut",
    "CallerContext",
    "CompanyListResponse",
    "CompanyPriceResponse",
    "DefaultPriceRequest",
    "DefaultPriceResponse",
    "DiscountPrice",
    "ErrorResponse",
    "FixedPrice",
    "PriceChangeEvent",
    "PriceHistoryResponse",
    "PriceType",
    "PrivatePriceChanges",
    "PrivatePriceCreateRequest",
    "PrivatePriceListResponse",
    "PrivatePriceMode",
    "PrivatePriceResponse",
    "PrivatePriceUpdateRequest",
    "ResolvedPrice",
    "TenantType",
]
