"""
Price Routes
============

Endpoints:
- PUT /products/{product_id}/default-price - Set a product's default price
- GET /products/{product_id}/price - Resolved price for the calling company
- GET /products/{product_id}/price-history - Audit history of a product
"""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, status

from price_engine.api.deps import Company, Lookup, Mutator, RequestAudit, Supplier, Tracker
from price_engine.schemas.requests import DefaultPriceRequest
from price_engine.schemas.responses import (
    AuditEntryOut,
    CompanyPriceOut,
    CompanyPriceResponse,
    DefaultPriceOut,
    DefaultPriceResponse,
    ErrorResponse,
    PriceHistoryResponse,
)
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.put(
    "/{product_id}/default-price",
    response_model=DefaultPriceResponse,
    status_code=status.HTTP_200_OK,
    summary="Set default price",
    description=(
        "Replace the product's active default price. The previous price is kept "
        "inactive for history and the change is written to the audit log."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Negative price or malformed currency"},
        403: {"model": ErrorResponse, "description": "Caller is not a supplier"},
        404: {"model": ErrorResponse, "description": "Product not owned by caller"},
    },
)
async def set_default_price(
    product_id: UUID,
    request: DefaultPriceRequest,
    caller: Supplier,
    audit: RequestAudit,
    mutator: Mutator,
) -> DefaultPriceResponse:
    logger.info(
        "Default price change requested",
        product_id=str(product_id),
        supplier_id=str(caller.tenant_id),
        user_id=str(caller.user_id),
    )
    row = await mutator.set_default_price(
        product_id=product_id,
        supplier_id=caller.tenant_id,
        price=request.price,
        currency=request.currency,
        effective_from=request.effective_from,
        effective_until=request.effective_until,
        changed_by=caller.user_id,
        context=audit,
    )
    return DefaultPriceResponse(default_price=DefaultPriceOut.model_validate(row))


@router.get(
    "/{product_id}/price",
    response_model=CompanyPriceResponse,
    summary="Get resolved price",
    description=(
        "Resolve the single applicable price for the calling company: its private "
        "price if one is in effect, otherwise the product's default price."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not a company"},
        404: {"model": ErrorResponse, "description": "Product unknown or no price set"},
    },
)
async def get_company_price(
    product_id: UUID,
    caller: Company,
    lookup: Lookup,
    tracker: Tracker,
    background_tasks: BackgroundTasks,
) -> CompanyPriceResponse:
    result = await lookup.get_company_price(product_id, caller.tenant_id)
    resolved = result.resolved

    background_tasks.add_task(
        tracker.record_view,
        product_id=product_id,
        company_id=caller.tenant_id,
        price_type=resolved.price_type,
    )

    return CompanyPriceResponse(
        price=CompanyPriceOut(
            product_id=result.product.id,
            product_name=result.product.name,
            supplier_id=result.product.supplier_id,
            price=resolved.price,
            price_type=resolved.price_type,
            currency=resolved.currency,
            has_private_price=resolved.has_private_price,
            effective_from=resolved.effective_from,
        )
    )


@router.get(
    "/{product_id}/price-history",
    response_model=PriceHistoryResponse,
    summary="Get price history",
    description="Most recent audit log entries for the product, newest first.",
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not a supplier"},
        404: {"model": ErrorResponse, "description": "Product not owned by caller"},
    },
)
async def get_price_history(
    product_id: UUID,
    caller: Supplier,
    lookup: Lookup,
) -> PriceHistoryResponse:
    entries = await lookup.get_price_history(product_id, caller.tenant_id)
    return PriceHistoryResponse(
        history=[AuditEntryOut.model_validate(entry) for entry in entries]
    )
