"""
Private Price Routes
====================

Company-specific price overrides managed by the owning supplier.

Endpoints:
- POST /products/{product_id}/private-prices - Create a private price
- GET /products/{product_id}/private-prices - List active private prices
- PUT /private-prices/{private_price_id} - Partially update a private price
- DELETE /private-prices/{private_price_id} - Deactivate a private price
"""

from uuid import UUID

from fastapi import APIRouter, Response, status

from price_engine.api.deps import Lookup, Mutator, RequestAudit, Supplier
from price_engine.schemas.requests import PrivatePriceCreateRequest, PrivatePriceUpdateRequest
from price_engine.schemas.responses import (
    ErrorResponse,
    PrivatePriceListResponse,
    PrivatePriceOut,
    PrivatePriceResponse,
)
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)

product_router = APIRouter()
router = APIRouter()


@product_router.post(
    "/{product_id}/private-prices",
    response_model=PrivatePriceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create private price",
    description=(
        "Give one company a fixed price or a percentage discount off the default "
        "price. Any active private price for the same company is superseded."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Both or neither of price/discount given"},
        403: {"model": ErrorResponse, "description": "Caller is not a supplier"},
        404: {"model": ErrorResponse, "description": "Product or company not found"},
    },
)
async def create_private_price(
    product_id: UUID,
    request: PrivatePriceCreateRequest,
    caller: Supplier,
    audit: RequestAudit,
    mutator: Mutator,
) -> PrivatePriceResponse:
    logger.info(
        "Private price creation requested",
        product_id=str(product_id),
        company_id=str(request.company_id),
        supplier_id=str(caller.tenant_id),
    )
    row = await mutator.create_private_price(
        product_id=product_id,
        supplier_id=caller.tenant_id,
        company_id=request.company_id,
        mode=request.mode,
        currency=request.currency,
        effective_from=request.effective_from,
        effective_until=request.effective_until,
        notes=request.notes,
        changed_by=caller.user_id,
        context=audit,
    )
    return PrivatePriceResponse(private_price=PrivatePriceOut.model_validate(row))


@product_router.get(
    "/{product_id}/private-prices",
    response_model=PrivatePriceListResponse,
    summary="List private prices",
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not a supplier"},
        404: {"model": ErrorResponse, "description": "Product not owned by caller"},
    },
)
async def list_private_prices(
    product_id: UUID,
    caller: Supplier,
    lookup: Lookup,
) -> PrivatePriceListResponse:
    rows = await lookup.list_private_prices(product_id, caller.tenant_id)
    return PrivatePriceListResponse(
        private_prices=[PrivatePriceOut.model_validate(row) for row in rows]
    )


@router.put(
    "/{private_price_id}",
    response_model=PrivatePriceResponse,
    summary="Update private price",
    description=(
        "Partially update a private price. Supplying price switches it to a fixed "
        "price, supplying discountPercentage switches it to a discount."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid update"},
        403: {"model": ErrorResponse, "description": "Caller does not own the product"},
        404: {"model": ErrorResponse, "description": "Private price not found"},
    },
)
async def update_private_price(
    private_price_id: UUID,
    request: PrivatePriceUpdateRequest,
    caller: Supplier,
    audit: RequestAudit,
    mutator: Mutator,
) -> PrivatePriceResponse:
    row = await mutator.update_private_price(
        private_price_id=private_price_id,
        supplier_id=caller.tenant_id,
        changes=request.to_changes(),
        changed_by=caller.user_id,
        context=audit,
    )
    return PrivatePriceResponse(private_price=PrivatePriceOut.model_validate(row))


@router.delete(
    "/{private_price_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete private price",
    description="Deactivate a private price; the row is kept for history.",
    responses={
        403: {"model": ErrorResponse, "description": "Caller does not own the product"},
        404: {"model": ErrorResponse, "description": "Private price not found"},
    },
)
async def delete_private_price(
    private_price_id: UUID,
    caller: Supplier,
    audit: RequestAudit,
    mutator: Mutator,
) -> Response:
    await mutator.delete_private_price(
        private_price_id=private_price_id,
        supplier_id=caller.tenant_id,
        changed_by=caller.user_id,
        context=audit,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
