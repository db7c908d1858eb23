"""
Company Routes
==============

Endpoints:
- GET /companies - Active companies a supplier can give private prices to
"""

from fastapi import APIRouter

from price_engine.api.deps import Lookup, Supplier
from price_engine.schemas.responses import CompanyListResponse, CompanyOut, ErrorResponse

router = APIRouter()


@router.get(
    "",
    response_model=CompanyListResponse,
    summary="List companies",
    responses={403: {"model": ErrorResponse, "description": "Caller is not a supplier"}},
)
async def list_companies(caller: Supplier, lookup: Lookup) -> CompanyListResponse:
    companies = await lookup.list_companies()
    return CompanyListResponse(
        companies=[CompanyOut.model_validate(company) for company in companies]
    )
