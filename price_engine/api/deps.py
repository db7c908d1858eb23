"""
API Dependencies
================

FastAPI dependencies for caller identity and service construction.

The caller identity is established upstream (API gateway / auth service)
and forwarded in headers:

- ``X-User-Id``      acting user, recorded as ``changed_by`` in audit rows
- ``X-Tenant-Id``    the caller's tenant (supplier or company)
- ``X-Tenant-Type``  ``supplier`` or ``company``
- ``X-User-Role``    optional role name
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from price_engine.db.connection import get_db_session, get_session_factory
from price_engine.schemas.domain import AuditContext, CallerContext, TenantType
from price_engine.services.change_notifier import ChangeNotifier, get_change_notifier
from price_engine.services.price_lookup import PriceLookupService
from price_engine.services.price_mutator import PriceMutator
from price_engine.services.view_tracker import ViewTracker
from price_engine.utils.errors import AuthenticationError, ForbiddenError


def get_caller(
    x_user_id: Annotated[str | None, Header()] = None,
    x_tenant_id: Annotated[str | None, Header()] = None,
    x_tenant_type: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> CallerContext:
    """
    Build the caller identity from gateway headers.

    Raises:
        AuthenticationError: Headers missing or malformed
    """
    if not (x_user_id and x_tenant_id and x_tenant_type):
        raise AuthenticationError("Authentication required")
    try:
        return CallerContext(
            user_id=UUID(x_user_id),
            tenant_id=UUID(x_tenant_id),
            tenant_type=TenantType(x_tenant_type.strip().lower()),
            role=x_user_role,
        )
    except ValueError as e:
        raise AuthenticationError(
            "Invalid caller identity headers", details={"error": str(e)}
        ) from e


def require_supplier(caller: Annotated[CallerContext, Depends(get_caller)]) -> CallerContext:
    if not caller.is_supplier:
        raise ForbiddenError("Only suppliers can manage prices")
    return caller


def require_company(caller: Annotated[CallerContext, Depends(get_caller)]) -> CallerContext:
    if not caller.is_company:
        raise ForbiddenError("Company access required")
    return caller


def get_audit_context(request: Request) -> AuditContext:
    """Request metadata recorded with audit rows."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return AuditContext(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )


def get_price_mutator(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    notifier: Annotated[ChangeNotifier, Depends(get_change_notifier)],
) -> PriceMutator:
    return PriceMutator(session_factory, notifier)


def get_price_lookup(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> PriceLookupService:
    return PriceLookupService(session)


def get_view_tracker(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> ViewTracker:
    return ViewTracker(session_factory)


Caller = Annotated[CallerContext, Depends(get_caller)]
Supplier = Annotated[CallerContext, Depends(require_supplier)]
Company = Annotated[CallerContext, Depends(require_company)]
RequestAudit = Annotated[AuditContext, Depends(get_audit_context)]
Mutator = Annotated[PriceMutator, Depends(get_price_mutator)]
Lookup = Annotated[PriceLookupService, Depends(get_price_lookup)]
Tracker = Annotated[ViewTracker, Depends(get_view_tracker)]
