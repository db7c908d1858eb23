"""
Audit Trail
===========

Builds and appends ``price_audit_logs`` rows for price mutations.

An ``AuditTrail`` is bound to the mutator's session, so every entry is
written in the same transaction as the price change it describes: either
both commit or neither does.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from price_engine.db.models import PriceAuditLog
from price_engine.db.repositories.audit_repo import AuditRepository
from price_engine.schemas.domain import (
    AuditContext,
    DiscountPrice,
    PriceType,
    PrivatePriceMode,
)

DEFAULT_PRICE_CREATED = "Default price created"
DEFAULT_PRICE_UPDATED = "Default price updated"


def private_price_reason(
    action: str,
    company_name: str | None,
    mode: PrivatePriceMode | None = None,
) -> str:
    """
    Human readable change reason for a private price row.

    >>> private_price_reason("created", "Acme", DiscountPrice(Decimal("15")))
    'Private price created for Acme (15% discount)'
    """
    reason = f"Private price {action}"
    if company_name:
        reason += f" for {company_name}"
    if isinstance(mode, DiscountPrice):
        reason += f" ({mode.describe()})"
    return reason


def _discount_of(mode: PrivatePriceMode | None) -> Decimal | None:
    return mode.percentage if isinstance(mode, DiscountPrice) else None


class AuditTrail:
    """Writes audit rows inside the caller's transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._repo = AuditRepository(session)

    async def record_default_change(
        self,
        product_id: UUID,
        old_price: Decimal | None,
        new_price: Decimal,
        changed_by: UUID,
        context: AuditContext | None = None,
    ) -> PriceAuditLog:
        reason = DEFAULT_PRICE_UPDATED if old_price is not None else DEFAULT_PRICE_CREATED
        return await self._append(
            product_id=product_id,
            price_type=PriceType.DEFAULT,
            company_id=None,
            old_price=old_price,
            new_price=new_price,
            changed_by=changed_by,
            change_reason=reason,
            context=context,
        )

    async def record_private_change(
        self,
        product_id: UUID,
        company_id: UUID,
        old_price: Decimal | None,
        new_price: Decimal | None,
        changed_by: UUID,
        change_reason: str,
        old_mode: PrivatePriceMode | None = None,
        new_mode: PrivatePriceMode | None = None,
        context: AuditContext | None = None,
    ) -> PriceAuditLog:
        """
        Record a private price change.

        ``old_price``/``new_price`` are the effective amounts before and
        after the change (a discount expressed as the discounted amount);
        the discount percentages are kept alongside.
        """
        return await self._append(
            product_id=product_id,
            price_type=PriceType.PRIVATE,
            company_id=company_id,
            old_price=old_price,
            new_price=new_price,
            old_discount_percentage=_discount_of(old_mode),
            new_discount_percentage=_discount_of(new_mode),
            changed_by=changed_by,
            change_reason=change_reason,
            context=context,
        )

    async def _append(
        self,
        price_type: PriceType,
        context: AuditContext | None,
        **fields,
    ) -> PriceAuditLog:
        context = context or AuditContext()
        entry = PriceAuditLog(
            price_type=price_type.value,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            **fields,
        )
        return await self._repo.append(entry)

    async def history(self, product_id: UUID, limit: int = 100) -> list[PriceAuditLog]:
        """Most recent audit rows of a product, newest first."""
        return await self._repo.list_for_product(product_id, limit=limit)
