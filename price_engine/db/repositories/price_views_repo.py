"""
Price Views Repository
======================

Inserts into the ``price_views`` analytics table. Errors propagate as
``DatabaseError``; the view tracker decides to ignore them.
"""

from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from price_engine.db.models import PriceView
from price_engine.schemas.domain import PriceType
from price_engine.utils.errors import DatabaseError


class PriceViewRepository:
    """Repository for price view events."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, product_id: UUID, company_id: UUID, price_type: PriceType) -> PriceView:
        view = PriceView(
            product_id=product_id,
            company_id=company_id,
            price_type=price_type.value,
        )
        self._session.add(view)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise DatabaseError(
                message="Failed to record price view",
                details={"product_id": str(product_id), "error": str(e)},
            ) from e
        return view
