"""
View Tracker
============

Records that a company viewed a product's resolved price.

Tracking is fire-and-forget: it runs after the response has been produced
(FastAPI background task) in its own session, and any failure, including a
missing table, is logged and dropped.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from price_engine.api.metrics import record_price_view
from price_engine.db.repositories.price_views_repo import PriceViewRepository
from price_engine.schemas.domain import PriceType
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)


class ViewTracker:
    """Append-only price view recorder."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record_view(
        self,
        product_id: UUID,
        company_id: UUID,
        price_type: PriceType,
    ) -> None:
        """Record one view. Never raises."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await PriceViewRepository(session).append(
                        product_id=product_id,
                        company_id=company_id,
                        price_type=price_type,
                    )
        except Exception as e:
            logger.warning(
                "Price view not recorded",
                product_id=str(product_id),
                company_id=str(company_id),
                error=str(e),
            )
            record_price_view("failed")
            return

        record_price_view("recorded")
