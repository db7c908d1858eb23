"""
Price Audit Log Repository
==========================

Append and read access to ``price_audit_logs``. There is no
update or delete: audit rows are immutable once written.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from price_engine.db.models import PriceAuditLog
from price_engine.utils.errors import DatabaseError
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for price audit log operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: PriceAuditLog) -> PriceAuditLog:
        """
        Add an audit row to the current transaction.

        Raises:
            DatabaseError: If the insert fails; the caller's transaction
                must then roll back together with the price change.
        """
        self._session.add(entry)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to write price audit entry",
                product_id=str(entry.product_id),
                error=str(e),
            )
            raise DatabaseError(
                message="Failed to write price audit entry",
                details={"product_id": str(entry.product_id), "error": str(e)},
            ) from e

        logger.debug(
            "Price audit entry written",
            audit_id=str(entry.id),
            product_id=str(entry.product_id),
            price_type=entry.price_type,
        )
        return entry

    async def list_for_product(self, product_id: UUID, limit: int = 100) -> list[PriceAuditLog]:
        """Most recent audit rows of a product, newest first."""
        try:
            result = await self._session.execute(
                select(PriceAuditLog)
                .where(PriceAuditLog.product_id == product_id)
                .order_by(PriceAuditLog.changed_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to read price history", product_id=str(product_id), error=str(e))
            raise DatabaseError(
                message="Failed to read price history",
                details={"product_id": str(product_id), "error": str(e)},
            ) from e
