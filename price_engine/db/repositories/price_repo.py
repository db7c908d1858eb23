"""
Price Repository
================

Persistence primitives for ``default_prices`` and ``private_prices``.
No business rules live here: which rows to deactivate and what to insert
is decided by the price mutator, inside its own transaction.
"""

from uuid import UUID

from sqlalchemy import Select, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from price_engine.db.models import DefaultPrice, PrivatePrice
from price_engine.utils.errors import DatabaseError, PriceInvariantError
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)


class PriceRepository:
    """
    Repository for default and private price rows.

    Query helpers return active rows newest first (``effective_from``
    descending, then ``created_at``), which is the tie-break the resolver
    applies if more than one active row is ever found for a scope.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # -------------------------------------------------------------------------
    # Default prices
    # -------------------------------------------------------------------------

    async def get_current_default_price(self, product_id: UUID) -> DefaultPrice | None:
        """Currently active default price row of a product, if any."""
        rows = await self._all(self._active_default_query(product_id).limit(1))
        return rows[0] if rows else None

    async def list_active_default_prices(self, product_id: UUID) -> list[DefaultPrice]:
        """All rows flagged active for a product (normally zero or one)."""
        return await self._all(self._active_default_query(product_id))

    async def deactivate_default_prices(self, product_id: UUID) -> int:
        """Flag every active default price of a product inactive."""
        result = await self._execute(
            update(DefaultPrice)
            .where(DefaultPrice.product_id == product_id, DefaultPrice.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def add_default_price(self, row: DefaultPrice) -> DefaultPrice:
        """Insert a new default price row and flush it."""
        self._session.add(row)
        await self._flush(kind="default", product_id=row.product_id)
        return row

    # -------------------------------------------------------------------------
    # Private prices
    # -------------------------------------------------------------------------

    async def get_private_price(self, private_price_id: UUID) -> PrivatePrice | None:
        """Fetch a private price row by id, active or not."""
        rows = await self._all(
            select(PrivatePrice).where(PrivatePrice.id == private_price_id)
        )
        return rows[0] if rows else None

    async def get_active_private_price(
        self, product_id: UUID, company_id: UUID
    ) -> PrivatePrice | None:
        """Currently active private price for a (product, company) pair."""
        rows = await self._all(self._active_private_query(product_id, company_id).limit(1))
        return rows[0] if rows else None

    async def list_active_private_prices(
        self, product_id: UUID, company_id: UUID | None = None
    ) -> list[PrivatePrice]:
        """Active private prices of a product, optionally for one company."""
        return await self._all(self._active_private_query(product_id, company_id))

    async def deactivate_private_prices(
        self,
        product_id: UUID,
        company_id: UUID,
        exclude_id: UUID | None = None,
    ) -> int:
        """Flag every active private price of a scope inactive, except ``exclude_id``."""
        statement = update(PrivatePrice).where(
            PrivatePrice.product_id == product_id,
            PrivatePrice.company_id == company_id,
            PrivatePrice.is_active.is_(True),
        )
        if exclude_id is not None:
            statement = statement.where(PrivatePrice.id != exclude_id)
        result = await self._execute(
            statement.values(is_active=False).execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def add_private_price(self, row: PrivatePrice) -> PrivatePrice:
        """Insert a new private price row and flush it."""
        self._session.add(row)
        await self._flush(kind="private", product_id=row.product_id)
        return row

    async def save_private_price(self, row: PrivatePrice) -> PrivatePrice:
        """Flush in-place changes to a loaded private price row."""
        await self._flush(kind="private", product_id=row.product_id)
        return row

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _active_default_query(product_id: UUID) -> Select:
        return (
            select(DefaultPrice)
            .where(DefaultPrice.product_id == product_id, DefaultPrice.is_active.is_(True))
            .order_by(DefaultPrice.effective_from.desc(), DefaultPrice.created_at.desc())
        )

    @staticmethod
    def _active_private_query(product_id: UUID, company_id: UUID | None) -> Select:
        statement = select(PrivatePrice).where(
            PrivatePrice.product_id == product_id,
            PrivatePrice.is_active.is_(True),
        )
        if company_id is not None:
            statement = statement.where(PrivatePrice.company_id == company_id)
        return statement.order_by(
            PrivatePrice.effective_from.desc(), PrivatePrice.created_at.desc()
        )

    async def _all(self, statement: Select) -> list:
        try:
            result = await self._session.execute(statement)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Price query failed", error=str(e))
            raise DatabaseError(
                message="Price query failed",
                details={"error": str(e)},
            ) from e

    async def _execute(self, statement):
        try:
            return await self._session.execute(statement)
        except SQLAlchemyError as e:
            logger.error("Price update failed", error=str(e))
            raise DatabaseError(
                message="Price update failed",
                details={"error": str(e)},
            ) from e

    async def _flush(self, kind: str, product_id: UUID) -> None:
        try:
            await self._session.flush()
        except IntegrityError as e:
            logger.error(
                "Price row rejected by database constraint",
                price_type=kind,
                product_id=str(product_id),
                error=str(e.orig),
            )
            raise PriceInvariantError(
                message="Price write violated a database invariant",
                details={"price_type": kind, "product_id": str(product_id)},
            ) from e
        except SQLAlchemyError as e:
            logger.error("Price write failed", price_type=kind, error=str(e))
            raise DatabaseError(
                message="Price write failed",
                details={"price_type": kind, "error": str(e)},
            ) from e

