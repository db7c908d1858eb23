"""
Catalog Repository
==================

Read-only lookups against the marketplace catalog tables (``products`` and
``tenants``). Products and tenants are owned by other services; the price
engine only needs ownership and activity checks.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from price_engine.db.models import Product, Tenant
from price_engine.schemas.domain import TenantType
from price_engine.utils.errors import DatabaseError
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)


class CatalogRepository:
    """Repository for product and tenant lookups."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_product(self, product_id: UUID) -> Product | None:
        """Fetch a product by id regardless of owner."""
        return await self._scalar(select(Product).where(Product.id == product_id))

    async def get_supplier_product(self, product_id: UUID, supplier_id: UUID) -> Product | None:
        """
        Fetch a product only if ``supplier_id`` owns it.

        Products of other suppliers come back as ``None`` so callers cannot
        tell them apart from unknown ids.
        """
        return await self._scalar(
            select(Product).where(
                Product.id == product_id,
                Product.supplier_id == supplier_id,
            )
        )

    async def lock_product(self, product_id: UUID) -> Product | None:
        """
        Fetch a product with a row lock held until the transaction ends.

        Serializes concurrent price mutations on the same product so that
        two writers cannot both observe "no active row".
        """
        return await self._scalar(
            select(Product).where(Product.id == product_id).with_for_update()
        )

    async def get_active_company(self, company_id: UUID) -> Tenant | None:
        """Fetch a company tenant that can receive private prices."""
        return await self._scalar(
            select(Tenant).where(
                Tenant.id == company_id,
                Tenant.type == TenantType.COMPANY.value,
                Tenant.is_active.is_(True),
            )
        )

    async def list_active_companies(self) -> list[Tenant]:
        """List approved, active company tenants ordered by name."""
        try:
            result = await self._session.execute(
                select(Tenant)
                .where(
                    Tenant.type == TenantType.COMPANY.value,
                    Tenant.is_active.is_(True),
                    Tenant.status == "active",
                )
                .order_by(Tenant.name.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list companies", error=str(e))
            raise DatabaseError(
                message="Failed to list companies",
                details={"error": str(e)},
            ) from e

    async def _scalar(self, statement):
        try:
            result = await self._session.execute(statement)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Catalog lookup failed", error=str(e))
            raise DatabaseError(
                message="Catalog lookup failed",
                details={"error": str(e)},
            ) from e
