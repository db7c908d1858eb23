"""
Price Lookup Service
====================

Read side of the engine: the company price view, private price listing,
price history and the company directory. Resolution itself is delegated
to the pure resolver.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from price_engine.api.metrics import record_resolution
from price_engine.config.settings import Settings, get_settings
from price_engine.db.models import PriceAuditLog, PrivatePrice, Product, Tenant
from price_engine.db.repositories.catalog_repo import CatalogRepository
from price_engine.db.repositories.price_repo import PriceRepository
from price_engine.schemas.domain import ResolvedPrice
from price_engine.services.audit_trail import AuditTrail
from price_engine.services.price_resolver import resolve_price
from price_engine.utils.errors import NotFoundError
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CompanyPrice:
    """A resolved price together with the product it belongs to."""

    product: Product
    resolved: ResolvedPrice


class PriceLookupService:
    """Read-only price queries, one instance per request session."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._catalog = CatalogRepository(session)
        self._prices = PriceRepository(session)

    async def get_company_price(self, product_id: UUID, company_id: UUID) -> CompanyPrice:
        """
        Resolve the price a company sees for a product.

        Raises:
            NotFoundError: Product unknown or inactive, or no price applies
        """
        product = await self._catalog.get_product(product_id)
        if product is None or not product.is_active:
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})

        defaults = await self._prices.list_active_default_prices(product_id)
        privates = await self._prices.list_active_private_prices(product_id, company_id)
        resolved = resolve_price(
            defaults,
            privates,
            fallback_currency=self._settings.default_currency,
        )
        if resolved is None:
            record_resolution("not_available")
            raise NotFoundError(
                "No price available for this product",
                details={"product_id": str(product_id)},
            )

        record_resolution(resolved.price_type.value)
        logger.debug(
            "Price resolved",
            product_id=str(product_id),
            company_id=str(company_id),
            price_type=resolved.price_type.value,
        )
        return CompanyPrice(product=product, resolved=resolved)

    async def list_private_prices(self, product_id: UUID, supplier_id: UUID) -> list[PrivatePrice]:
        """Active private prices of a supplier's product."""
        await self._require_supplier_product(product_id, supplier_id)
        return await self._prices.list_active_private_prices(product_id)

    async def get_price_history(self, product_id: UUID, supplier_id: UUID) -> list[PriceAuditLog]:
        """Audit history of a supplier's product, newest first."""
        await self._require_supplier_product(product_id, supplier_id)
        return await AuditTrail(self._session).history(
            product_id, limit=self._settings.price_history_limit
        )

    async def list_companies(self) -> list[Tenant]:
        """Active companies a supplier can assign private prices to."""
        return await self._catalog.list_active_companies()

    async def _require_supplier_product(self, product_id: UUID, supplier_id: UUID) -> Product:
        product = await self._catalog.get_supplier_product(product_id, supplier_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})
        return product
