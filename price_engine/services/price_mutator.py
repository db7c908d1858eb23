"""
Price Mutator
=============

The only writer of price rows. Every mutation:

1. Checks the caller's ownership in a short read session.
2. Opens one transaction, locks the product row, deactivates the superseded
   row(s), writes the new state and its audit entry.
3. After commit, broadcasts a ``price:updated`` event (best-effort).

The product row lock serializes writers per product, and the partial unique
indexes on the price tables reject any interleaving that slips through, so
at most one active row exists per scope. A transaction that exceeds
``mutation_timeout_seconds`` is rolled back and reported as
``MutationTimeoutError``.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from price_engine.api.metrics import MUTATION_DURATION, record_mutation
from price_engine.config.settings import Settings, get_settings
from price_engine.db.models import DefaultPrice, PrivatePrice, Product
from price_engine.db.repositories.catalog_repo import CatalogRepository
from price_engine.db.repositories.price_repo import PriceRepository
from price_engine.schemas.domain import (
    HUNDRED,
    UNSET,
    AuditContext,
    DiscountPrice,
    FixedPrice,
    PriceChangeEvent,
    PriceType,
    PrivatePriceChanges,
    PrivatePriceMode,
)
from price_engine.services.audit_trail import AuditTrail, private_price_reason
from price_engine.services.change_notifier import ChangeNotifier, NullChangeNotifier
from price_engine.services.price_resolver import private_amount, select_effective
from price_engine.utils.clock import as_utc, utcnow
from price_engine.utils.errors import (
    ForbiddenError,
    MutationTimeoutError,
    NotFoundError,
    PriceEngineError,
    ValidationError,
)
from price_engine.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# SQLSTATE raised when statement_timeout cancels a query
QUERY_CANCELED = "57014"


@dataclass
class _PrivateWrite:
    """What a private price transaction produced, for post-commit work."""

    row: PrivatePrice
    product: Product
    broadcast: bool = False


class PriceMutator:
    """
    Transactional writer for default and private prices.

    Example:
        mutator = PriceMutator(get_session_factory(), notifier)
        row = await mutator.set_default_price(
            product_id, supplier_id, Decimal("100.00"), changed_by=user_id
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: ChangeNotifier | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize mutator.

        Args:
            session_factory: Factory for the sessions mutations run in
            notifier: Post-commit change broadcaster
            settings: Settings providing defaults and the transaction bound
        """
        self._session_factory = session_factory
        self._notifier = notifier or NullChangeNotifier()
        self._settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Default prices
    # -------------------------------------------------------------------------

    async def set_default_price(
        self,
        product_id: UUID,
        supplier_id: UUID,
        price: Decimal,
        currency: str | None = None,
        effective_from: datetime | None = None,
        effective_until: datetime | None = None,
        *,
        changed_by: UUID,
        context: AuditContext | None = None,
    ) -> DefaultPrice:
        """
        Replace the active default price of a product.

        Any currently active row is deactivated and a new row inserted,
        even when the amount is unchanged, so the history shows every set.

        Raises:
            ValidationError: Negative price or inverted effective window
            NotFoundError: Product unknown or owned by another supplier
            MutationTimeoutError: Transaction exceeded its time bound
        """
        _check_price(price)
        currency = self._currency(currency)
        effective_from = as_utc(effective_from) if effective_from else utcnow()
        effective_until = as_utc(effective_until) if effective_until else None
        _check_window(effective_from, effective_until)

        await self._require_supplier_product(product_id, supplier_id)

        async def write(session: AsyncSession) -> tuple[DefaultPrice, Product]:
            product = await self._lock_product(session, product_id)
            prices = PriceRepository(session)

            current = await prices.get_current_default_price(product_id)
            old_price = current.price if current is not None else None

            await prices.deactivate_default_prices(product_id)
            row = DefaultPrice(
                product_id=product_id,
                price=price,
                currency=currency,
                effective_from=effective_from,
                effective_until=effective_until,
                is_active=True,
            )
            await prices.add_default_price(row)

            await AuditTrail(session).record_default_change(
                product_id=product_id,
                old_price=old_price,
                new_price=price,
                changed_by=changed_by,
                context=context,
            )
            return row, product

        row, product = await self._run("set_default_price", write)

        logger.info(
            "Default price set",
            product_id=str(product_id),
            price=str(row.price),
            currency=row.currency,
        )
        await self._broadcast(
            PriceChangeEvent(
                product_id=product_id,
                product_name=product.name,
                price_type=PriceType.DEFAULT,
                new_price=row.price,
                currency=row.currency,
                supplier_id=product.supplier_id,
            )
        )
        return row

    # -------------------------------------------------------------------------
    # Private prices
    # -------------------------------------------------------------------------

    async def create_private_price(
        self,
        product_id: UUID,
        supplier_id: UUID,
        company_id: UUID,
        mode: PrivatePriceMode,
        currency: str | None = None,
        effective_from: datetime | None = None,
        effective_until: datetime | None = None,
        notes: str | None = None,
        *,
        changed_by: UUID,
        context: AuditContext | None = None,
    ) -> PrivatePrice:
        """
        Give one company its own price for a product.

        An existing active private price for the same company is
        superseded. A fixed price without a currency gets the default
        currency; a discount without one follows the default price's.

        Raises:
            ValidationError: Invalid amount, percentage or window
            NotFoundError: Product not owned by the supplier, or company
                unknown or inactive
        """
        _check_mode(mode)
        if currency is not None or isinstance(mode, FixedPrice):
            currency = self._currency(currency)
        effective_from = as_utc(effective_from) if effective_from else utcnow()
        effective_until = as_utc(effective_until) if effective_until else None
        _check_window(effective_from, effective_until)

        await self._require_supplier_product(product_id, supplier_id)
        async with self._session_factory() as session:
            company = await CatalogRepository(session).get_active_company(company_id)
        if company is None:
            raise NotFoundError("Company not found", details={"company_id": str(company_id)})

        async def write(session: AsyncSession) -> _PrivateWrite:
            product = await self._lock_product(session, product_id)
            prices = PriceRepository(session)
            base = await self._effective_default(prices, product_id)

            existing = await prices.get_active_private_price(product_id, company_id)
            old_mode = existing.mode if existing is not None else None

            await prices.deactivate_private_prices(product_id, company_id)
            row = PrivatePrice(
                product_id=product_id,
                company_id=company_id,
                currency=currency,
                effective_from=effective_from,
                effective_until=effective_until,
                notes=notes,
                is_active=True,
            )
            _apply_mode(row, mode)
            await prices.add_private_price(row)

            action = "updated" if existing is not None else "created"
            await AuditTrail(session).record_private_change(
                product_id=product_id,
                company_id=company_id,
                old_price=private_amount(old_mode, base) if old_mode else None,
                new_price=private_amount(mode, base),
                changed_by=changed_by,
                change_reason=private_price_reason(action, company.name, mode),
                old_mode=old_mode,
                new_mode=mode,
                context=context,
            )
            return _PrivateWrite(row=row, product=product, broadcast=isinstance(mode, FixedPrice))

        result = await self._run("create_private_price", write)

        logger.info(
            "Private price created",
            private_price_id=str(result.row.id),
            product_id=str(product_id),
            company_id=str(company_id),
            mode=mode.describe(),
        )
        if result.broadcast:
            await self._broadcast(self._private_event(result))
        return result.row

    async def update_private_price(
        self,
        private_price_id: UUID,
        supplier_id: UUID,
        changes: PrivatePriceChanges,
        *,
        changed_by: UUID,
        context: AuditContext | None = None,
    ) -> PrivatePrice:
        """
        Partially update a private price row.

        Supplying a mode replaces the current one. An audit entry is
        written only when the pricing (mode or amount) or the active flag
        changes; window, currency or notes edits alone are not audited.

        Raises:
            NotFoundError: Row unknown
            ForbiddenError: Row belongs to another supplier's product
            ValidationError: Invalid amount, percentage or window
        """
        return await self._change_private_price(
            private_price_id, supplier_id, changes, changed_by, context, "update_private_price"
        )

    async def _change_private_price(
        self,
        private_price_id: UUID,
        supplier_id: UUID,
        changes: PrivatePriceChanges,
        changed_by: UUID,
        context: AuditContext | None,
        operation: str,
    ) -> PrivatePrice:
        if changes.mode is not None:
            _check_mode(changes.mode)
        if changes.currency is not UNSET:
            changes.currency = self._currency(changes.currency)
        for field in ("effective_from", "effective_until"):
            value = getattr(changes, field)
            if value is not UNSET and value is not None:
                setattr(changes, field, as_utc(value))

        product_id = await self._require_owned_private_price(private_price_id, supplier_id)

        async def write(session: AsyncSession) -> _PrivateWrite:
            product = await self._lock_product(session, product_id)
            prices = PriceRepository(session)
            row = await prices.get_private_price(private_price_id)
            if row is None:
                raise NotFoundError(
                    "Private price not found",
                    details={"private_price_id": str(private_price_id)},
                )
            base = await self._effective_default(prices, product_id)

            old_mode = row.mode
            was_active = row.is_active

            new_from = row.effective_from if changes.effective_from is UNSET else changes.effective_from
            new_until = row.effective_until if changes.effective_until is UNSET else changes.effective_until
            _check_window(new_from, new_until)

            # The price the company was paying before this change
            prior_mode = old_mode if was_active else None
            if changes.is_active is True and not was_active:
                superseded = await prices.get_active_private_price(product_id, row.company_id)
                prior_mode = superseded.mode if superseded is not None else None
                # Clear the scope before this row becomes active again
                await prices.deactivate_private_prices(
                    product_id, row.company_id, exclude_id=row.id
                )

            if changes.mode is not None:
                _apply_mode(row, changes.mode)
                if isinstance(changes.mode, FixedPrice) and row.currency is None and changes.currency is UNSET:
                    row.currency = self._settings.default_currency
            if changes.currency is not UNSET:
                row.currency = changes.currency
            row.effective_from = new_from
            row.effective_until = new_until
            if changes.notes is not UNSET:
                row.notes = changes.notes
            if changes.is_active is not UNSET:
                row.is_active = changes.is_active
            await prices.save_private_price(row)

            new_mode = row.mode
            new_amount = private_amount(new_mode, base)
            pricing_changed = new_mode != old_mode
            activity_changed = row.is_active != was_active

            if activity_changed or (pricing_changed and row.is_active):
                if activity_changed and not row.is_active:
                    action, reason_mode = "deactivated", None
                elif activity_changed:
                    action, reason_mode = "reactivated", new_mode
                else:
                    action, reason_mode = "updated", new_mode
                company = await CatalogRepository(session).get_active_company(row.company_id)
                await AuditTrail(session).record_private_change(
                    product_id=product_id,
                    company_id=row.company_id,
                    old_price=private_amount(prior_mode, base) if prior_mode else None,
                    new_price=new_amount if row.is_active else (base.price if base else None),
                    changed_by=changed_by,
                    change_reason=private_price_reason(
                        action, company.name if company else None, reason_mode
                    ),
                    old_mode=prior_mode,
                    new_mode=new_mode if row.is_active else None,
                    context=context,
                )

            broadcast = (
                row.is_active
                and isinstance(new_mode, FixedPrice)
                and (pricing_changed or activity_changed)
            )
            return _PrivateWrite(row=row, product=product, broadcast=broadcast)

        result = await self._run(operation, write)

        logger.info(
            "Private price changed",
            operation=operation,
            private_price_id=str(private_price_id),
            product_id=str(product_id),
            is_active=result.row.is_active,
        )
        if result.broadcast:
            await self._broadcast(self._private_event(result))
        return result.row

    async def delete_private_price(
        self,
        private_price_id: UUID,
        supplier_id: UUID,
        *,
        changed_by: UUID,
        context: AuditContext | None = None,
    ) -> PrivatePrice:
        """
        Soft-delete a private price (flag it inactive).

        Deleting an already inactive row is a no-op without an audit entry.

        Raises:
            NotFoundError: Row unknown
            ForbiddenError: Row belongs to another supplier's product
        """
        return await self._change_private_price(
            private_price_id,
            supplier_id,
            PrivatePriceChanges(is_active=False),
            changed_by,
            context,
            "delete_private_price",
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _currency(self, currency: str | None) -> str:
        value = (currency or self._settings.default_currency).strip().upper()
        if len(value) != 3 or not value.isalpha():
            raise ValidationError(
                "Currency must be a 3-letter code", details={"currency": currency}
            )
        return value

    async def _require_supplier_product(self, product_id: UUID, supplier_id: UUID) -> Product:
        async with self._session_factory() as session:
            product = await CatalogRepository(session).get_supplier_product(product_id, supplier_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})
        return product

    async def _require_owned_private_price(self, private_price_id: UUID, supplier_id: UUID) -> UUID:
        async with self._session_factory() as session:
            row = await PriceRepository(session).get_private_price(private_price_id)
            product = (
                await CatalogRepository(session).get_product(row.product_id)
                if row is not None
                else None
            )
        if row is None or product is None:
            raise NotFoundError(
                "Private price not found",
                details={"private_price_id": str(private_price_id)},
            )
        if product.supplier_id != supplier_id:
            raise ForbiddenError("Not authorized to update this price")
        return row.product_id

    @staticmethod
    async def _lock_product(session: AsyncSession, product_id: UUID) -> Product:
        product = await CatalogRepository(session).lock_product(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})
        return product

    @staticmethod
    async def _effective_default(prices: PriceRepository, product_id: UUID) -> DefaultPrice | None:
        return select_effective(await prices.list_active_default_prices(product_id))

    async def _run(
        self,
        operation: str,
        write: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``write`` in one bounded transaction."""
        timeout = self._settings.mutation_timeout_seconds
        start = time.perf_counter()
        try:
            async with asyncio.timeout(timeout):
                async with self._session_factory() as session:
                    async with session.begin():
                        await self._apply_statement_timeout(session, timeout)
                        result = await write(session)
        except TimeoutError as e:
            raise self._timed_out(operation, timeout) from e
        except (PriceEngineError, DBAPIError) as e:
            if _cancelled_by_statement_timeout(e):
                raise self._timed_out(operation, timeout) from e
            if isinstance(e, PriceEngineError) and e.status_code < 500:
                record_mutation(operation, "rejected")
            else:
                record_mutation(operation, "failed")
            raise
        except Exception:
            record_mutation(operation, "failed")
            raise
        MUTATION_DURATION.labels(operation=operation).observe(time.perf_counter() - start)
        record_mutation(operation, "success")
        return result

    @staticmethod
    def _timed_out(operation: str, timeout: float) -> MutationTimeoutError:
        record_mutation(operation, "timeout")
        logger.error("Price mutation timed out", operation=operation, timeout_seconds=timeout)
        return MutationTimeoutError(
            "Price update timed out, please retry",
            details={"operation": operation, "timeout_seconds": timeout},
        )

    @staticmethod
    async def _apply_statement_timeout(session: AsyncSession, timeout: float) -> None:
        if session.get_bind().dialect.name == "postgresql":
            await session.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))

    def _private_event(self, result: _PrivateWrite) -> PriceChangeEvent:
        return PriceChangeEvent(
            product_id=result.product.id,
            product_name=result.product.name,
            price_type=PriceType.PRIVATE,
            new_price=result.row.price,
            currency=result.row.currency or self._settings.default_currency,
            supplier_id=result.product.supplier_id,
            company_id=result.row.company_id,
        )

    async def _broadcast(self, event: PriceChangeEvent) -> None:
        try:
            await self._notifier.publish(event)
        except Exception as e:
            logger.warning("Price change broadcast failed", error=str(e), **event.log_context())


def _check_price(price: Decimal, field: str = "price") -> None:
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be a non-negative amount", details={field: str(price)})


def _check_mode(mode: PrivatePriceMode) -> None:
    if isinstance(mode, FixedPrice):
        _check_price(mode.price)
    elif isinstance(mode, DiscountPrice):
        if not mode.percentage.is_finite() or not (0 <= mode.percentage <= HUNDRED):
            raise ValidationError(
                "Discount percentage must be between 0 and 100",
                details={"discount_percentage": str(mode.percentage)},
            )
    else:
        raise ValidationError("Either price or discount percentage is required")


def _apply_mode(row: PrivatePrice, mode: PrivatePriceMode) -> None:
    if isinstance(mode, FixedPrice):
        row.price = mode.price
        row.discount_percentage = None
    else:
        row.price = None
        row.discount_percentage = mode.percentage


def _cancelled_by_statement_timeout(error: BaseException) -> bool:
    """True if ``error`` (or what it wraps) is PostgreSQL's query_canceled."""
    seen = error
    while seen is not None:
        if isinstance(seen, DBAPIError):
            orig = seen.orig
            code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
            if code == QUERY_CANCELED or "statement timeout" in str(orig):
                return True
        seen = seen.__cause__
    return False


def _check_window(effective_from: datetime, effective_until: datetime | None) -> None:
    if effective_until is not None and as_utc(effective_until) < as_utc(effective_from):
        raise ValidationError(
            "effectiveUntil must not be before effectiveFrom",
            details={
                "effective_from": effective_from.isoformat(),
                "effective_until": effective_until.isoformat(),
            },
        )
