"""
Price Resolver
==============

Pure price resolution: given the active price rows of one product and the
viewer's scope, pick the single applicable price.

Rules:
    1. Only rows whose effective window contains ``at`` are eligible
       (``effective_from <= at`` and ``effective_until`` null or ``>= at``).
    2. If several eligible rows exist for one scope, the one with the
       latest ``effective_from`` wins (then the latest ``created_at``).
    3. A private row beats the default row. A discount private row needs an
       eligible default row as its base; without one nothing resolves.
    4. With no private row the default row applies; with neither, nothing
       resolves.

No I/O happens here, so these functions are safe to call concurrently.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, TypeVar

from price_engine.db.models import DefaultPrice, PrivatePrice
from price_engine.schemas.domain import (
    DiscountPrice,
    FixedPrice,
    PriceType,
    PrivatePriceMode,
    ResolvedPrice,
)
from price_engine.utils.clock import as_utc, utcnow

PriceRow = TypeVar("PriceRow", DefaultPrice, PrivatePrice)


def is_effective(row: DefaultPrice | PrivatePrice, at: datetime) -> bool:
    """Whether the row's effective window contains ``at``."""
    if as_utc(row.effective_from) > at:
        return False
    return row.effective_until is None or as_utc(row.effective_until) >= at


def select_effective(rows: Iterable[PriceRow], at: datetime | None = None) -> PriceRow | None:
    """
    Pick the applicable row among a scope's active rows.

    More than one eligible row should never exist; if it does, the most
    recently effective one wins.
    """
    at = as_utc(at) if at is not None else utcnow()
    eligible = [row for row in rows if row.is_active and is_effective(row, at)]
    if not eligible:
        return None
    return max(
        eligible,
        key=lambda row: (
            as_utc(row.effective_from),
            as_utc(row.created_at) if row.created_at is not None else as_utc(row.effective_from),
        ),
    )


def private_amount(mode: PrivatePriceMode, base: DefaultPrice | None) -> Decimal | None:
    """
    Amount a private pricing mode works out to.

    Returns ``None`` for a discount with no default price to discount from.
    """
    if isinstance(mode, FixedPrice):
        return mode.price
    if isinstance(mode, DiscountPrice) and base is not None:
        return mode.apply(base.price)
    return None


def resolve_price(
    default_prices: Iterable[DefaultPrice],
    private_prices: Iterable[PrivatePrice] = (),
    at: datetime | None = None,
    fallback_currency: str = "USD",
) -> ResolvedPrice | None:
    """
    Resolve the applicable price of a product for one viewer.

    Args:
        default_prices: Active default price rows of the product
        private_prices: Active private price rows of the product for the
            viewing company (empty when the viewer has no company scope)
        at: Resolution instant (defaults to now)
        fallback_currency: Currency for a fixed private price stored
            without one when no default price exists either

    Returns:
        ResolvedPrice, or None when no price is available
    """
    at = as_utc(at) if at is not None else utcnow()
    default = select_effective(default_prices, at)
    private = select_effective(private_prices, at)

    if private is not None:
        amount = private_amount(private.mode, default)
        if amount is None:
            return None
        currency = private.currency or (default.currency if default else fallback_currency)
        return ResolvedPrice(
            price=amount,
            currency=currency,
            price_type=PriceType.PRIVATE,
            effective_from=private.effective_from,
            has_private_price=True,
        )

    if default is not None:
        return ResolvedPrice(
            price=default.price,
            currency=default.currency,
            price_type=PriceType.DEFAULT,
            effective_from=default.effective_from,
        )

    return None
