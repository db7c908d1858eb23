"""
API Routes
==========

Route modules for the price engine service.
"""

from price_engine.api.routes.companies import router as companies_router
from price_engine.api.routes.prices import router as prices_router
from price_engine.api.routes.private_prices import product_router as product_private_prices_router
from price_engine.api.routes.private_prices import router as private_prices_router

__all__ = [
    "companies_router",
    "prices_router",
    "private_prices_router",
    "product_private_prices_router",
]
