"""
Database Repositories
=====================

Data access layer following repository pattern. Repositories take an
``AsyncSession`` and never commit; transaction boundaries belong to the
caller.

Components:
    - CatalogRepository: read-only product and tenant lookups
    - PriceRepository: default and private price rows
    - AuditRepository: append-only price audit log
    - PriceViewRepository: price view analytics events
"""

from price_engine.db.repositories.audit_repo import AuditRepository
from price_engine.db.repositories.catalog_repo import CatalogRepository
from price_engine.db.repositories.price_repo import PriceRepository
from price_engine.db.repositories.price_views_repo import PriceViewRepository

__all__ = [
    "AuditRepository",
    "CatalogRepository",
    "PriceRepository",
    "PriceViewRepository",
]
