"""Price engine services: resolution, mutation, audit and notifications."""

from price_engine.services.change_notifier import (
    ChangeNotifier,
    NullChangeNotifier,
    RedisChangeNotifier,
)
from price_engine.services.price_lookup import CompanyPrice, PriceLookupService
from price_engine.services.price_mutator import PriceMutator
from price_engine.services.price_resolver import resolve_price, select_effective
from price_engine.services.view_tracker import ViewTracker

__all__ = [
    "ChangeNotifier",
    "CompanyPrice",
    "NullChangeNotifier",
    "PriceLookupService",
    "PriceMutator",
    "RedisChangeNotifier",
    "ViewTracker",
    "resolve_price",
    "select_effective",
]
