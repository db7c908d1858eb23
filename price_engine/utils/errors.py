"""
Custom Exception Classes
========================

Application-specific exceptions. Each carries the HTTP status the API
layer renders it with, so services raise them without knowing about HTTP.
"""

from typing import Any


class PriceEngineError(Exception):
    """Base exception for the price engine."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PriceEngineError):
    """Raised when price input is malformed or contradictory."""

    status_code = 400


class NotFoundError(PriceEngineError):
    """
    Raised when a product, company or price is unknown to the caller.

    Also used for products owned by another supplier so that their
    existence is not revealed.
    """

    status_code = 404


class ForbiddenError(PriceEngineError):
    """Raised when the caller is authenticated but not entitled."""

    status_code = 403


class AuthenticationError(PriceEngineError):
    """Raised when the caller identity is missing or malformed."""

    status_code = 401


class PriceInvariantError(PriceEngineError):
    """
    Raised when a single-active-row index rejects a write.

    This points at a concurrency bug rather than bad input.
    """

    status_code = 500


class MutationTimeoutError(PriceEngineError):
    """Raised when a price mutation exceeded its transaction bound and was rolled back."""

    status_code = 503


class DatabaseError(PriceEngineError):
    """Raised when database operations fail."""

    status_code = 500


class ConfigurationError(PriceEngineError):
    """Raised when configuration is invalid."""

    pass
