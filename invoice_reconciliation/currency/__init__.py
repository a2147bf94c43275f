"""
Currency conversion for cross-currency reconciliation.

Provides the TTL rate cache and the converter that sits in front of an
exchange rate source.
"""

from .rate_cache import RateCache, RateCacheKey
from .converter import CurrencyConverter, RateSnapshot

__all__ = [
    "RateCache",
    "RateCacheKey",
    "CurrencyConverter",
    "RateSnapshot"
]
