"""
Currency conversion with cached exchange rates.

Converts amounts between the supported currencies using a RateCache in
front of an external rate source. Results are rounded to four decimal
places, half away from zero.
"""

import threading
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Union

from invoice_reconciliation.connectors.base_connector import BaseRateSource
from invoice_reconciliation.models import (
    AMOUNT_PRECISION, CurrencyCode, ExchangeRate, Money, to_decimal
)
from .rate_cache import RateCache, RateCacheKey

import logging
logger = logging.getLogger(__name__)

Amount = Union[Decimal, int, float, str]


def apply_rate(amount: Amount, rate: ExchangeRate) -> Money:
    """Convert ``amount`` with ``rate`` and round to four places."""
    converted = to_decimal(amount) * Decimal(str(rate.rate))
    return Money(converted.quantize(AMOUNT_PRECISION, rounding=ROUND_HALF_UP), rate.to_currency)


class CurrencyConverter:
    """
    Converts monetary amounts between currencies.

    Same-currency conversions never touch the cache or the rate source.
    Otherwise the rate comes from the cache when fresh, and is fetched and
    cached for ``ttl_seconds`` on a miss. Fetch failures propagate as
    RateFetchError; nothing is retried here. Concurrent misses on the same
    key may each fetch.
    """

    def __init__(self, rate_source: BaseRateSource, cache: Optional[RateCache] = None,
                 ttl_seconds: float = 3600):
        """
        Initialize currency converter.

        Args:
            rate_source: Source consulted on cache misses
            cache: Rate cache to use; a private one is created if None
            ttl_seconds: TTL of the private cache (ignored when cache is given)
        """
        self.logger = logging.getLogger(f"{__name__}.CurrencyConverter")
        self.rate_source = rate_source
        self.cache = cache if cache is not None else RateCache(default_ttl_seconds=ttl_seconds)

    def convert(self, amount: Amount, from_currency: Union[CurrencyCode, str],
                to_currency: Union[CurrencyCode, str], as_of: Optional[date] = None) -> Money:
        """
        Convert ``amount`` from one currency to another.

        Args:
            amount: Non-negative amount in ``from_currency``
            from_currency: Currency of ``amount``
            to_currency: Target currency
            as_of: Rate date, or None for the latest rate

        Returns:
            Money in ``to_currency``

        Raises:
            RateFetchError: If the rate is not cached and cannot be fetched
        """
        from_currency = CurrencyCode.coerce(from_currency)
        to_currency = CurrencyCode.coerce(to_currency)

        if from_currency == to_currency:
            return Money(amount, to_currency)

        rate = self.get_rate(from_currency, to_currency, as_of)
        result = apply_rate(amount, rate)

        self.logger.info(f"Currency converted: {amount} {from_currency.value} -> "
                         f"{result.amount} {to_currency.value} (rate {rate.rate})")
        return result

    def get_rate(self, from_currency: Union[CurrencyCode, str], to_currency: Union[CurrencyCode, str],
                 as_of: Optional[date] = None) -> ExchangeRate:
        """
        Return the exchange rate for a currency pair, fetching it on a miss.

        Args:
            from_currency: Source currency
            to_currency: Target currency
            as_of: Rate date, or None for the latest rate

        Returns:
            ExchangeRate for the pair

        Raises:
            RateFetchError: If the rate source fails
        """
        from_currency = CurrencyCode.coerce(from_currency)
        to_currency = CurrencyCode.coerce(to_currency)
        key = RateCacheKey.build(from_currency, to_currency, as_of)

        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug(f"Using cached exchange rate {key}")
            return cached

        try:
            rate = self.rate_source.fetch_rate(from_currency, to_currency, as_of)
        except Exception as e:
            self.logger.error(f"Failed to fetch exchange rate {key}: {e}")
            raise

        self.cache.set(key, rate)
        self.logger.info(f"Fetched exchange rate {key}: {rate.rate} ({rate.timestamp.isoformat()})")
        return rate

    def clear_cache(self):
        """Drop every cached rate. Takes effect for subsequent calls."""
        self.cache.clear()

    def snapshot(self) -> 'RateSnapshot':
        """Return a view that pins each rate it uses for its own lifetime."""
        return RateSnapshot(self)


class RateSnapshot:
    """
    Converter view with rates pinned per ``(from, to, as_of)``.

    The first rate seen for a key is reused for every later conversion made
    through this snapshot, even if the underlying cache entry expires or is
    cleared in the meantime.
    """

    def __init__(self, converter: CurrencyConverter):
        self.converter = converter
        self._rates: Dict[RateCacheKey, ExchangeRate] = {}
        self._lock = threading.Lock()

    def get_rate(self, from_currency: Union[CurrencyCode, str], to_currency: Union[CurrencyCode, str],
                 as_of: Optional[date] = None) -> ExchangeRate:
        key = RateCacheKey.build(CurrencyCode.coerce(from_currency), CurrencyCode.coerce(to_currency), as_of)
        with self._lock:
            pinned = self._rates.get(key)
        if pinned is not None:
            return pinned

        rate = self.converter.get_rate(key.from_currency, key.to_currency, as_of)
        with self._lock:
            return self._rates.setdefault(key, rate)

    def convert(self, amount: Amount, from_currency: Union[CurrencyCode, str],
                to_currency: Union[CurrencyCode, str], as_of: Optional[date] = None) -> Money:
        from_currency = CurrencyCode.coerce(from_currency)
        to_currency = CurrencyCode.coerce(to_currency)
        if from_currency == to_currency:
            return Money(amount, to_currency)
        return apply_rate(amount, self.get_rate(from_currency, to_currency, as_of))

    def __len__(self) -> int:
        return len(self._rates)

    def __bool__(self) -> bool:
        # An empty snapshot is still a usable converter
        return True

    def snapshot(self) -> 'RateSnapshot':
        """A snapshot is already pinned; return it unchanged."""
        return self
