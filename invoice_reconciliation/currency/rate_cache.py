"""
TTL cache of exchange rates.

Rates are keyed by currency pair and rate date ("latest" when undated) and
expire individually. The cache is safe to share between threads.
"""

import threading
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Optional

from invoice_reconciliation.models import ConfigurationError, CurrencyCode, ExchangeRate

import logging
logger = logging.getLogger(__name__)

LATEST = "latest"


@dataclass(frozen=True)
class RateCacheKey:
    """Cache key: ``(from, to, as_of or "latest")``."""
    from_currency: CurrencyCode
    to_currency: CurrencyCode
    as_of: str = LATEST

    @classmethod
    def build(cls, from_currency: CurrencyCode, to_currency: CurrencyCode,
              as_of: Optional[date] = None) -> 'RateCacheKey':
        return cls(from_currency, to_currency, as_of.isoformat() if as_of else LATEST)

    def __str__(self) -> str:
        return f"{self.from_currency.value}-{self.to_currency.value}-{self.as_of}"


@dataclass(frozen=True)
class _CacheEntry:
    rate: ExchangeRate
    expires_at: float


class RateCache:
    """
    Exchange rate cache with per-entry time-to-live.

    Entries are replaced, never mutated; an expired entry is dropped on read.
    ``clock`` returns seconds and can be replaced in tests.
    """

    def __init__(self, default_ttl_seconds: float = 3600,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize rate cache.

        Args:
            default_ttl_seconds: Lifetime of an entry unless set() overrides it
            clock: Monotonic time source in seconds
        """
        if default_ttl_seconds <= 0:
            raise ConfigurationError(f"Rate cache TTL must be positive, got {default_ttl_seconds}")
        self.logger = logging.getLogger(f"{__name__}.RateCache")
        self.default_ttl_seconds = default_ttl_seconds
        self.clock = clock
        self._entries: Dict[RateCacheKey, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: RateCacheKey) -> Optional[ExchangeRate]:
        """
        Return the cached rate for ``key`` or None if missing or expired.

        Args:
            key: Cache key

        Returns:
            Cached ExchangeRate or None
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self.clock():
                del self._entries[key]
                self.logger.debug(f"Exchange rate expired: {key}")
                return None
            return entry.rate

    def set(self, key: RateCacheKey, rate: ExchangeRate, ttl_seconds: Optional[float] = None):
        """
        Store ``rate`` under ``key``, replacing any existing entry.

        Args:
            key: Cache key
            rate: Rate to store
            ttl_seconds: Lifetime override for this entry
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        entry = _CacheEntry(rate=rate, expires_at=self.clock() + ttl)
        with self._lock:
            self._entries[key] = entry

    def clear(self):
        """Remove every entry."""
        with self._lock:
            self._entries.clear()
        self.logger.info("Exchange rate cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: RateCacheKey) -> bool:
        return self.get(key) is not None
