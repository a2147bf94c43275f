"""
Fixed-table exchange rate source.

Serves rates from an in-memory table, for offline reconciliation runs and
for deterministic tests.
"""

import math
from datetime import date, datetime, timezone
from typing import Dict, Optional, Tuple, Union

from invoice_reconciliation.models import ConfigurationError, CurrencyCode, ExchangeRate, RateFetchError
from .base_connector import BaseRateSource

RatePair = Tuple[Union[CurrencyCode, str], Union[CurrencyCode, str]]


class StaticRateSource(BaseRateSource):
    """
    Rate source with a fixed table of ``(from, to) -> rate``.

    When only the opposite direction is present the inverse rate is served.
    """

    def __init__(self, rates: Dict[RatePair, float], timestamp: Optional[datetime] = None):
        super().__init__("static")
        self.timestamp = timestamp or datetime.now(timezone.utc)
        self.rates: Dict[Tuple[CurrencyCode, CurrencyCode], float] = {}
        for (from_currency, to_currency), rate in rates.items():
            if not math.isfinite(rate) or rate <= 0:
                raise ConfigurationError(f"Static rate {from_currency}->{to_currency} must be a positive finite number")
            self.rates[(CurrencyCode.coerce(from_currency), CurrencyCode.coerce(to_currency))] = rate

    def fetch_rate(self, from_currency: CurrencyCode, to_currency: CurrencyCode,
                   as_of: Optional[date] = None) -> ExchangeRate:
        from_currency = CurrencyCode.coerce(from_currency)
        to_currency = CurrencyCode.coerce(to_currency)
        self.fetch_count += 1

        if (from_currency, to_currency) in self.rates:
            rate = self.rates[(from_currency, to_currency)]
        elif (to_currency, from_currency) in self.rates:
            rate = 1.0 / self.rates[(to_currency, from_currency)]
        else:
            raise RateFetchError(
                f"No static rate for {from_currency.value}->{to_currency.value}",
                {'source': self.source_id}
            )

        self.logger.debug(f"Static rate {from_currency.value}->{to_currency.value} = {rate}")
        return ExchangeRate(from_currency, to_currency, rate, self.timestamp)
