"""
REST API exchange rate source.

Fetches rates from an exchangerate-api style HTTP endpoint
(``GET {api_url}{FROM}`` returning ``{"date": ..., "rates": {...}}``)
using requests, with a caller-configurable timeout.
"""

import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

import requests

from invoice_reconciliation.models import (
    CurrencyCode, ExchangeRate, RateSourceConfig, ValidationError
)
from .base_connector import BaseRateSource

import logging
logger = logging.getLogger(__name__)


class ExchangeRateAPIConnector(BaseRateSource):
    """
    Exchange rate source backed by a REST API.

    No retries are attempted here; a timeout, a non-2xx status, a network
    error or an unusable payload all surface as RateFetchError.
    """

    def __init__(self, config: Optional[RateSourceConfig] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize API rate source.

        Args:
            config: API URL and timeout (defaults to RateSourceConfig())
            session: Optional requests session to reuse connections
        """
        super().__init__("exchange_rate_api")
        self.config = config or RateSourceConfig()
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})

    def fetch_rate(self, from_currency: CurrencyCode, to_currency: CurrencyCode,
                   as_of: Optional[date] = None) -> ExchangeRate:
        """
        Fetch a rate from the API.

        Args:
            from_currency: Base currency of the request
            to_currency: Currency to read from the ``rates`` table
            as_of: Historical date, or None for the latest rate

        Returns:
            ExchangeRate parsed from the response

        Raises:
            RateFetchError: On timeout, HTTP error, network error or bad payload
        """
        from_currency = CurrencyCode.coerce(from_currency)
        to_currency = CurrencyCode.coerce(to_currency)
        url = f"{self.config.api_url}{from_currency.value}"
        params = {'date': as_of.isoformat()[:10]} if as_of else None
        operation = f"fetch_rate {from_currency.value}->{to_currency.value}"

        self.fetch_count += 1
        start_time = time.time()
        try:
            response = self.session.get(url, params=params, timeout=self.config.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.Timeout as e:
            raise self._handle_error(operation, f"request timed out after {self.config.timeout}s", start_time) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 'unknown'
            raise self._handle_error(operation, f"HTTP {status}", start_time) from e
        except ValueError as e:
            # JSONDecodeError also subclasses RequestException
            raise self._handle_error(operation, f"invalid response: {e}", start_time) from e
        except requests.exceptions.RequestException as e:
            raise self._handle_error(operation, e, start_time) from e

        rate = self._parse_rate(payload, from_currency, to_currency, operation, start_time)
        self._log_operation(operation, time.time() - start_time, True, f"rate={rate.rate}")
        return rate

    def _parse_rate(self, payload: Any, from_currency: CurrencyCode, to_currency: CurrencyCode,
                    operation: str, start_time: float) -> ExchangeRate:
        """Extract the target rate and its date from an API payload."""
        if not isinstance(payload, dict) or not isinstance(payload.get('rates'), dict):
            raise self._handle_error(operation, "payload has no 'rates' table", start_time)

        value = payload['rates'].get(to_currency.value)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self._handle_error(operation, f"no numeric rate for {to_currency.value}", start_time)

        try:
            return ExchangeRate(
                from_currency=from_currency,
                to_currency=to_currency,
                rate=float(value),
                timestamp=self._parse_timestamp(payload)
            )
        except ValidationError as e:
            raise self._handle_error(operation, e, start_time) from e

    def _parse_timestamp(self, payload: Dict[str, Any]) -> datetime:
        raw = payload.get('date')
        if isinstance(raw, str):
            try:
                return datetime.fromisoformat(raw)
            except ValueError:
                self.logger.warning(f"Unparseable rate date {raw!r}, using current time")
        return datetime.now(timezone.utc)

    def close(self):
        """Close the underlying HTTP session."""
        self.session.close()
